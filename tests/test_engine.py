import json

import pytest

from uptimesync.core.engine import DesiredConfig, Engine, ValidationError, has_failures
from uptimesync.core.resource import ResourceError
from uptimesync.core.state import StateStore

ADDR = "outgoing_webhook.pager"


def _desired(**attrs):
    base = {
        "name": "Pager",
        "url": "https://hooks.example/pager",
        "trigger_type": "incident_change",
        "on_incident_started": True,
        "custom_webhook_template_attributes": [{"body_template": '{"text": "$INCIDENT"}'}],
    }
    base.update(attrs)
    return DesiredConfig.from_dict({"resources": {"outgoing_webhook": {"pager": base}}})


@pytest.fixture()
def state_path(tmp_path):
    return str(tmp_path / "uptimesync.state.json")


@pytest.fixture()
def engine(client, state_path):
    return Engine(client, StateStore(state_path).load())


def _reload(state_path):
    return StateStore(state_path).load()


def test_apply_creates_and_records_state(fake_api, engine, state_path):
    rows = engine.apply(_desired())
    assert [(r["address"], r["result"], r["status"]) for r in rows] == [(ADDR, "create", "Success")]
    assert rows[0]["id"] == "101"

    entry = _reload(state_path).get(ADDR)
    assert entry["type"] == "outgoing_webhook"
    assert entry["id"] == "101"
    assert entry["attributes"]["custom_webhook_template_attributes"][0]["id"] == "tpl-101"

    with open(state_path, encoding="utf-8") as f:
        assert json.load(f)["version"] == 1


def test_second_plan_after_apply_is_empty(fake_api, engine, state_path):
    engine.apply(_desired())

    fresh = Engine(engine.client, _reload(state_path))
    items = fresh.plan(_desired(custom_webhook_template_attributes=[{"body_template": '{ "text" : "$INCIDENT" }'}]))
    assert [i.decision.op for i in items] == ["NOOP"]


def test_plan_without_refresh_makes_no_http_calls(fake_api, engine, state_path):
    engine.apply(_desired())
    calls = len(fake_api.calls)

    offline = Engine(None, _reload(state_path))
    items = offline.plan(_desired(name="Renamed"), refresh=False)
    assert [i.decision.op for i in items] == ["UPDATE"]
    assert len(fake_api.calls) == calls


def test_update_in_place(fake_api, engine, state_path):
    engine.apply(_desired())
    rows = Engine(engine.client, _reload(state_path)).apply(_desired(name="Renamed"))
    assert rows[0]["result"] == "update"
    assert rows[0]["changes"] == ["name: 'Pager' -> 'Renamed'"]
    assert fake_api.webhooks["101"]["name"] == "Renamed"
    assert _reload(state_path).get(ADDR)["attributes"]["name"] == "Renamed"


def test_trigger_type_change_replaces_the_webhook(fake_api, engine, state_path):
    engine.apply(_desired())
    rows = Engine(engine.client, _reload(state_path)).apply(
        _desired(trigger_type="monitor_change", on_incident_started=False)
    )
    assert rows[0]["result"] == "replace"
    assert rows[0]["id"] == "102"
    assert list(fake_api.webhooks) == ["102"]
    assert _reload(state_path).get(ADDR)["id"] == "102"


def test_resource_dropped_from_config_is_deleted(fake_api, engine, state_path):
    engine.apply(_desired())
    rows = Engine(engine.client, _reload(state_path)).apply(DesiredConfig())
    assert [(r["result"], r["status"]) for r in rows] == [("delete", "Success")]
    assert fake_api.webhooks == {}
    assert _reload(state_path).addresses() == []


def test_validation_errors_abort_before_any_request(fake_api, engine):
    desired = DesiredConfig.from_dict({"resources": {
        "outgoing_webhook": {
            "bad_trigger": {"url": "https://x", "trigger_type": "monitor_change", "on_incident_started": True},
            "no_url": {"trigger_type": "incident_change"},
        },
        "monitor": {"web": {"url": "https://x"}},
    }})
    with pytest.raises(ValidationError) as ei:
        engine.apply(desired)
    problems = ei.value.problems
    assert len(problems) == 3
    assert any("on_incident_started can only be set" in p for p in problems)
    assert any("url: required attribute is missing" in p for p in problems)
    assert any("Unknown resource type 'monitor'" in p for p in problems)
    assert fake_api.calls == []


def test_failed_create_is_reported_and_not_recorded(fake_api, engine, state_path):
    fake_api.fail[("POST", "/api/v2/outgoing-webhooks")] = (422, '{"errors": "invalid"}')
    rows = engine.apply(_desired())
    assert rows[0]["status"] == "Failed"
    assert "422" in rows[0]["error"]
    assert has_failures(rows)
    assert _reload(state_path).get(ADDR) is None


def test_refresh_drops_objects_deleted_outside(fake_api, engine, state_path):
    engine.apply(_desired())
    del fake_api.webhooks["101"]

    rows = Engine(engine.client, _reload(state_path)).refresh()
    assert rows[0]["action"] == "Gone"
    assert _reload(state_path).addresses() == []


def test_destroy_deletes_everything(fake_api, engine, state_path):
    engine.apply(_desired())
    rows = Engine(engine.client, _reload(state_path)).destroy()
    assert [r["status"] for r in rows] == ["Success"]
    assert fake_api.webhooks == {}
    assert _reload(state_path).addresses() == []


def test_import_then_plan(fake_api, engine, state_path):
    fake_api.webhooks["77"] = {
        "name": "Pager",
        "url": "https://hooks.example/pager",
        "trigger_type": "incident_change",
        "on_incident_started": True,
        "on_incident_acknowledged": False,
        "on_incident_resolved": False,
        "custom_webhook_template_attributes": {"id": "tpl-77", "http_method": "post",
                                               "body_template": '{"text":"$INCIDENT"}'},
    }
    entry = engine.import_resource(ADDR, "77")
    assert entry["id"] == "77"

    items = Engine(engine.client, _reload(state_path)).plan(_desired())
    assert [i.decision.op for i in items] == ["NOOP"]

    with pytest.raises(ResourceError):
        engine.import_resource(ADDR, "77")


def test_import_of_missing_object_fails(fake_api, engine, state_path):
    with pytest.raises(ResourceError):
        engine.import_resource(ADDR, "404")
    assert _reload(state_path).addresses() == []


def test_data_sources_are_read_after_resources(fake_api, engine):
    desired = DesiredConfig.from_dict({
        "resources": {"outgoing_webhook": {"pager": {"url": "https://x", "trigger_type": "on_call_change"}}},
        "data": {"ip_list": {"eu_only": {"filter_clusters": ["eu"]}}},
    })
    rows = engine.apply(desired)
    assert [r["address"] for r in rows] == [ADDR, "ip_list.eu_only"]
    assert rows[1]["outputs"] == {"ips": ["2.2.2.2"], "all_clusters": ["us", "eu", "as"]}


def test_dry_run_apply_needs_no_client(fake_api, state_path):
    offline = Engine(None, StateStore(state_path).load())
    rows = offline.apply(_desired(), dry_run=True)
    assert [(r["result"], r.get("status")) for r in rows] == [("create", None)]
    assert fake_api.calls == []


def test_unknown_top_level_key_is_rejected():
    with pytest.raises(ValidationError):
        DesiredConfig.from_dict({"resources": {}, "outputs": {}})


@pytest.mark.parametrize("raw, where", [
    ({"resources": ["outgoing_webhook"]}, "resources"),
    ({"resources": {"outgoing_webhook": [{"url": "https://x"}]}}, "resources.outgoing_webhook"),
    ({"data": {"ip_list": "all"}}, "data.ip_list"),
])
def test_nested_levels_must_be_mappings(raw, where):
    with pytest.raises(ValidationError) as ei:
        DesiredConfig.from_dict(raw)
    assert ei.value.problems[0].startswith(f"{where}: expected a mapping")


def test_webhook_created_without_id_is_a_failure(fake_api, engine, state_path, monkeypatch):
    monkeypatch.setattr(
        "uptimesync.resources.outgoing_webhook.resource_create",
        lambda client, path, payload: {"data": {"id": None, "attributes": {}}},
    )
    rows = engine.apply(_desired())
    assert rows[0]["status"] == "Failed"
    assert "API returned no id" in rows[0]["error"]
    assert _reload(state_path).get(ADDR) is None
