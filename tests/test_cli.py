import json
import os

import pytest

from uptimesync.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_NETWORK_ERROR,
    EXIT_OK,
    EXIT_PARTIAL_FAILURE,
    EXIT_VALIDATION_ERROR,
    main,
)

DESIRED = """\
resources:
  outgoing_webhook:
    pager:
      name: Pager
      url: https://hooks.example/pager
      trigger_type: incident_change
      on_incident_started: true
      custom_webhook_template_attributes:
        - body_template: '{"text": "$INCIDENT"}'
data:
  ip_list:
    eu:
      filter_clusters: [eu]
"""


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("USYNC_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def desired_file(tmp_path):
    path = tmp_path / "uptime.yml"
    path.write_text(DESIRED, encoding="utf-8")
    return str(path)


def _globals(tmp_path, fake_api, token="TEST"):
    args = [
        "--base-url", fake_api.base_url,
        "--state", str(tmp_path / "state.json"),
        "--logs-dir", str(tmp_path / "logs"),
        "--timeout-sec", "2",
        "--format", "json",
    ]
    if token:
        args += ["--token", token]
    return args


def test_apply_then_plan_is_clean(tmp_path, fake_api, desired_file, capsys):
    assert main(_globals(tmp_path, fake_api) + ["apply", "-f", desired_file]) == EXIT_OK
    rows = json.loads(capsys.readouterr().out)
    assert [r["result"] for r in rows] == ["create", "read"]
    assert rows[1]["outputs"]["ips"] == ["2.2.2.2"]

    assert main(_globals(tmp_path, fake_api) + ["plan", "-f", desired_file]) == EXIT_OK
    rows = json.loads(capsys.readouterr().out)
    assert [r["result"] for r in rows] == ["noop"]


def test_plan_no_refresh_needs_no_token(tmp_path, fake_api, desired_file, capsys):
    code = main(_globals(tmp_path, fake_api, token=None) + ["plan", "-f", desired_file, "--no-refresh"])
    assert code == EXIT_OK
    rows = json.loads(capsys.readouterr().out)
    assert rows[0]["result"] == "create"
    assert fake_api.calls == []


def test_apply_without_token_is_a_config_error(tmp_path, fake_api, desired_file):
    code = main(_globals(tmp_path, fake_api, token=None) + ["apply", "-f", desired_file])
    assert code == EXIT_CONFIG_ERROR


def test_invalid_desired_file(tmp_path, fake_api):
    path = tmp_path / "bad.yml"
    path.write_text(
        "resources:\n  outgoing_webhook:\n    x:\n      url: https://x\n      trigger_type: monitor_change\n"
        "      on_incident_resolved: true\n",
        encoding="utf-8",
    )
    assert main(_globals(tmp_path, fake_api) + ["apply", "-f", str(path)]) == EXIT_VALIDATION_ERROR
    assert fake_api.calls == []


def test_missing_desired_file(tmp_path, fake_api):
    code = main(_globals(tmp_path, fake_api) + ["plan", "-f", str(tmp_path / "nope.yml")])
    assert code == EXIT_VALIDATION_ERROR


def test_ips_lists_cluster_ips(tmp_path, fake_api, capsys):
    assert main(_globals(tmp_path, fake_api) + ["ips", "--cluster", "us"]) == EXIT_OK
    rows = json.loads(capsys.readouterr().out)
    assert rows[0]["outputs"] == {"ips": ["1.1.1.1", "1.1.1.2"], "all_clusters": ["us", "eu", "as"]}


def test_bad_token_is_a_network_error(tmp_path, fake_api, capsys):
    assert main(_globals(tmp_path, fake_api, token="NOPE") + ["ips"]) == EXIT_NETWORK_ERROR
    assert "401" in capsys.readouterr().err


def test_failed_operation_is_a_partial_failure(tmp_path, fake_api, desired_file):
    fake_api.fail[("POST", "/api/v2/outgoing-webhooks")] = (500, "oops")
    code = main(_globals(tmp_path, fake_api) + ["apply", "-f", desired_file])
    assert code == EXIT_PARTIAL_FAILURE


def test_import_and_destroy(tmp_path, fake_api, capsys):
    fake_api.webhooks["9"] = {"url": "https://x", "trigger_type": "monitor_change"}
    assert main(_globals(tmp_path, fake_api) + ["import", "outgoing_webhook.legacy", "9"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)[0]["id"] == "9"

    assert main(_globals(tmp_path, fake_api) + ["destroy"]) == EXIT_OK
    assert fake_api.webhooks == {}


def test_list_instead_of_named_resources_is_a_validation_error(tmp_path, fake_api, capsys):
    path = tmp_path / "list.yml"
    path.write_text("resources:\n  outgoing_webhook:\n    - url: https://x\n", encoding="utf-8")
    assert main(_globals(tmp_path, fake_api) + ["plan", "-f", str(path)]) == EXIT_VALIDATION_ERROR
    assert "resources.outgoing_webhook: expected a mapping" in capsys.readouterr().err
