"""
Outgoing webhook resource.

https://betterstack.com/docs/uptime/api/outgoing-webhook-integrations/

Behavior:
- ``trigger_type`` is the discriminator: the three ``on_incident_*`` flags are
  sent and read back only for ``incident_change`` webhooks, and setting one of
  them for any other trigger type is rejected at plan time.
- ``trigger_type`` cannot change in place; a new value replaces the webhook.
- ``team_name`` is sent on create only and ignored afterwards.
- ``custom_webhook_template_attributes`` is an optional single block;
  ``body_template`` is compared as JSON, so formatting changes are not diffs.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..core.client import UptimeClient
from ..core.crud import resource_create, resource_delete, resource_read, resource_update
from ..core.resource import BaseResource, ResourceError, load
from ..core.resource_data import ResourceData
from ..core.schema import (
    BOOL,
    LIST,
    STRING,
    Field,
    Schema,
    suppress_after_create,
    suppress_equivalent_json,
)

log = logging.getLogger("usync.outgoing_webhook")

COLLECTION_PATH = "/api/v2/outgoing-webhooks"

INCIDENT_CHANGE = "incident_change"
TRIGGER_TYPES = (INCIDENT_CHANGE, "on_call_change", "monitor_change")
HTTP_METHODS = ("get", "post", "put", "patch", "head")
INCIDENT_FIELDS = ("on_incident_started", "on_incident_acknowledged", "on_incident_resolved")

HEADER_SCHEMA = Schema([
    Field("name", STRING, required=True),
    Field("value", STRING, required=True),
])

TEMPLATE_SCHEMA = Schema([
    Field("id", STRING, computed=True),
    Field(
        "http_method", STRING, optional=True, default="post", one_of=HTTP_METHODS,
        description="The HTTP method to use when sending the webhook.",
    ),
    Field("auth_username", STRING, optional=True, description="The username to use for basic authentication."),
    Field(
        "auth_password", STRING, optional=True, sensitive=True,
        description="The password to use for basic authentication.",
    ),
    Field(
        "headers_template", LIST, optional=True, elem=HEADER_SCHEMA,
        description="The headers to include in the webhook request.",
    ),
    Field(
        "body_template", STRING, optional=True, diff_suppress=suppress_equivalent_json,
        description="The body of the webhook request.",
    ),
])

OUTGOING_WEBHOOK_SCHEMA = Schema([
    Field(
        "team_name", STRING, optional=True, diff_suppress=suppress_after_create,
        description="Used to specify the team the resource should be created in when using global tokens.",
    ),
    Field("id", STRING, computed=True, description="The ID of the outgoing webhook."),
    Field("name", STRING, optional=True, description="The name of the outgoing webhook."),
    Field("url", STRING, required=True, description="The URL to send webhooks to."),
    Field(
        "trigger_type", STRING, required=True, force_new=True, one_of=TRIGGER_TYPES,
        description="The type of trigger for the webhook. Only settable during creation.",
    ),
    Field(
        "on_incident_started", BOOL, optional=True, default=False,
        description="Whether to trigger webhook when incident starts. Only when trigger_type=incident_change.",
    ),
    Field(
        "on_incident_acknowledged", BOOL, optional=True, default=False,
        description="Whether to trigger webhook when incident is acknowledged. Only when trigger_type=incident_change.",
    ),
    Field(
        "on_incident_resolved", BOOL, optional=True, default=False,
        description="Whether to trigger webhook when incident is resolved. Only when trigger_type=incident_change.",
    ),
    Field(
        "custom_webhook_template_attributes", LIST, optional=True, max_items=1, elem=TEMPLATE_SCHEMA,
        description="Custom webhook template configuration.",
    ),
])


# ---------- API structs ----------

def _compact(obj: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in obj.items() if v is not None and v != []}


@dataclass
class HeaderTemplate:
    name: str
    value: str


@dataclass
class CustomWebhookTemplateAttributes:
    id: Optional[str] = None
    http_method: Optional[str] = None
    auth_username: Optional[str] = None
    auth_password: Optional[str] = None
    headers_template: List[HeaderTemplate] = field(default_factory=list)
    body_template: Any = None

    def to_payload(self) -> Dict[str, Any]:
        return _compact(asdict(self))

    @classmethod
    def from_payload(cls, obj: Dict[str, Any]) -> "CustomWebhookTemplateAttributes":
        headers = [
            HeaderTemplate(name=h.get("name"), value=h.get("value"))
            for h in (obj.get("headers_template") or [])
            if isinstance(h, dict)
        ]
        raw_id = obj.get("id")
        return cls(
            id=None if raw_id is None else str(raw_id),
            http_method=obj.get("http_method"),
            auth_username=obj.get("auth_username"),
            auth_password=obj.get("auth_password"),
            headers_template=headers,
            body_template=obj.get("body_template"),
        )

    @classmethod
    def from_block(cls, block: Dict[str, Any]) -> "CustomWebhookTemplateAttributes":
        """Build the request struct from a configured template block."""
        headers = [
            HeaderTemplate(name=h["name"], value=h["value"])
            for h in (block.get("headers_template") or [])
        ]
        return cls(
            http_method=block.get("http_method"),
            auth_username=block.get("auth_username"),
            auth_password=block.get("auth_password"),
            headers_template=headers,
            body_template=block.get("body_template"),
        )

    def to_block(self) -> Dict[str, Any]:
        body = self.body_template
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        block: Dict[str, Any] = {
            "id": self.id,
            "http_method": self.http_method,
            "auth_username": self.auth_username,
            "auth_password": self.auth_password,
            "body_template": body,
        }
        if self.headers_template:
            block["headers_template"] = [{"name": h.name, "value": h.value} for h in self.headers_template]
        return block


@dataclass
class OutgoingWebhook:
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    trigger_type: Optional[str] = None
    on_incident_started: Optional[bool] = None
    on_incident_acknowledged: Optional[bool] = None
    on_incident_resolved: Optional[bool] = None
    custom_webhook_template_attributes: Optional[CustomWebhookTemplateAttributes] = None
    team_name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        out = _compact({k: v for k, v in asdict(self).items() if k != "custom_webhook_template_attributes"})
        if self.custom_webhook_template_attributes is not None:
            out["custom_webhook_template_attributes"] = self.custom_webhook_template_attributes.to_payload()
        return out

    @classmethod
    def from_payload(cls, obj: Dict[str, Any]) -> "OutgoingWebhook":
        tpl = obj.get("custom_webhook_template_attributes")
        raw_id = obj.get("id")
        return cls(
            id=None if raw_id is None else str(raw_id),
            name=obj.get("name"),
            url=obj.get("url"),
            trigger_type=obj.get("trigger_type"),
            on_incident_started=obj.get("on_incident_started"),
            on_incident_acknowledged=obj.get("on_incident_acknowledged"),
            on_incident_resolved=obj.get("on_incident_resolved"),
            custom_webhook_template_attributes=(
                CustomWebhookTemplateAttributes.from_payload(tpl) if isinstance(tpl, dict) else None
            ),
            team_name=obj.get("team_name"),
        )


def _unwrap(body: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``data`` from a ``{"data": {"id": ..., "attributes": {...}}}`` envelope."""
    data = (body or {}).get("data")
    if not isinstance(data, dict):
        raise ResourceError("Unexpected API response: missing 'data' object")
    return data


def _ref_keys(trigger_type: str) -> List[str]:
    """Top-level keys mapped 1:1 between the record and the API struct."""
    keys = ["id", "name", "url", "trigger_type"]
    if trigger_type == INCIDENT_CHANGE:
        keys.extend(INCIDENT_FIELDS)
    return keys


def _item_path(resource_id: str) -> str:
    return f"{COLLECTION_PATH}/{quote(resource_id, safe='')}"


class OutgoingWebhookResource(BaseResource):
    type_name = "outgoing_webhook"
    description = "https://betterstack.com/docs/uptime/api/outgoing-webhook-integrations/"
    schema = OUTGOING_WEBHOOK_SCHEMA

    def validate(self, data: ResourceData) -> None:
        trigger_type = data.get("trigger_type")
        for key in INCIDENT_FIELDS:
            value, ok = data.get_ok(key)
            if ok and value and trigger_type != INCIDENT_CHANGE:
                raise ResourceError(f"{key} can only be set when trigger_type is '{INCIDENT_CHANGE}'")

    # ----- payloads -------------------------------------------------------

    def build_create(self, data: ResourceData) -> OutgoingWebhook:
        trigger_type = data.get("trigger_type")
        webhook = OutgoingWebhook()
        for key in _ref_keys(trigger_type):
            setattr(webhook, key, load(data, key))
        webhook.team_name = load(data, "team_name")

        blocks, ok = data.get_ok("custom_webhook_template_attributes")
        if ok:
            webhook.custom_webhook_template_attributes = CustomWebhookTemplateAttributes.from_block(blocks[0])
        return webhook

    def build_update(self, data: ResourceData) -> OutgoingWebhook:
        trigger_type = data.get("trigger_type")
        webhook = OutgoingWebhook()
        for key in _ref_keys(trigger_type):
            if data.has_change(key):
                setattr(webhook, key, load(data, key))

        if data.has_change("custom_webhook_template_attributes"):
            blocks, ok = data.get_ok("custom_webhook_template_attributes")
            if ok:
                webhook.custom_webhook_template_attributes = CustomWebhookTemplateAttributes.from_block(blocks[0])
        return webhook

    def copy_attrs(self, data: ResourceData, webhook: OutgoingWebhook) -> None:
        trigger_type = webhook.trigger_type or ""
        for key in _ref_keys(trigger_type):
            data.set(key, getattr(webhook, key))

        tpl = webhook.custom_webhook_template_attributes
        if tpl is not None:
            data.set("custom_webhook_template_attributes", [tpl.to_block()])

    # ----- CRUD -----------------------------------------------------------

    def create(self, data: ResourceData, client: UptimeClient) -> None:
        webhook = self.build_create(data)
        body = resource_create(client, COLLECTION_PATH, webhook.to_payload())
        out = _unwrap(body)
        raw_id = out.get("id")
        data.set_id("" if raw_id is None else str(raw_id))
        log.info("Created outgoing webhook %s (%s)", data.id(), webhook.name or webhook.url)
        self.copy_attrs(data, OutgoingWebhook.from_payload(out.get("attributes") or {}))

    def read(self, data: ResourceData, client: UptimeClient) -> None:
        body, found = resource_read(client, _item_path(data.id()))
        if not found:
            log.warning("Outgoing webhook %s not found, removing from state", data.id())
            data.set_id("")
            return
        out = _unwrap(body)
        self.copy_attrs(data, OutgoingWebhook.from_payload(out.get("attributes") or {}))

    def update(self, data: ResourceData, client: UptimeClient) -> None:
        webhook = self.build_update(data)
        resource_update(client, _item_path(data.id()), webhook.to_payload())
        log.info("Updated outgoing webhook %s", data.id())

    def delete(self, data: ResourceData, client: UptimeClient) -> None:
        resource_delete(client, _item_path(data.id()))
        log.info("Deleted outgoing webhook %s", data.id())
