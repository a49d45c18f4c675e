""" Engine — orchestrates load → validate → refresh → diff → apply → record state.

Resource handlers only implement schema, validation and CRUD hooks.
Everything else (state bookkeeping, ordering, reporting rows) is handled here.
Resources are processed one at a time, in desired-file order; deletions of
resources no longer declared come last.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .client import HttpError, UptimeClient
from .diff import Decision, diff_resource
from .resource import ResourceError
from .resource_data import ResourceData
from .schema import SchemaError
from .state import StateError, StateStore, split_address
from ..resources.registry import DATA, RESOURCE, get_handler


class ValidationError(Exception):
    """Raised when the desired configuration is invalid. Nothing is applied."""

    def __init__(self, problems: List[str]) -> None:
        super().__init__("Invalid desired configuration: " + "; ".join(problems))
        self.problems = problems


@dataclass
class DesiredConfig:
    """Parsed desired-state file."""
    resources: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    data: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DesiredConfig":
        if not isinstance(raw, dict):
            raise ValidationError(["top-level YAML must be a mapping"])
        unknown = sorted(set(raw) - {"resources", "data"})
        if unknown:
            raise ValidationError([f"unknown top-level key(s): {', '.join(unknown)}"])

        return cls(resources=_flatten_section(raw, "resources"), data=_flatten_section(raw, "data"))

    @classmethod
    def load(cls, path: str) -> "DesiredConfig":
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return cls.from_dict(raw)


def _flatten_section(raw: Dict[str, Any], section: str) -> Dict[str, Dict[str, Any]]:
    """``{<type>: {<name>: attrs}}`` -> ``{"<type>.<name>": attrs}``."""
    types = raw.get(section) or {}
    if not isinstance(types, dict):
        raise ValidationError([f"{section}: expected a mapping of types, got {type(types).__name__}"])

    out: Dict[str, Dict[str, Any]] = {}
    for type_name, items in types.items():
        items = items or {}
        if not isinstance(items, dict):
            raise ValidationError([
                f"{section}.{type_name}: expected a mapping of names, got {type(items).__name__}"
            ])
        for name, attrs in items.items():
            out[f"{type_name}.{name}"] = attrs if attrs is not None else {}
    return out


@dataclass
class PlanItem:
    address: str
    decision: Decision
    config: Optional[Dict[str, Any]] = None
    prior: Optional[Dict[str, Any]] = None   # state entry after refresh
    error: str = ""


class Engine:
    def __init__(
        self,
        client: Optional[UptimeClient],
        state: StateStore,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.client = client
        self.state = state
        self.log = logger or logging.getLogger("usync.engine")

    # ----- validation -----------------------------------------------------

    def validate(self, desired: DesiredConfig) -> None:
        """Schema + handler validation for every declared resource and data source."""
        problems: List[str] = []
        for kind, entries in ((RESOURCE, desired.resources), (DATA, desired.data)):
            for address, attrs in entries.items():
                try:
                    type_name, _ = split_address(address)
                    handler = get_handler(kind, type_name)
                    handler.schema.validate_or_raise(attrs, what=address)
                    if kind == RESOURCE:
                        handler.validate(handler.new_data(config=attrs))
                except (SchemaError, ResourceError, StateError, KeyError) as exc:
                    msg = exc.args[0] if isinstance(exc, KeyError) else str(exc)
                    problems.append(f"{address}: {msg}")
        if problems:
            raise ValidationError(problems)

    # ----- refresh --------------------------------------------------------

    def _refresh_one(self, address: str) -> Optional[Dict[str, Any]]:
        entry = self.state.get(address)
        if entry is None:
            return None
        type_name, _ = split_address(address)
        handler = get_handler(RESOURCE, type_name)
        data = handler.new_data(state=entry.get("attributes") or {}, resource_id=entry.get("id", ""))
        handler.read(data, self._require_client())
        if not data.id():
            self.log.warning("%s no longer exists remotely; dropping it from state", address)
            self.state.remove(address)
            return None
        refreshed = data.to_state()
        self.state.put(address, refreshed)
        return refreshed

    def refresh(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for address in self.state.addresses():
            try:
                entry = self._refresh_one(address)
                rows.append(_row(address, "refresh", "Refreshed" if entry else "Gone", status="Success",
                                 resource_id=(entry or {}).get("id", "")))
            except (HttpError, ResourceError, SchemaError) as exc:
                self.log.error("Refresh of %s failed: %s", address, exc)
                rows.append(_row(address, "refresh", "Read failed", status="Failed", error=str(exc)))
        self.state.save()
        return rows

    # ----- plan -----------------------------------------------------------

    def plan(self, desired: DesiredConfig, *, refresh: bool = True) -> List[PlanItem]:
        self.validate(desired)
        items: List[PlanItem] = []

        for address, config in desired.resources.items():
            type_name, _ = split_address(address)
            handler = get_handler(RESOURCE, type_name)
            try:
                entry = self._refresh_one(address) if refresh else self.state.get(address)
            except (HttpError, ResourceError, SchemaError) as exc:
                self.log.error("Refresh of %s failed: %s", address, exc)
                items.append(PlanItem(address, Decision(op="NOOP", reason="Read failed"), config=config, error=str(exc)))
                continue
            prior = (entry or {}).get("attributes") if entry else None
            decision = diff_resource(handler.schema, prior, config, (entry or {}).get("id", ""))
            self.log.debug("%s -> %s (%s)", address, decision.op, decision.reason)
            items.append(PlanItem(address, decision, config=config, prior=entry))

        for address in self.state.addresses():
            if address in desired.resources:
                continue
            entry = self.state.get(address)
            items.append(PlanItem(address, Decision(op="DELETE", reason="Not in desired config"), prior=entry))
        return items

    # ----- apply ----------------------------------------------------------

    def apply(self, desired: DesiredConfig, *, dry_run: bool = False) -> List[Dict[str, Any]]:
        items = self.plan(desired, refresh=not dry_run)
        rows: List[Dict[str, Any]] = []
        for item in items:
            row = plan_row(item)
            if item.error:
                row.update({"status": "Failed", "error": item.error})
                rows.append(row)
                continue
            if dry_run or item.decision.op == "NOOP":
                rows.append(row)
                continue
            try:
                resource_id = self._apply_item(item)
                row.update({"status": "Success", "id": resource_id})
            except (HttpError, ResourceError, SchemaError) as exc:
                self.log.error("%s %s failed: %s", item.decision.op, item.address, exc)
                row.update({"status": "Failed", "error": str(exc)})
            rows.append(row)
        if not dry_run:
            self.state.save()

        for address, config in desired.data.items():
            rows.append(self._data_row(address, config, dry_run=dry_run))
        return rows

    def _apply_item(self, item: PlanItem) -> str:
        type_name, _ = split_address(item.address)
        handler = get_handler(RESOURCE, type_name)
        client = self._require_client()
        op = item.decision.op
        prior = item.prior or {}

        if op in ("DELETE", "REPLACE"):
            data = handler.new_data(state=prior.get("attributes") or {}, resource_id=prior.get("id", ""))
            handler.delete(data, client)
            self.state.remove(item.address)
            self.state.save()
            if op == "DELETE":
                return ""

        if op in ("CREATE", "REPLACE"):
            data = handler.new_data(config=item.config)
            handler.create(data, client)
        else:
            data = handler.new_data(
                config=item.config,
                state=prior.get("attributes") or {},
                resource_id=prior.get("id", ""),
            )
            handler.update(data, client)

        if not data.id():
            raise ResourceError(f"{item.address}: API returned no id")
        self.state.put(item.address, data.to_state())
        self.state.save()
        return data.id()

    # ----- destroy / import / data ----------------------------------------

    def destroy(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for address in reversed(self.state.addresses()):
            entry = self.state.get(address) or {}
            item = PlanItem(address, Decision(op="DELETE", reason="Destroy"), prior=entry)
            row = plan_row(item)
            try:
                self._apply_item(item)
                row["status"] = "Success"
            except (HttpError, ResourceError, SchemaError) as exc:
                self.log.error("DELETE %s failed: %s", address, exc)
                row.update({"status": "Failed", "error": str(exc)})
            rows.append(row)
        self.state.save()
        return rows

    def import_resource(self, address: str, resource_id: str) -> Dict[str, Any]:
        existing = self.state.get(address)
        if existing is not None:
            raise ResourceError(f"{address} is already managed (id={existing.get('id')})")
        type_name, _ = split_address(address)
        handler = get_handler(RESOURCE, type_name)
        data = handler.import_state(resource_id)
        handler.read(data, self._require_client())
        if not data.id():
            raise ResourceError(f"Cannot import {address}: object {resource_id} not found")
        entry = data.to_state()
        self.state.put(address, entry)
        self.state.save()
        self.log.info("Imported %s (id=%s)", address, resource_id)
        return entry

    def read_data(self, type_name: str, config: Optional[Dict[str, Any]] = None) -> ResourceData:
        handler = get_handler(DATA, type_name)
        handler.schema.validate_or_raise(config or {}, what=f"data.{type_name}")
        data = handler.new_data(config=config or {})
        handler.read(data, self._require_client())
        return data

    def _data_row(self, address: str, config: Dict[str, Any], *, dry_run: bool) -> Dict[str, Any]:
        type_name, _ = split_address(address)
        row = _row(address, "read", "Data source")
        if dry_run:
            return row
        try:
            data = self.read_data(type_name, config)
            row.update({"status": "Success", "id": data.id(), "outputs": _outputs(data)})
        except (HttpError, ResourceError, SchemaError) as exc:
            self.log.error("Reading %s failed: %s", address, exc)
            row.update({"status": "Failed", "error": str(exc)})
        return row

    def _require_client(self) -> UptimeClient:
        if self.client is None:
            raise ResourceError("No API client configured (dry run?)")
        return self.client


# ---------- rows ----------

def _row(address: str, result: str, action: str, **extra: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {"address": address, "result": result, "action": action}
    if "resource_id" in extra:
        extra["id"] = extra.pop("resource_id")
    row.update(extra)
    return row


def plan_row(item: PlanItem) -> Dict[str, Any]:
    return _row(
        item.address,
        item.decision.op.lower(),
        item.decision.reason,
        changes=[c.render() for c in item.decision.changes],
        id=(item.prior or {}).get("id", ""),
    )


def _outputs(data: ResourceData) -> Dict[str, Any]:
    return {f.name: data.get(f.name) for f in data.schema if f.computed}


def has_failures(rows: List[Dict[str, Any]]) -> bool:
    return any(r.get("status") == "Failed" for r in rows)
