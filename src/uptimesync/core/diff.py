"""
Diff engine for uptimesync.

Provides a minimal decision model to determine whether a resource should
be created, updated in place, replaced, deleted or left as-is (NOOP) based
on a field-by-field comparison between **prior state** and **desired config**.
Computed-only fields are ignored; diff-suppress functions are honoured.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from .resource_data import ResourceData
from .schema import Schema

Op = Literal["NOOP", "CREATE", "UPDATE", "REPLACE", "DELETE"]

SENSITIVE_MASK = "(sensitive)"


@dataclass(frozen=True)
class FieldChange:
    key: str
    old: Any
    new: Any
    force_new: bool = False
    sensitive: bool = False

    def render(self) -> str:
        if self.sensitive:
            return f"{self.key}: {SENSITIVE_MASK}"
        suffix = " (forces replacement)" if self.force_new else ""
        return f"{self.key}: {self.old!r} -> {self.new!r}{suffix}"


@dataclass(frozen=True)
class Decision:
    """Represents a diff outcome for a single resource.

    Attributes:
        op: One of ``"NOOP"``, ``"CREATE"``, ``"UPDATE"``, ``"REPLACE"`` or ``"DELETE"``.
        reason: Human-friendly explanation of the decision.
        changes: Field-level differences (empty for NOOP/CREATE/DELETE).
    """
    op: Op
    reason: str
    changes: List[FieldChange] = field(default_factory=list)


def _has_sensitive(schema: Schema, key: str) -> bool:
    f = schema[key]
    if f.sensitive:
        return True
    if f.is_block:
        return any(sub.sensitive for sub in f.elem)
    return False


def diff_resource(
    schema: Schema,
    prior: Optional[Dict[str, Any]],
    config: Optional[Dict[str, Any]],
    resource_id: str = "",
) -> Decision:
    """Compute a :class:`Decision` from prior state vs desired config."""
    if config is None:
        if prior is None:
            return Decision(op="NOOP", reason="Not managed")
        return Decision(op="DELETE", reason="Not in desired config")
    if prior is None or not resource_id:
        return Decision(op="CREATE", reason="Not found")

    data = ResourceData(schema, config=config, state=prior, resource_id=resource_id)
    changes: List[FieldChange] = []
    for f in schema:
        if f.computed_only:
            continue
        if data.has_change(f.name):
            changes.append(FieldChange(
                key=f.name,
                old=data.get_prior(f.name),
                new=data.get_config(f.name),
                force_new=f.force_new,
                sensitive=_has_sensitive(schema, f.name),
            ))

    if not changes:
        return Decision(op="NOOP", reason="Up to date")
    replaced = [c.key for c in changes if c.force_new]
    if replaced:
        return Decision(op="REPLACE", reason=f"Field forces replacement: {', '.join(replaced)}", changes=changes)
    return Decision(op="UPDATE", reason=f"Field differs: {', '.join(c.key for c in changes)}", changes=changes)
