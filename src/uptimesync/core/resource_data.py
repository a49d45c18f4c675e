"""
ResourceData — the declarative record a handler works on.

A record is built from up to two sources:
  * ``config``: the desired attributes (plan/create/update),
  * ``state``: the attributes recorded after the last successful operation.

Values written with :meth:`ResourceData.set` during an operation take
precedence over both. ``to_state()`` returns what should be persisted.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional, Tuple

from .schema import LIST, Schema, SchemaError, validate_value, is_zero


class ResourceData:
    def __init__(
        self,
        schema: Schema,
        *,
        config: Optional[Dict[str, Any]] = None,
        state: Optional[Dict[str, Any]] = None,
        resource_id: str = "",
    ) -> None:
        self.schema = schema
        self._config = schema.normalize(config) if config is not None else None
        self._state = schema.normalize(_strip_id(state)) if state is not None else None
        self._id = resource_id or ""
        self._set: Dict[str, Any] = {}

    # ----- identity ---------------------------------------------------------

    def id(self) -> str:
        return self._id

    def set_id(self, value: Optional[str]) -> None:
        self._id = "" if value is None else str(value)

    @property
    def has_config(self) -> bool:
        return self._config is not None

    # ----- reads ------------------------------------------------------------

    def _base(self) -> Dict[str, Any]:
        if self._config is not None:
            return self._config
        return self._state or {}

    def get(self, key: str) -> Any:
        f = self.schema[key]
        if key in self._set:
            return copy.deepcopy(self._set[key])
        base = self._base()
        if key in base:
            return copy.deepcopy(base[key])
        return f.initial()

    def get_prior(self, key: str) -> Any:
        return copy.deepcopy((self._state or {}).get(key))

    def get_config(self, key: str) -> Any:
        return copy.deepcopy((self._config or {}).get(key))

    def get_ok(self, key: str) -> Tuple[Any, bool]:
        value = self.get(key)
        return value, not is_zero(value)

    def has_change(self, key: str) -> bool:
        """True when configuration and prior state disagree on ``key``."""
        f = self.schema[key]
        if self._config is None or self._state is None:
            return self._config is not None
        return not self.schema.field_equal(f, self._state.get(key), self._config.get(key), self)

    # ----- writes -----------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        f = self.schema[key]
        if value is not None:
            problems = validate_value(f, value, key, from_remote=True)
            if problems:
                raise SchemaError(f"Cannot set '{key}'", problems)
        if value is None:
            value = f.zero()
        elif f.is_block:
            value = [f.elem.normalize(item) for item in value]
        elif f.type == LIST:
            value = list(value)
        self._set[key] = value

    # ----- serialization ----------------------------------------------------

    def attributes(self) -> Dict[str, Any]:
        out = copy.deepcopy(self._base())
        out.update(copy.deepcopy(self._set))
        if "id" in self.schema:
            out["id"] = self._id or None
        return out

    def to_state(self) -> Dict[str, Any]:
        return {"id": self._id, "attributes": self.attributes()}


def _strip_id(state: Dict[str, Any]) -> Dict[str, Any]:
    # the id lives next to the attributes, not inside them
    return {k: v for k, v in state.items() if k != "id"}
