"""
Declarative field schemas for uptimesync resources.

A Schema is an ordered list of Field definitions. It knows how to:
- normalize a raw mapping (apply defaults, fill missing keys),
- validate a raw mapping (required, types, enums, max items, nested blocks),
- compare two values of a field, honouring diff-suppress functions.

Diff-suppress functions use the signature ``(key, old, new, data) -> bool``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

STRING = "string"
BOOL = "bool"
INT = "int"
LIST = "list"

_SCALAR_TYPES: Dict[str, Tuple[type, ...]] = {
    STRING: (str,),
    BOOL: (bool,),
    INT: (int,),
}

DiffSuppressFunc = Callable[[str, Any, Any, Any], bool]


class SchemaError(Exception):
    """Raised when a record does not match its schema."""

    def __init__(self, message: str, problems: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [])

    def __str__(self) -> str:
        base = super().__str__()
        if self.problems:
            return base + ": " + "; ".join(self.problems)
        return base


@dataclass
class Field:
    name: str
    type: str = STRING
    required: bool = False
    optional: bool = False
    computed: bool = False
    default: Any = None
    force_new: bool = False
    sensitive: bool = False
    description: str = ""
    one_of: Tuple[Any, ...] = ()
    max_items: int = 0
    # Nested Schema for block lists, or a scalar type name for plain lists
    elem: Any = None
    diff_suppress: Optional[DiffSuppressFunc] = None

    @property
    def computed_only(self) -> bool:
        return self.computed and not self.required and not self.optional

    @property
    def is_block(self) -> bool:
        return self.type == LIST and isinstance(self.elem, Schema)

    def zero(self) -> Any:
        if self.type == LIST:
            return []
        return None

    def initial(self) -> Any:
        if self.default is not None:
            return self.default
        return self.zero()


class Schema:
    """Ordered collection of fields."""

    def __init__(self, fields: Iterable[Field]) -> None:
        self._fields: Dict[str, Field] = {}
        for f in fields:
            if f.name in self._fields:
                raise ValueError(f"Duplicate field '{f.name}'")
            self._fields[f.name] = f

    def __contains__(self, key: str) -> bool:
        return key in self._fields

    def __getitem__(self, key: str) -> Field:
        try:
            return self._fields[key]
        except KeyError:
            raise SchemaError(f"Unknown field '{key}'") from None

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields.values())

    def keys(self) -> List[str]:
        return list(self._fields.keys())

    # ----- normalization ----------------------------------------------------

    def normalize(self, raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Return a dict holding every field of the schema.

        Missing or None values take the field default (or the zero value).
        Nested blocks are normalized recursively.
        """
        raw = dict(raw or {})
        unknown = [k for k in raw if k not in self._fields]
        if unknown:
            raise SchemaError("Unknown attribute(s)", [f"unsupported argument '{k}'" for k in sorted(unknown)])

        out: Dict[str, Any] = {}
        for f in self:
            value = raw.get(f.name)
            if value is None:
                out[f.name] = f.initial()
            elif f.is_block and isinstance(value, list):
                out[f.name] = [f.elem.normalize(item) for item in value]
            elif f.type == LIST and isinstance(value, list):
                out[f.name] = list(value)
            else:
                out[f.name] = value
        return out

    # ----- validation -------------------------------------------------------

    def validate(self, raw: Optional[Dict[str, Any]], prefix: str = "", from_remote: bool = False) -> List[str]:
        problems: List[str] = []
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            return [f"{prefix or 'record'}: expected a mapping, got {type(raw).__name__}"]

        for key in raw:
            if key not in self._fields:
                problems.append(f"{prefix}{key}: unsupported argument")

        for f in self:
            path = f"{prefix}{f.name}"
            value = raw.get(f.name)
            if value is None:
                if f.required:
                    problems.append(f"{path}: required attribute is missing")
                continue
            if f.computed_only and not from_remote:
                problems.append(f"{path}: value is computed and cannot be set")
                continue
            problems.extend(validate_value(f, value, path, from_remote))
        return problems

    def validate_or_raise(self, raw: Optional[Dict[str, Any]], what: str = "record") -> None:
        problems = self.validate(raw)
        if problems:
            raise SchemaError(f"Invalid {what}", problems)

    # ----- comparison -------------------------------------------------------

    def field_equal(self, f: Field, old: Any, new: Any, data: Any = None, key: str = "") -> bool:
        """Compare two values of ``f``, honouring diff suppression."""
        key = key or f.name
        if f.is_block:
            old_items = old or []
            new_items = new or []
            if len(old_items) != len(new_items):
                return False
            for idx, (o, n) in enumerate(zip(old_items, new_items)):
                o = f.elem.normalize(o)
                n = f.elem.normalize(n)
                for sub in f.elem:
                    if sub.computed_only:
                        continue
                    if not f.elem.field_equal(sub, o.get(sub.name), n.get(sub.name), data, f"{key}.{idx}.{sub.name}"):
                        return False
            return True

        if is_zero(old) and is_zero(new):
            return True
        if old == new:
            return True
        if f.diff_suppress is not None:
            return bool(f.diff_suppress(key, old, new, data))
        return False


def validate_value(f: Field, value: Any, path: str, from_remote: bool = False) -> List[str]:
    problems: List[str] = []
    if f.type == LIST:
        if not isinstance(value, list):
            return [f"{path}: expected a list, got {type(value).__name__}"]
        if f.max_items and len(value) > f.max_items:
            problems.append(f"{path}: at most {f.max_items} item(s) allowed, got {len(value)}")
        for idx, item in enumerate(value):
            if f.is_block:
                problems.extend(f.elem.validate(item, prefix=f"{path}.{idx}.", from_remote=from_remote))
            elif isinstance(f.elem, str) and not _scalar_ok(f.elem, item):
                problems.append(f"{path}.{idx}: expected {f.elem}, got {type(item).__name__}")
        return problems

    if not _scalar_ok(f.type, value):
        return [f"{path}: expected {f.type}, got {type(value).__name__}"]
    if f.one_of and not from_remote and value not in f.one_of:
        allowed = ", ".join(repr(v) for v in f.one_of)
        problems.append(f"{path}: expected one of [{allowed}], got {value!r}")
    return problems


def _scalar_ok(type_name: str, value: Any) -> bool:
    types = _SCALAR_TYPES.get(type_name)
    if types is None:
        return True
    if type_name == INT and isinstance(value, bool):
        return False
    return isinstance(value, types)


def is_zero(value: Any) -> bool:
    """True for the zero value of any schema type."""
    return value is None or value == "" or value is False or value == 0 or value == [] or value == {}


# ---------- Diff-suppress functions ----------

def suppress_equivalent_json(key: str, old: Any, new: Any, data: Any) -> bool:
    """Treat two JSON documents as equal when they parse to the same value."""
    try:
        old_doc = json.loads(old) if isinstance(old, str) else old
        new_doc = json.loads(new) if isinstance(new, str) else new
    except (TypeError, ValueError):
        return False
    return old_doc == new_doc


def suppress_after_create(key: str, old: Any, new: Any, data: Any) -> bool:
    """Ignore changes once the record exists remotely."""
    if data is None:
        return False
    return bool(data.id())
