""" Resource and DataSource base classes.

Concrete handlers only declare a schema and implement the CRUD hooks.
Loading desired values into a request struct is shared here (``load``).
"""
from __future__ import annotations

from typing import Any, Optional

from .client import UptimeClient
from .resource_data import ResourceData
from .schema import BOOL, Schema


class ResourceError(Exception):
    """Raised when a handler cannot complete an operation."""
    pass


def load(data: ResourceData, key: str) -> Optional[Any]:
    """Return the value to send for ``key``, or None to leave it out.

    Strings and lists are sent only when non-empty; booleans always.
    """
    field = data.schema[key]
    if field.type == BOOL:
        value = data.get(key)
        return bool(value) if value is not None else None
    value, ok = data.get_ok(key)
    return value if ok else None


class BaseResource:
    """Abstract base class for managed resources.

    Class Attributes:
        type_name: Resource type used in desired-state files (e.g. "outgoing_webhook").
        description: Short human description / documentation link.
        schema: Field schema of the declarative record.
    """

    type_name: str = "resource"
    description: str = ""
    schema: Schema = Schema([])

    def new_data(self, *, config=None, state=None, resource_id: str = "") -> ResourceData:
        return ResourceData(self.schema, config=config, state=state, resource_id=resource_id)

    # ----- hooks to implement --------------------------------------------
    def validate(self, data: ResourceData) -> None:
        """Plan-time checks beyond the schema. Raise ResourceError on failure."""
        return None

    def create(self, data: ResourceData, client: UptimeClient) -> None:
        raise NotImplementedError

    def read(self, data: ResourceData, client: UptimeClient) -> None:
        """Refresh ``data`` from the API; clear the id when the object is gone."""
        raise NotImplementedError

    def update(self, data: ResourceData, client: UptimeClient) -> None:
        raise NotImplementedError

    def delete(self, data: ResourceData, client: UptimeClient) -> None:
        raise NotImplementedError

    def import_state(self, resource_id: str) -> ResourceData:
        """Passthrough import: the id alone is enough to read the object."""
        return self.new_data(state={}, resource_id=resource_id)


class BaseDataSource:
    """Abstract base class for read-only lookups."""

    type_name: str = "data"
    description: str = ""
    schema: Schema = Schema([])

    def new_data(self, *, config=None) -> ResourceData:
        return ResourceData(self.schema, config=config)

    def read(self, data: ResourceData, client: UptimeClient) -> None:
        raise NotImplementedError
