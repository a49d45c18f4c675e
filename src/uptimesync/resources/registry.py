# uptimesync/resources/registry.py
"""Handler registry for uptimesync."""

from __future__ import annotations
from dataclasses import dataclass
from importlib import import_module
from typing import Dict, Iterable, Tuple

RESOURCE = "resource"
DATA = "data"

# -------- Handler classes (resources and data sources) -----------------------

@dataclass(frozen=True)
class ResourceSpec:
    key: str                # type name in desired-state files
    kind: str               # "resource" or "data"
    help: str               # human description
    module: str             # module path
    class_name: str         # class symbol in module

    def load_class(self):
        mod = import_module(self.module)
        return getattr(mod, self.class_name)

_SPECS: Dict[Tuple[str, str], ResourceSpec] = {
    # Outgoing webhooks
    (RESOURCE, "outgoing_webhook"): ResourceSpec(
        key="outgoing_webhook",
        kind=RESOURCE,
        help="Outgoing webhook integration",
        module="uptimesync.resources.outgoing_webhook",
        class_name="OutgoingWebhookResource",
    ),
    # Monitoring IPs
    (DATA, "ip_list"): ResourceSpec(
        key="ip_list",
        kind=DATA,
        help="Monitoring IPs lookup",
        module="uptimesync.resources.ip_list",
        class_name="IpListDataSource",
    ),
}

def get_spec(kind: str, key: str) -> ResourceSpec:
    try:
        return _SPECS[(kind, key)]
    except KeyError:
        known = ", ".join(sorted(k for (kd, k) in _SPECS if kd == kind)) or "none"
        raise KeyError(f"Unknown {kind} type '{key}' (known: {known})") from None

def iter_specs(kind: str | None = None) -> Iterable[ResourceSpec]:
    return [s for s in _SPECS.values() if kind is None or s.kind == kind]

def get_handler(kind: str, key: str):
    """Instantiate the handler registered for ``(kind, key)``."""
    return get_spec(kind, key).load_class()()
