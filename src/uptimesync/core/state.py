"""
JSON state file.

Layout:
    {
      "version": 1,
      "resources": {
        "outgoing_webhook.slack": {"type": "outgoing_webhook", "id": "123", "attributes": {...}}
      }
    }

Addresses are ``<type>.<name>``. Writes go to a temporary file that then
replaces the target, so a crash never leaves a half-written state behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional, Tuple

STATE_VERSION = 1

log = logging.getLogger("usync.state")


class StateError(Exception):
    """Raised when the state file cannot be read or is malformed."""
    pass


def split_address(address: str) -> Tuple[str, str]:
    type_name, sep, name = address.partition(".")
    if not sep or not type_name or not name:
        raise StateError(f"Invalid address '{address}' (expected '<type>.<name>')")
    return type_name, name


class StateStore:
    def __init__(self, path: str) -> None:
        self.path = path
        self._resources: Dict[str, Dict[str, Any]] = {}

    def load(self) -> "StateStore":
        if not os.path.exists(self.path):
            log.debug("No state file at %s, starting empty", self.path)
            self._resources = {}
            return self
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StateError(f"Cannot read state file {self.path}: {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("resources", {}), dict):
            raise StateError(f"Malformed state file: {self.path}")
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise StateError(f"Unsupported state version {version!r} in {self.path}")
        self._resources = dict(data.get("resources") or {})
        return self

    def save(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        payload = {"version": STATE_VERSION, "resources": self._resources}
        fd, tmp = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ----- accessors --------------------------------------------------------

    def addresses(self) -> List[str]:
        return list(self._resources.keys())

    def get(self, address: str) -> Optional[Dict[str, Any]]:
        entry = self._resources.get(address)
        return dict(entry) if entry is not None else None

    def put(self, address: str, entry: Dict[str, Any]) -> None:
        type_name, _ = split_address(address)
        self._resources[address] = {
            "type": type_name,
            "id": entry.get("id", ""),
            "attributes": entry.get("attributes") or {},
        }

    def remove(self, address: str) -> None:
        self._resources.pop(address, None)
