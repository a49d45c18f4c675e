"""
Generic CRUD helpers shared by every resource handler.

Each helper issues exactly one request and turns unexpected status codes
into HttpError("<METHOD> <url> returned <status>: <body>").
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from .client import UptimeClient

JSON = Dict[str, Any]


def resource_create(client: UptimeClient, path: str, payload: JSON) -> JSON:
    res = client.post(path, payload)
    if res.status not in (200, 201):
        raise res.error()
    return res.json()


def resource_read(client: UptimeClient, path: str) -> Tuple[Optional[JSON], bool]:
    """GET ``path``; returns ``(None, False)`` when the object no longer exists."""
    res = client.get(path)
    if res.status == 404:
        return None, False
    if res.status != 200:
        raise res.error()
    return res.json(), True


def resource_update(client: UptimeClient, path: str, payload: JSON) -> JSON:
    res = client.patch(path, payload)
    if res.status != 200:
        raise res.error()
    return res.json()


def resource_delete(client: UptimeClient, path: str) -> None:
    res = client.delete(path)
    # already gone counts as deleted
    if res.status not in (200, 204, 404):
        raise res.error()
