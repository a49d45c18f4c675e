"""
UptimeClient — JSON HTTP client for the Better Stack Uptime REST API.

- requests.Session with bearer token, JSON content type and a User-Agent.
- Methods: get, post, patch, delete. Each returns an ApiResponse; the status
  code is NOT checked here, the CRUD helpers in ``crud.py`` decide what a
  success looks like for each verb.
- Transport failures are raised as HttpError(status=0, ...).
- No retries: every call is one request, synchronously awaited.
- TLS verification toggle (verify_tls=True by default).

Usage:
    client = UptimeClient("https://uptime.betterstack.com", token)
    res = client.get("/api/v2/outgoing-webhooks/123")
"""

from __future__ import annotations

import json
import logging
import time
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import urllib3

from .. import __version__

DEFAULT_BASE_URL = "https://uptime.betterstack.com"
USER_AGENT = f"uptimesync/{__version__}"

_LOG_PREVIEW = 600


@dataclass
class HttpError(Exception):
    """HTTP/transport error with context."""
    status: int
    url: str
    method: str = "GET"
    body: str = ""
    message: str = ""

    def __str__(self) -> str:
        if self.status:
            return f"{self.method} {self.url} returned {self.status}: {self.body}"
        base = f"{self.method} {self.url} failed"
        if self.message:
            base += f": {self.message}"
        return base


@dataclass
class ApiResponse:
    method: str
    url: str
    status: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body; an empty body decodes to an empty dict."""
        if not self.text:
            return {}
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as exc:
            raise HttpError(
                status=self.status, url=self.url, method=self.method, body=self.text[:_LOG_PREVIEW], message=str(exc)
            ) from exc

    def error(self) -> HttpError:
        return HttpError(status=self.status, url=self.url, method=self.method, body=self.text)


class UptimeClient:
    """Minimal JSON HTTP client with timeouts."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        verify_tls: bool = True,
        timeout_sec: float = 30,
        logger: Optional[logging.LoggerAdapter] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.verify_tls = bool(verify_tls)
        self.timeout = float(timeout_sec)
        self.log = logger or logging.getLogger("usync.http")

        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "User-Agent": USER_AGENT,
        })

        if not self.verify_tls:
            warnings.filterwarnings("ignore", category=urllib3.exceptions.InsecureRequestWarning)
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    # ------------- Public API -------------

    def get(self, path: str) -> ApiResponse:
        return self._request("GET", path)

    def post(self, path: str, payload: Dict[str, Any]) -> ApiResponse:
        return self._request("POST", path, payload)

    def patch(self, path: str, payload: Dict[str, Any]) -> ApiResponse:
        return self._request("PATCH", path, payload)

    def delete(self, path: str) -> ApiResponse:
        return self._request("DELETE", path)

    # ------------- Internal -------------

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> ApiResponse:
        url = self.url(path)
        start = time.time()
        try:
            resp = self.session.request(
                method=method,
                url=url,
                json=payload,
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except requests.RequestException as exc:
            err = HttpError(status=0, url=url, method=method, message=str(exc))
            self.log.warning("%s %s failed: %s", method, path, exc)
            raise err from exc

        elapsed = (time.time() - start) * 1000
        text = resp.text or ""
        if 200 <= resp.status_code < 300:
            self.log.debug("%s %s -> %s in %.1fms", method, path, resp.status_code, elapsed)
        else:
            self.log.warning("%s %s -> %s in %.1fms: %s", method, path, resp.status_code, elapsed, text[:200])
        return ApiResponse(method=method, url=url, status=resp.status_code, text=text)
