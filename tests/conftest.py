import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import unquote, urlparse

import pytest

from uptimesync.core.client import UptimeClient

WEBHOOKS = "/api/v2/outgoing-webhooks"


class FakeUptimeApi:
    """In-memory stand-in for the remote API, shared by the handler threads."""

    def __init__(self):
        self.webhooks = {}
        self.next_id = 100
        self.calls = []          # (method, path, body)
        self.ips = {"us": ["1.1.1.1", "1.1.1.2"], "eu": ["2.2.2.2"], "as": ["3.3.3.3"]}
        self.fail = {}           # (method, path) -> (status, body)
        self.token = "TEST"

    def requests(self, method, path_prefix=WEBHOOKS):
        return [c for c in self.calls if c[0] == method and c[1].startswith(path_prefix)]


def _make_handler(api: FakeUptimeApi):
    class _Handler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def _send(self, status, obj=None, raw=None):
            body = raw if raw is not None else (b"" if obj is None else json.dumps(obj).encode("utf-8"))
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if body:
                self.wfile.write(body)

        def _body(self):
            length = int(self.headers.get("Content-Length", "0"))
            raw = self.rfile.read(length) if length else b""
            return json.loads(raw.decode("utf-8")) if raw else None

        def _dispatch(self, method):
            path = urlparse(self.path).path
            body = self._body()
            api.calls.append((method, path, body))

            if self.headers.get("Authorization", "") != f"Bearer {api.token}":
                self._send(401, {"errors": "Invalid Team API Token"})
                return
            if (method, path) in api.fail:
                status, payload = api.fail[(method, path)]
                self._send(status, raw=payload.encode("utf-8"))
                return

            if path == "/ips-by-cluster.json" and method == "GET":
                self._send(200, api.ips)
                return

            if path == WEBHOOKS and method == "POST":
                api.next_id += 1
                wid = str(api.next_id)
                attrs = dict(body or {})
                attrs.pop("team_name", None)
                tpl = attrs.get("custom_webhook_template_attributes")
                if tpl is not None:
                    tpl = dict(tpl)
                    tpl["id"] = f"tpl-{wid}"
                    attrs["custom_webhook_template_attributes"] = tpl
                api.webhooks[wid] = attrs
                self._send(201, {"data": {"id": wid, "type": "outgoing_webhook", "attributes": attrs}})
                return

            if path.startswith(WEBHOOKS + "/"):
                wid = unquote(path[len(WEBHOOKS) + 1:])
                if wid not in api.webhooks:
                    self._send(404, {"errors": "Resource type OutgoingWebhook with id = %s was not found" % wid})
                    return
                if method == "GET":
                    self._send(200, {"data": {"id": wid, "attributes": api.webhooks[wid]}})
                elif method == "PATCH":
                    attrs = api.webhooks[wid]
                    for k, v in (body or {}).items():
                        if k == "custom_webhook_template_attributes":
                            v = dict(v, id=f"tpl-{wid}")
                        attrs[k] = v
                    self._send(200, {"data": {"id": wid, "attributes": attrs}})
                elif method == "DELETE":
                    del api.webhooks[wid]
                    self._send(204)
                else:
                    self._send(405, {"errors": "method not allowed"})
                return

            self._send(404, {"errors": "not found"})

        def do_GET(self):  # noqa: N802
            self._dispatch("GET")

        def do_POST(self):  # noqa: N802
            self._dispatch("POST")

        def do_PATCH(self):  # noqa: N802
            self._dispatch("PATCH")

        def do_DELETE(self):  # noqa: N802
            self._dispatch("DELETE")

        def log_message(self, fmt, *args):  # silence server logs during tests
            return

    return _Handler


@pytest.fixture()
def fake_api():
    api = FakeUptimeApi()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(api))
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    api.base_url = f"http://{host}:{port}"
    yield api
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)


@pytest.fixture()
def client(fake_api):
    return UptimeClient(fake_api.base_url, token="TEST", timeout_sec=2)
