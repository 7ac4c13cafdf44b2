"""HTTP status endpoint: GET / returns the position manager snapshot as JSON."""

from __future__ import annotations
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Optional, Tuple

logger = logging.getLogger("futures_agent.runtime.status")


def _make_handler(status_fn: Callable[[], dict]):
    class StatusHandler(BaseHTTPRequestHandler):

        def do_GET(self):
            if self.path.split("?", 1)[0] != "/":
                self._send(404, {"error": "not found"})
                return
            try:
                body = status_fn()
            except Exception:
                logger.exception("Status snapshot failed")
                self._send(500, {"error": "status unavailable"})
                return
            self._send(200, body)

        def _send(self, code: int, payload: dict) -> None:
            data = json.dumps(payload, default=str).encode("utf-8")
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

    return StatusHandler


class StatusServer:
    """Read-only status server on its own thread. Port 0 picks a free port."""

    def __init__(self, status_fn: Callable[[], dict], host: str = "0.0.0.0", port: int = 3002):
        self._httpd = ThreadingHTTPServer((host, port), _make_handler(status_fn))
        self._httpd.daemon_threads = True
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self._httpd.server_address[:2]
        return host, port

    def start(self) -> None:
        self._thread = threading.Thread(target=self._httpd.serve_forever, name="status-server", daemon=True)
        self._thread.start()
        logger.info("Status server listening on %s:%s", *self.address)

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(5.0)
