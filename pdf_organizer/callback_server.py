"""One-shot local listener that captures the OAuth redirect."""

from __future__ import annotations

import logging
import queue
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Dict, Optional
from urllib.parse import parse_qs, urlparse

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

CONFIRMATION_PAGE = (
    "<html><body><h1>Authorization complete</h1>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)


class _CallbackHandler(BaseHTTPRequestHandler):
    """Hands the redirect query parameters over to the waiting thread."""

    def do_GET(self):
        params = {
            key: values[0]
            for key, values in parse_qs(urlparse(self.path).query).items()
            if values
        }
        if "code" not in params and "error" not in params:
            self.send_response(404)
            self.end_headers()
            self.wfile.write(b"Not Found")
            return

        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(CONFIRMATION_PAGE.encode("utf-8"))
        try:
            self.server.results.put_nowait(params)
        except queue.Full:
            logger.debug("Ignoring repeated redirect")

    def log_message(self, format, *args):
        pass


class CallbackServer:
    """Listen on localhost until exactly one redirect arrives."""

    def __init__(self, port: int, host: str = "localhost") -> None:
        self.host = host
        self.port = port
        self.httpd: Optional[HTTPServer] = None
        self.server_thread: Optional[threading.Thread] = None

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}/"

    def start(self) -> str:
        try:
            self.httpd = HTTPServer((self.host, self.port), _CallbackHandler)
        except OSError as exc:
            raise AuthenticationError(
                f"Unable to listen on {self.host}:{self.port} for the OAuth redirect: {exc}"
            ) from exc
        self.httpd.results = queue.Queue(maxsize=1)
        # Port 0 binds an ephemeral port.
        self.port = self.httpd.server_address[1]

        self.server_thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self.server_thread.start()
        logger.debug("OAuth callback listener started on %s", self.redirect_uri)
        return self.redirect_uri

    def wait_for_redirect(self, timeout: float) -> Dict[str, str]:
        """Block until the redirect query parameters arrive."""
        if self.httpd is None:
            raise RuntimeError("Callback server is not running")
        try:
            return self.httpd.results.get(timeout=timeout)
        except queue.Empty as exc:
            raise AuthenticationError(
                f"No authorization response received within {timeout:g} seconds"
            ) from exc

    def stop(self) -> None:
        if self.httpd:
            self.httpd.shutdown()
            self.httpd.server_close()
            self.httpd = None
        if self.server_thread and self.server_thread.is_alive():
            self.server_thread.join(timeout=5)
        self.server_thread = None
        logger.debug("OAuth callback listener stopped")

    def __enter__(self) -> "CallbackServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
