"""Loopback redirect listener and browser launch for the desktop login flow."""
import contextlib
import logging
import os
import subprocess
import threading
import webbrowser
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Callable
from urllib.parse import urlparse, parse_qs

from oauth.templates import callback_page, neutral_page

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
LOOPBACK_HOST = "127.0.0.1"


def is_wsl() -> bool:
    """Check if running inside WSL."""
    if os.path.exists("/proc/version"):
        try:
            with open("/proc/version", "r") as f:
                version = f.read().lower()
                if "microsoft" in version or "wsl" in version:
                    return True
        except OSError:
            pass
    if os.environ.get("WSL_DISTRO_NAME"):
        return True
    return False


def open_browser(url: str) -> bool:
    """Open URL in the system browser, handling WSL gracefully.

    Returns True if some launcher accepted the URL.
    """
    if is_wsl():
        # In WSL, try wslview first (from wslu package), then the Windows shell
        for command in (["wslview", url], ["cmd.exe", "/c", "start", url]):
            try:
                result = subprocess.run(command, capture_output=True, timeout=5)
                if result.returncode == 0:
                    return True
            except (FileNotFoundError, subprocess.TimeoutExpired):
                continue

    # Suppress stderr temporarily to hide gio errors
    try:
        with open(os.devnull, "w") as devnull, contextlib.redirect_stderr(devnull):
            return bool(webbrowser.open(url))
    except (webbrowser.Error, OSError) as e:
        logger.debug(f"[OAUTH] Browser launch failed: {e}")
        return False


class CallbackHandler(BaseHTTPRequestHandler):
    """Answer every request with a minimal page and forward GETs to the flow."""

    def log_message(self, format, *args):
        """Route access logs to debug, without the query string."""
        logger.debug(f"[LISTENER] {self.command} {urlparse(self.path).path}")

    def do_GET(self):
        parsed = urlparse(self.path)
        params = {
            key: values[0]
            for key, values in parse_qs(parsed.query, keep_blank_values=True).items()
        }

        try:
            self.server.on_request(parsed.path, params)
        except Exception:
            logger.exception("[LISTENER] Request handler failed")

        if parsed.path == CALLBACK_PATH:
            self._send_response(callback_page())
        else:
            self._send_response(neutral_page())

    def do_POST(self):
        """Nothing is accepted over POST; answer neutrally."""
        self._send_response(neutral_page())

    def do_HEAD(self):
        self._send_response(neutral_page(), include_body=False)

    def _send_response(self, html: str, include_body: bool = True):
        body = html.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        if include_body:
            self.wfile.write(body)


class LoopbackListener:
    """One-shot HTTP listener on the loopback interface.

    ``on_request(path, params)`` is called from the listener thread for
    every GET. Use port 0 to let the OS pick a free port.
    """

    def __init__(self, port: int, on_request: Callable[[str, dict], None], host: str = LOOPBACK_HOST):
        self.host = host
        self.requested_port = port
        self.on_request = on_request
        self._server = None
        self._thread = None
        self._closed = threading.Event()

    @property
    def port(self) -> int:
        if self._server is None:
            return self.requested_port
        return self._server.server_address[1]

    @property
    def is_running(self) -> bool:
        return self._server is not None and not self._closed.is_set()

    def start(self) -> "LoopbackListener":
        """Bind and start serving. Raises OSError if the port is taken."""
        server = HTTPServer((self.host, self.requested_port), CallbackHandler)
        server.on_request = self.on_request
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name=f"slump-loopback-{self.port}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"[LISTENER] Listening on http://{self.host}:{self.port}{CALLBACK_PATH}")
        return self

    def close(self) -> None:
        """Stop serving and release the port. Safe to call more than once."""
        if self._server is None or self._closed.is_set():
            return
        self._closed.set()

        if threading.current_thread() is self._thread:
            # shutdown() would wait on the serve loop we are running in
            threading.Thread(target=self._shutdown, daemon=True).start()
            return
        self._shutdown()

    def _shutdown(self) -> None:
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        logger.info(f"[LISTENER] Closed port {self.port}")
