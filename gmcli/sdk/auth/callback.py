"""Single-use local listener for the OAuth redirect.

Usage:
    with CallbackListener("http://127.0.0.1:8787/callback", timeout=120) as listener:
        ...  # hand the authorize URL to the browser
        result = listener.wait()

The socket is bound on ``__enter__`` and always released on ``__exit__``,
so a later attempt can rebind the same port immediately.
"""

import html
import logging
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional, Union
from urllib.parse import parse_qs, urlsplit

from ..exceptions import (
    AuthError, AuthorizationDenied, CallbackRejected, CallbackTimeout, ListenerBindFailed,
)
from ..profiles import redirect_host_port
from .pkce import state_matches

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_TIMEOUT = 120.0

# Upper bound for reading the request once a connection has been accepted
REQUEST_READ_TIMEOUT = 10.0

SUCCESS_MESSAGE = "gmcli authorization received. You can return to the terminal."


@dataclass(frozen=True)
class CallbackResult:
    """Parameters extracted from the redirect request."""
    code: str
    state: str


def parse_callback_target(target: str, expected_path: str) -> CallbackResult:
    """
    Extract code/state from a request target such as ``/callback?code=..&state=..``.

    Raises:
        CallbackRejected: path mismatch or missing parameters
        AuthorizationDenied: the provider returned ``error``
    """
    parts = urlsplit(target)
    if parts.path != expected_path:
        raise CallbackRejected(
            f"oauth callback path mismatch: expected {expected_path}, got {parts.path}"
        )

    params = {k: v[0] for k, v in parse_qs(parts.query, keep_blank_values=True).items()}
    if "error" in params:
        raise AuthorizationDenied(params["error"], params.get("error_description"))

    state = params.get("state")
    if not state:
        raise CallbackRejected("oauth callback missing state parameter")
    code = params.get("code")
    if not code:
        raise CallbackRejected("oauth callback missing code parameter")
    return CallbackResult(code=code, state=state)


class _CallbackHandler(BaseHTTPRequestHandler):
    """Answers the browser and records the outcome on the server."""

    timeout = REQUEST_READ_TIMEOUT

    def do_GET(self):
        server: _CallbackServer = self.server
        try:
            result = parse_callback_target(self.path, server.expected_path)
        except AuthError as e:
            server.outcome = e
            self._respond(400, f"oauth callback error: {e.message}")
            return

        server.outcome = result
        if server.expected_state is not None and not state_matches(
            result.state, server.expected_state
        ):
            self._respond(400, "oauth callback error: state mismatch")
        else:
            self._respond(200, SUCCESS_MESSAGE)

    def _reject_method(self):
        self.server.outcome = CallbackRejected(f"oauth callback received non-GET request ({self.command})")
        self._respond(405, "oauth callback only accepts GET requests")

    do_POST = do_PUT = do_DELETE = do_PATCH = _reject_method

    def _respond(self, status: int, message: str):
        body = (
            "<!doctype html><html><body><p>"
            f"{html.escape(message)}"
            "</p></body></html>"
        ).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug(f"callback listener: {format % args}")


class _CallbackServer(HTTPServer):
    allow_reuse_address = True

    def __init__(self, address, expected_path: str, expected_state: Optional[str]):
        super().__init__(address, _CallbackHandler)
        self.expected_path = expected_path
        self.expected_state = expected_state
        self.outcome: Union[CallbackResult, AuthError, None] = None
        self.timed_out = False

    def handle_timeout(self):
        self.timed_out = True


class CallbackListener:
    """
    Binds the redirect URI's host/port and accepts exactly one request.

    Attributes:
        host, port, path: Parsed from the redirect URI
        timeout: Seconds to wait for the redirect
    """

    def __init__(self, redirect_uri: str, timeout: float = DEFAULT_CALLBACK_TIMEOUT,
                 expected_state: Optional[str] = None):
        self.host, self.port, self.path = redirect_host_port(redirect_uri)
        self.timeout = timeout
        self.expected_state = expected_state
        self._server: Optional[_CallbackServer] = None

    @property
    def is_bound(self) -> bool:
        return self._server is not None

    def bind(self):
        """Bind the endpoint. Raises ListenerBindFailed if the port is unavailable."""
        if self._server is not None:
            return
        try:
            self._server = _CallbackServer((self.host, self.port), self.path, self.expected_state)
        except OSError as e:
            raise ListenerBindFailed(self.host, self.port, e) from e
        logger.debug(f"Callback listener bound on {self.host}:{self.port}{self.path}")

    def wait(self) -> CallbackResult:
        """
        Block for one inbound request, bounded by the timeout.

        Raises:
            CallbackTimeout: nothing arrived in time
            CallbackRejected, AuthorizationDenied: the request was unusable
        """
        if self._server is None:
            raise RuntimeError("CallbackListener.wait() called before bind()")

        server = self._server
        server.timeout = self.timeout
        server.handle_request()

        if server.timed_out:
            raise CallbackTimeout(self.timeout)
        outcome = server.outcome
        if outcome is None:
            raise CallbackRejected("empty or malformed oauth callback request")
        if isinstance(outcome, AuthError):
            raise outcome
        logger.debug("Callback request received")
        return outcome

    def close(self):
        """Release the socket. Safe to call more than once."""
        if self._server is not None:
            self._server.server_close()
            self._server = None
            logger.debug(f"Callback listener on {self.host}:{self.port} released")

    def __enter__(self) -> "CallbackListener":
        self.bind()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
