# -*- coding: utf-8 -*-
"""
tradezen.credentials.oauth_server

Loopback listener for the Google consent redirect. Blocking; the session
manager runs it off the event loop.
"""

import html
import time
import webbrowser
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

from tradezen.logger import logger

CALLBACK_PATH = "/"


def redirect_uri_for(port: int) -> str:
    """Redirect URI registered with Google for the loopback listener on ``port``."""
    return f"http://localhost:{port}"


@dataclass
class ConsentOutcome:
    code: Optional[str] = None
    error: Optional[str] = None


class _ConsentServer(HTTPServer):
    """One sign-in attempt; the handler records what Google sent back on ``outcome``."""

    def __init__(self, port: int, expected_state: Optional[str]) -> None:
        super().__init__(("127.0.0.1", port), _ConsentCallbackHandler)
        self.expected_state = expected_state
        self.outcome: Optional[ConsentOutcome] = None

    def judge(self, params: dict) -> ConsentOutcome:
        error = params.get("error", [None])[0]
        if error:
            return ConsentOutcome(error=error)
        code = params.get("code", [None])[0]
        if not code:
            return ConsentOutcome(error="no authorization code")
        if self.expected_state is not None and params.get("state", [None])[0] != self.expected_state:
            return ConsentOutcome(error="OAuth state mismatch.")
        return ConsentOutcome(code=code)


class _ConsentCallbackHandler(BaseHTTPRequestHandler):
    server: _ConsentServer

    def do_GET(self):
        url = urlparse(self.path)
        if url.path != CALLBACK_PATH or self.server.outcome is not None:
            # Browsers also ask for /favicon.ico
            self.send_error(404)
            return

        outcome = self.server.judge(parse_qs(url.query))
        self.server.outcome = outcome
        if outcome.code:
            body = "<h2>TradeZen is connected to Google.</h2><p>You can close this tab.</p>"
        else:
            body = f"<h2>TradeZen sign-in failed</h2><p>{html.escape(outcome.error)}</p>"

        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(body.encode("utf-8"))

    def log_message(self, format, *args):
        logger.debug(f"[OAUTH] {format % args}")


def _wait_for_outcome(server: _ConsentServer, timeout: float) -> Optional[ConsentOutcome]:
    deadline = time.monotonic() + timeout
    while server.outcome is None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        server.timeout = remaining
        server.handle_request()
    return server.outcome


def run_oauth_flow(
    auth_url: str,
    port: int = 8765,
    timeout: int = 120,
    expected_state: Optional[str] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Send the user to ``auth_url`` and wait for Google to redirect back.

    Returns:
        ``(code, None)`` on consent, ``(None, error_message)`` otherwise. A
        redirect carrying a ``state`` other than ``expected_state`` is refused.
    """
    server = _ConsentServer(port, expected_state)
    try:
        try:
            opened = webbrowser.open(auth_url)
        except webbrowser.Error:
            opened = False
        if not opened:
            print(f"Open this URL to sign in:\n{auth_url}")

        outcome = _wait_for_outcome(server, timeout)
    finally:
        server.server_close()

    if outcome is None:
        logger.warning(f"[OAUTH] No consent redirect within {timeout}s")
        return None, "OAuth timed out."
    return outcome.code, outcome.error
