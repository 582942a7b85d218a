"""
Tests for the loopback consent listener. A real socket is bound on a free
port and the "browser" is a thread issuing the redirect with urllib.

Usage:
    pytest tradezen/credentials/tests/test_oauth_server.py -v
"""
import socket
import sys
import threading
import urllib.error
import urllib.request
from pathlib import Path
from unittest.mock import patch

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent.parent))

from tradezen.credentials import oauth_server
from tradezen.credentials.oauth_server import redirect_uri_for, run_oauth_flow


@pytest.fixture
def port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def browser_visiting(port, *paths):
    """Stand-in for ``webbrowser.open`` that requests ``paths`` in order."""
    pages = []
    visited = threading.Event()

    def visit():
        for path in paths:
            try:
                with urllib.request.urlopen(f"http://127.0.0.1:{port}{path}", timeout=5) as response:
                    pages.append(response.read().decode("utf-8"))
            except urllib.error.HTTPError as e:
                pages.append(e.code)
        visited.set()

    def open_url(url):
        threading.Thread(target=visit, daemon=True).start()
        return True

    open_url.visited = visited
    return open_url, pages


class TestRunOAuthFlow:

    def test_code_returned_when_state_matches(self, port):
        open_url, pages = browser_visiting(port, "/?code=auth-code&state=s1")
        with patch.object(oauth_server.webbrowser, "open", side_effect=open_url):
            assert run_oauth_flow("https://accounts.example/auth", port=port, timeout=5, expected_state="s1") == ("auth-code", None)
        assert open_url.visited.wait(5)
        assert "TradeZen is connected" in pages[0]

    def test_mismatched_state_refused(self, port):
        open_url, pages = browser_visiting(port, "/?code=auth-code&state=forged")
        with patch.object(oauth_server.webbrowser, "open", side_effect=open_url):
            code, error = run_oauth_flow("https://accounts.example/auth", port=port, timeout=5, expected_state="s1")
        assert code is None
        assert error == "OAuth state mismatch."
        assert open_url.visited.wait(5)
        assert "sign-in failed" in pages[0]

    def test_denied_consent(self, port):
        open_url, _pages = browser_visiting(port, "/?error=access_denied&state=s1")
        with patch.object(oauth_server.webbrowser, "open", side_effect=open_url):
            assert run_oauth_flow("https://accounts.example/auth", port=port, timeout=5, expected_state="s1") == (None, "access_denied")

    def test_stray_request_does_not_end_the_wait(self, port):
        open_url, pages = browser_visiting(port, "/favicon.ico", "/?code=auth-code&state=s1")
        with patch.object(oauth_server.webbrowser, "open", side_effect=open_url):
            assert run_oauth_flow("https://accounts.example/auth", port=port, timeout=5, expected_state="s1") == ("auth-code", None)
        assert open_url.visited.wait(5)
        assert pages[0] == 404

    def test_times_out_without_redirect(self, port, capsys):
        with patch.object(oauth_server.webbrowser, "open", return_value=False):
            assert run_oauth_flow("https://accounts.example/auth", port=port, timeout=0.2) == (None, "OAuth timed out.")
        assert "https://accounts.example/auth" in capsys.readouterr().out

    def test_redirect_uri(self):
        assert redirect_uri_for(8765) == "http://localhost:8765"
