"""Tests for windows_node_installer.publicip."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from windows_node_installer.errors import PublicIPLookupError
from windows_node_installer.publicip import (
    DEFAULT_LOOKUP_URL,
    HTTPPublicIPResolver,
    StaticPublicIPResolver,
)


def _session(text="203.0.113.7\n", error=None):
    session = MagicMock()
    resp = MagicMock()
    resp.text = text
    if error is not None:
        resp.raise_for_status.side_effect = error
    session.get.return_value = resp
    return session


class TestHTTPPublicIPResolver:
    def test_strips_body(self):
        session = _session()
        assert HTTPPublicIPResolver(session=session).resolve() == "203.0.113.7"
        session.get.assert_called_once_with(DEFAULT_LOOKUP_URL, timeout=10.0)

    def test_http_error(self):
        session = _session(error=requests.HTTPError("503 Service Unavailable"))
        with pytest.raises(PublicIPLookupError, match="503"):
            HTTPPublicIPResolver(session=session).resolve()

    def test_connection_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("offline")
        with pytest.raises(PublicIPLookupError, match="offline"):
            HTTPPublicIPResolver(session=session).resolve()

    def test_non_ip_body(self):
        with pytest.raises(PublicIPLookupError, match="not an IP address"):
            HTTPPublicIPResolver(session=_session("<html>oops</html>")).resolve()

    def test_ipv6_rejected(self):
        with pytest.raises(PublicIPLookupError, match="IPv4 required"):
            HTTPPublicIPResolver(session=_session("2001:db8::1")).resolve()


class TestStaticPublicIPResolver:
    def test_returns_address(self):
        assert StaticPublicIPResolver(" 198.51.100.4 ").resolve() == "198.51.100.4"

    def test_invalid_address(self):
        with pytest.raises(PublicIPLookupError):
            StaticPublicIPResolver("localhost")
