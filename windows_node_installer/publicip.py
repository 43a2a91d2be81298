"""Discovery of the operator's public IP address.

The RDP ingress rule is scoped to the address the installer runs from.
Lookups go through a :class:`PublicIPResolver` so the workflow can be
exercised without network access.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Optional, Protocol

import requests

from windows_node_installer.errors import PublicIPLookupError

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_URL = "https://checkip.amazonaws.com"
DEFAULT_TIMEOUT: float = 10.0


class PublicIPResolver(Protocol):
    def resolve(self) -> str:
        """Return the caller's public IPv4 address or raise PublicIPLookupError."""
        ...


class HTTPPublicIPResolver:
    """Ask a plain-text "what is my IP" endpoint."""

    def __init__(
        self,
        url: str = DEFAULT_LOOKUP_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def resolve(self) -> str:
        try:
            resp = self._session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise PublicIPLookupError(
                f"failed to get external IP address from {self.url}: {exc}"
            ) from exc
        return _parse_ipv4(resp.text, source=self.url)


class StaticPublicIPResolver:
    """Always returns the configured address."""

    def __init__(self, address: str) -> None:
        self.address = _parse_ipv4(address, source="static configuration")

    def resolve(self) -> str:
        return self.address


def _parse_ipv4(text: str, *, source: str) -> str:
    candidate = (text or "").strip()
    try:
        addr = ipaddress.ip_address(candidate)
    except ValueError as exc:
        raise PublicIPLookupError(
            f"{source} returned '{candidate[:64]}', not an IP address"
        ) from exc
    if addr.version != 4:
        raise PublicIPLookupError(f"{source} returned IPv6 address {addr}; IPv4 required")
    logger.debug("Public IP from %s: %s", source, addr)
    return str(addr)
