"""Subject Alternative Name extraction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from peer_cert_headers.host.properties import (
    DNS_SANS_PATH,
    EMAIL_SANS_PATH,
    IP_SANS_PATH,
    URI_SANS_PATH,
    read_property,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from peer_cert_headers.host.properties import PropertySource


@dataclass(frozen=True)
class SanAttributes:
    """SAN entries of the peer certificate, in certificate order."""

    dns_names: tuple[str, ...] = ()
    ip_addresses: tuple[str, ...] = ()
    email_addresses: tuple[str, ...] = ()
    uri_sans: tuple[str, ...] = ()


def parse_san_attributes(lookup: PropertySource) -> SanAttributes:
    """Read and split the four SAN lists of the peer certificate.

    Args:
        lookup: Source of connection properties.

    Returns:
        SanAttributes with one tuple per SAN type. Never raises.
    """
    return SanAttributes(
        dns_names=_read_list(lookup, DNS_SANS_PATH),
        uri_sans=_read_list(lookup, URI_SANS_PATH),
        ip_addresses=_read_list(lookup, IP_SANS_PATH),
        email_addresses=_read_list(lookup, EMAIL_SANS_PATH),
    )


def _read_list(lookup: PropertySource, path: Sequence[str]) -> tuple[str, ...]:
    """Split a comma-joined property into trimmed entries."""
    raw = read_property(lookup, path)
    # "".split(",") would give [""]
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(","))
