"""Projection of peer certificate attributes onto request headers.

Reads the peer certificate subject and SANs from the connection and
annotates the request with X-Peer-* headers. Projection never blocks a
request: a missing certificate or missing attributes only change which
headers are set.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

from peer_cert_headers.audit.logger import log_peer_certificate_absent, log_peer_headers_projected
from peer_cert_headers.extraction.san import parse_san_attributes
from peer_cert_headers.extraction.subject import parse_subject
from peer_cert_headers.host.properties import SUBJECT_PATH, read_property

if TYPE_CHECKING:
    from collections.abc import Iterator

    from peer_cert_headers.host.properties import PropertySource

HEADER_PREFIX = "X-Peer-"

CERTIFICATE_PRESENT = "X-Peer-Certificate-Present"
NAME = "X-Peer-Name"
EMAIL = "X-Peer-Email"
ORGANIZATION = "X-Peer-Organization"
ORGANIZATION_UNIT = "X-Peer-OrganizationUnit"
COUNTRY = "X-Peer-Country"
LOCALITY = "X-Peer-Locality"
STATE = "X-Peer-State"
CERTIFICATE_ERRORS = "X-Peer-Certificate-Errors"
SAN_DNS = "X-Peer-SAN-DNS"
PRIMARY_DNS = "X-Peer-Primary-DNS"
SAN_IP = "X-Peer-SAN-IP"
PRIMARY_IP = "X-Peer-Primary-IP"
SAN_EMAIL = "X-Peer-SAN-Email"
SAN_URI = "X-Peer-SAN-URI"

ERROR_SEPARATOR = "; "
SAN_SEPARATOR = ","


class Flow(str, Enum):
    """Control signal returned to the host after projection."""

    CONTINUE = "continue"


class HeaderSink(Protocol):
    """Destination for headers attached to the outgoing request."""

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any previous value."""
        ...


class HeaderSet:
    """Ordered header sink that records what projection set.

    A header set again keeps its original position and takes the new value.
    """

    def __init__(self) -> None:
        """Initialize an empty header set."""
        self._headers: dict[str, str] = {}

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any previous value."""
        self._headers[name] = value

    def get(self, name: str) -> str | None:
        """Get the value of a header, or None if it was not set."""
        return self._headers.get(name)

    def names(self) -> list[str]:
        """Get header names in the order they were first set."""
        return list(self._headers)

    def as_dict(self) -> dict[str, str]:
        """Get a copy of the headers as a dictionary."""
        return dict(self._headers)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._headers.items())

    def __len__(self) -> int:
        return len(self._headers)

    def __contains__(self, name: object) -> bool:
        return name in self._headers


def project_headers(lookup: PropertySource, sink: HeaderSink) -> Flow:
    """Annotate a request with the peer certificate's identity.

    Args:
        lookup: Source of connection properties for this request.
        sink: Destination for the request headers.

    Returns:
        Flow.CONTINUE, always.
    """
    subject_field = read_property(lookup, SUBJECT_PATH)

    if not subject_field:
        sink.set_header(CERTIFICATE_PRESENT, "false")
        log_peer_certificate_absent()
        return Flow.CONTINUE

    sink.set_header(CERTIFICATE_PRESENT, "true")
    written = [CERTIFICATE_PRESENT]

    subject = parse_subject(subject_field)
    for header, value in (
        (NAME, subject.name),
        (EMAIL, subject.email),
        (ORGANIZATION, subject.organization),
        (ORGANIZATION_UNIT, subject.organization_unit),
        (COUNTRY, subject.country),
        (LOCALITY, subject.locality),
        (STATE, subject.state),
    ):
        if value is not None:
            sink.set_header(header, value)
            written.append(header)

    if subject.errors:
        sink.set_header(CERTIFICATE_ERRORS, ERROR_SEPARATOR.join(subject.errors))
        written.append(CERTIFICATE_ERRORS)

    san = parse_san_attributes(lookup)

    if san.dns_names:
        sink.set_header(SAN_DNS, SAN_SEPARATOR.join(san.dns_names))
        sink.set_header(PRIMARY_DNS, san.dns_names[0])
        written += [SAN_DNS, PRIMARY_DNS]

    if san.ip_addresses:
        sink.set_header(SAN_IP, SAN_SEPARATOR.join(san.ip_addresses))
        sink.set_header(PRIMARY_IP, san.ip_addresses[0])
        written += [SAN_IP, PRIMARY_IP]

    # Email and URI SANs have no primary shortcut
    if san.email_addresses:
        sink.set_header(SAN_EMAIL, SAN_SEPARATOR.join(san.email_addresses))
        written.append(SAN_EMAIL)

    if san.uri_sans:
        sink.set_header(SAN_URI, SAN_SEPARATOR.join(san.uri_sans))
        written.append(SAN_URI)

    log_peer_headers_projected(
        subject_name=subject.name,
        header_names=written,
        errors=subject.errors,
    )
    return Flow.CONTINUE
