"""Connection property sources for the peer certificate.

A property source answers lookups of connection-scoped metadata by a
hierarchical key, e.g. ``("connection", "subject_peer_certificate")``.
Sources may be backed by a plain mapping, by headers forwarded from a
TLS-terminating proxy, or by a decoded X.509 certificate.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from cryptography import x509
from cryptography.x509.oid import NameOID

from peer_cert_headers.audit.logger import log_certificate_unloadable, log_property_unreadable
from peer_cert_headers.exceptions import PropertyReadError

if TYPE_CHECKING:
    from peer_cert_headers.config import ForwardedHeadersConfig

PropertyPath = tuple[str, ...]

SUBJECT_PATH: PropertyPath = ("connection", "subject_peer_certificate")
DNS_SANS_PATH: PropertyPath = ("connection", "dns_sans_peer_certificate")
URI_SANS_PATH: PropertyPath = ("connection", "uri_sans_peer_certificate")
IP_SANS_PATH: PropertyPath = ("connection", "ip_sans_peer_certificate")
EMAIL_SANS_PATH: PropertyPath = ("connection", "email_sans_peer_certificate")

# Match OpenSSL's RFC 2253 output, which proxies forward verbatim
_SUBJECT_NAME_OVERRIDES = {NameOID.EMAIL_ADDRESS: "emailAddress"}

_SAN_TYPES: dict[PropertyPath, type[x509.GeneralName]] = {
    DNS_SANS_PATH: x509.DNSName,
    URI_SANS_PATH: x509.UniformResourceIdentifier,
    IP_SANS_PATH: x509.IPAddress,
    EMAIL_SANS_PATH: x509.RFC822Name,
}


class PropertySource(Protocol):
    """Lookup of connection-scoped metadata by hierarchical key."""

    def read_property(self, path: Sequence[str]) -> bytes | str | None:
        """Return the raw property value, or None if absent."""
        ...


def read_property(source: PropertySource, path: Sequence[str]) -> str:
    """Read a property as text, never failing.

    Bytes are decoded as UTF-8 with replacement characters. Absent and
    unreadable properties both read as the empty string.

    Args:
        source: Property source to query.
        path: Hierarchical property key.

    Returns:
        Property value, or "" if absent or unreadable.
    """
    try:
        value = source.read_property(path)
    except PropertyReadError as e:
        log_property_unreadable(path=path, reason=e.message)
        return ""

    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class MappingPropertySource:
    """Property source backed by a mapping of path tuples to values."""

    def __init__(self, properties: Mapping[PropertyPath, bytes | str]) -> None:
        """Initialize with property values.

        Args:
            properties: Mapping from property path to raw value.
        """
        self._properties = dict(properties)

    def read_property(self, path: Sequence[str]) -> bytes | str | None:
        """Return the stored value for path, or None."""
        return self._properties.get(tuple(path))


class CertificatePropertySource:
    """Property source that renders a decoded peer certificate as text.

    Produces the same comma-delimited shape a TLS terminator exposes:
    the subject as an RFC 4514 string and each SAN type comma-joined.
    """

    def __init__(self, certificate: x509.Certificate) -> None:
        """Initialize with the peer certificate.

        Args:
            certificate: The peer's X.509 certificate.
        """
        self._certificate = certificate

    def read_property(self, path: Sequence[str]) -> bytes | str | None:
        """Return the rendered property for path, or None."""
        key = tuple(path)
        if key == SUBJECT_PATH:
            return self._certificate.subject.rfc4514_string(_SUBJECT_NAME_OVERRIDES)

        san_type = _SAN_TYPES.get(key)
        if san_type is None:
            return None

        san = self._subject_alternative_name(key)
        if san is None:
            return None
        return ",".join(str(value) for value in san.get_values_for_type(san_type))

    def _subject_alternative_name(self, path: PropertyPath) -> x509.SubjectAlternativeName | None:
        """Get the SAN extension, or None if the certificate has none."""
        try:
            return self._certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        except x509.ExtensionNotFound:
            return None
        except (x509.DuplicateExtension, x509.UnsupportedGeneralNameType, ValueError) as e:
            # Extensions are parsed on first access; ValueError covers malformed DER
            raise PropertyReadError.unreadable(path=path, reason=str(e)) from e


def forwarded_header_source(
    headers: Sequence[tuple[bytes, bytes]],
    config: ForwardedHeadersConfig,
) -> MappingPropertySource:
    """Build a property source from headers set by a TLS-terminating proxy.

    Args:
        headers: Raw ASGI header pairs.
        config: Names of the forwarded headers.

    Returns:
        Property source with the forwarded values.
    """
    wanted = {
        config.subject.lower().encode(): SUBJECT_PATH,
        config.dns_sans.lower().encode(): DNS_SANS_PATH,
        config.uri_sans.lower().encode(): URI_SANS_PATH,
        config.ip_sans.lower().encode(): IP_SANS_PATH,
        config.email_sans.lower().encode(): EMAIL_SANS_PATH,
    }

    properties: dict[PropertyPath, bytes] = {}
    for name, value in headers:
        path = wanted.get(name.lower())
        if path is not None and path not in properties:
            properties[path] = value
    return MappingPropertySource(properties)


def certificate_from_scope(scope: Mapping[str, Any]) -> x509.Certificate | None:
    """Find the peer certificate for an ASGI request.

    Looks first for an ``x509.Certificate`` the host placed in request
    state, then for the PEM chain of the ASGI TLS extension.

    Args:
        scope: ASGI connection scope.

    Returns:
        The peer certificate, or None if none was presented or it
        could not be loaded.
    """
    client_cert = scope.get("state", {}).get("client_cert")
    if isinstance(client_cert, x509.Certificate):
        return client_cert

    tls = scope.get("extensions", {}).get("tls") or {}
    chain = tls.get("client_cert_chain") or []
    if not chain:
        return None

    pem = chain[0]
    if isinstance(pem, str):
        pem = pem.encode("ascii", errors="replace")
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        log_certificate_unloadable(reason=str(e))
        return None
