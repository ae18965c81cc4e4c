"""Contract tests for connection property sources.

Tests mapping, forwarded-header and certificate-backed property sources.
"""

from __future__ import annotations

import ipaddress
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from peer_cert_headers.config import ForwardedHeadersConfig
from peer_cert_headers.exceptions import PropertyReadError
from peer_cert_headers.host.properties import (
    DNS_SANS_PATH,
    EMAIL_SANS_PATH,
    IP_SANS_PATH,
    SUBJECT_PATH,
    URI_SANS_PATH,
    CertificatePropertySource,
    MappingPropertySource,
    certificate_from_scope,
    forwarded_header_source,
    read_property,
)
from peer_cert_headers.projection.headers import Flow, HeaderSet, project_headers

# DER encodings of the issuerAltName and subjectAltName extension OIDs
_ISSUER_ALT_NAME_OID_DER = b"\x06\x03\x55\x1d\x12"
_SUBJECT_ALT_NAME_OID_DER = b"\x06\x03\x55\x1d\x11"

# --- Fixtures ---


def _build_certificate(
    subject: x509.Name,
    san: x509.SubjectAlternativeName | None = None,
) -> x509.Certificate:
    """Build a self-signed certificate for tests."""
    key = ec.generate_private_key(ec.SECP256R1())
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.now(UTC))
        .not_valid_after(datetime.now(UTC) + timedelta(days=1))
    )
    if san is not None:
        builder = builder.add_extension(san, critical=False)
    return builder.sign(key, hashes.SHA256())


@pytest.fixture
def peer_certificate() -> x509.Certificate:
    """Peer certificate with a full subject and every SAN type."""
    subject = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Acme"),
        x509.NameAttribute(NameOID.COMMON_NAME, "Alice"),
        x509.NameAttribute(NameOID.EMAIL_ADDRESS, "alice@example.com"),
    ])
    san = x509.SubjectAlternativeName([
        x509.DNSName("alice.example.com"),
        x509.DNSName("www.example.com"),
        x509.IPAddress(ipaddress.ip_address("10.0.0.1")),
        x509.RFC822Name("alice@example.com"),
        x509.UniformResourceIdentifier("spiffe://example.com/alice"),
    ])
    return _build_certificate(subject, san)


@pytest.fixture
def bare_certificate() -> x509.Certificate:
    """Peer certificate without a SAN extension."""
    return _build_certificate(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "device-01")]))


@pytest.fixture
def duplicate_san_certificate() -> x509.Certificate:
    """Peer certificate carrying two subjectAltName extensions.

    Built with a SAN and an issuerAltName, then the issuerAltName OID is
    rewritten in the DER. The signature no longer verifies, which loading
    does not check.
    """
    subject = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "Alice"),
        x509.NameAttribute(NameOID.EMAIL_ADDRESS, "alice@example.com"),
    ])
    key = ec.generate_private_key(ec.SECP256R1())
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.now(UTC))
        .not_valid_after(datetime.now(UTC) + timedelta(days=1))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName("alice.example.com")]), critical=False)
        .add_extension(x509.IssuerAlternativeName([x509.DNSName("ca.example.com")]), critical=False)
        .sign(key, hashes.SHA256())
    )
    der = cert.public_bytes(Encoding.DER)
    assert der.count(_ISSUER_ALT_NAME_OID_DER) == 1
    return x509.load_der_x509_certificate(der.replace(_ISSUER_ALT_NAME_OID_DER, _SUBJECT_ALT_NAME_OID_DER))


class _FailingSource:
    """Source that cannot read anything."""

    def read_property(self, path: tuple[str, ...]) -> str | None:
        raise PropertyReadError.unreadable(path=path, reason="boom")


# --- read_property Tests ---


class TestReadProperty:
    """Tests for the fail-soft property reader."""

    def test_bytes_decoded(self) -> None:
        """Byte values are decoded as UTF-8."""
        source = MappingPropertySource({SUBJECT_PATH: "CN=Zoë".encode()})

        assert read_property(source, SUBJECT_PATH) == "CN=Zoë"

    def test_invalid_utf8_replaced(self) -> None:
        """Invalid UTF-8 is replaced rather than raising."""
        source = MappingPropertySource({SUBJECT_PATH: b"CN=\xff"})

        assert read_property(source, SUBJECT_PATH) == "CN=\ufffd"

    def test_str_passthrough(self) -> None:
        """String values are returned unchanged."""
        source = MappingPropertySource({SUBJECT_PATH: "CN=Alice"})

        assert read_property(source, list(SUBJECT_PATH)) == "CN=Alice"

    def test_absent_is_empty(self) -> None:
        """Missing properties read as empty string."""
        assert read_property(MappingPropertySource({}), SUBJECT_PATH) == ""

    def test_read_error_is_empty_and_logged(self) -> None:
        """Read errors are logged and read as empty string."""
        with patch("peer_cert_headers.host.properties.log_property_unreadable") as mock_log:
            value = read_property(_FailingSource(), SUBJECT_PATH)

        assert value == ""
        mock_log.assert_called_once()
        assert mock_log.call_args.kwargs["path"] == SUBJECT_PATH


# --- CertificatePropertySource Tests ---


class TestCertificatePropertySource:
    """Tests for rendering a certificate as connection properties."""

    def test_subject_rendered_rfc4514(self, peer_certificate: x509.Certificate) -> None:
        """Subject is rendered most-specific first with emailAddress."""
        source = CertificatePropertySource(peer_certificate)

        assert source.read_property(SUBJECT_PATH) == "emailAddress=alice@example.com,CN=Alice,O=Acme,C=US"

    def test_sans_rendered(self, peer_certificate: x509.Certificate) -> None:
        """Each SAN type is comma-joined."""
        source = CertificatePropertySource(peer_certificate)

        assert source.read_property(DNS_SANS_PATH) == "alice.example.com,www.example.com"
        assert source.read_property(IP_SANS_PATH) == "10.0.0.1"
        assert source.read_property(EMAIL_SANS_PATH) == "alice@example.com"
        assert source.read_property(URI_SANS_PATH) == "spiffe://example.com/alice"

    def test_no_san_extension(self, bare_certificate: x509.Certificate) -> None:
        """Certificates without SANs report them as absent."""
        source = CertificatePropertySource(bare_certificate)

        assert source.read_property(DNS_SANS_PATH) is None
        assert source.read_property(SUBJECT_PATH) == "CN=device-01"

    def test_unknown_path(self, peer_certificate: x509.Certificate) -> None:
        """Unknown properties are absent."""
        source = CertificatePropertySource(peer_certificate)

        assert source.read_property(("connection", "serial_peer_certificate")) is None

    def test_duplicate_san_extension_unreadable(self, duplicate_san_certificate: x509.Certificate) -> None:
        """Duplicate SAN extensions raise a property read error."""
        source = CertificatePropertySource(duplicate_san_certificate)

        with pytest.raises(PropertyReadError) as exc_info:
            source.read_property(DNS_SANS_PATH)

        assert exc_info.value.details["property"] == "connection.dns_sans_peer_certificate"

    def test_duplicate_san_extension_projects_subject(self, duplicate_san_certificate: x509.Certificate) -> None:
        """Projection keeps the subject headers and drops unreadable SANs."""
        headers = HeaderSet()

        with patch("peer_cert_headers.host.properties.log_property_unreadable") as mock_log:
            flow = project_headers(CertificatePropertySource(duplicate_san_certificate), headers)

        assert flow is Flow.CONTINUE
        assert headers.as_dict() == {
            "X-Peer-Certificate-Present": "true",
            "X-Peer-Name": "Alice",
            "X-Peer-Email": "alice@example.com",
        }
        assert mock_log.call_count == 4


# --- Forwarded Header Tests ---


class TestForwardedHeaderSource:
    """Tests for properties forwarded by a TLS-terminating proxy."""

    def test_default_header_names(self) -> None:
        """Default forwarded header names map to connection properties."""
        headers = [
            (b"x-ssl-client-s-dn", b"CN=Alice,emailAddress=a@b.com"),
            (b"x-ssl-client-san-dns", b"a.com,b.com"),
            (b"x-ssl-client-san-ip", b"10.0.0.1"),
            (b"host", b"example.com"),
        ]

        source = forwarded_header_source(headers, ForwardedHeadersConfig())

        assert source.read_property(SUBJECT_PATH) == b"CN=Alice,emailAddress=a@b.com"
        assert source.read_property(DNS_SANS_PATH) == b"a.com,b.com"
        assert source.read_property(IP_SANS_PATH) == b"10.0.0.1"
        assert source.read_property(URI_SANS_PATH) is None

    def test_custom_header_names(self) -> None:
        """Configured header names are matched case-insensitively."""
        config = ForwardedHeadersConfig(subject="SSL-Client-Subject")
        headers = [(b"ssl-client-subject", b"CN=Bob")]

        source = forwarded_header_source(headers, config)

        assert source.read_property(SUBJECT_PATH) == b"CN=Bob"

    def test_first_header_wins(self) -> None:
        """Repeated forwarded headers keep the first value."""
        headers = [
            (b"x-ssl-client-s-dn", b"CN=Proxy"),
            (b"x-ssl-client-s-dn", b"CN=Injected"),
        ]

        source = forwarded_header_source(headers, ForwardedHeadersConfig())

        assert source.read_property(SUBJECT_PATH) == b"CN=Proxy"


# --- Scope Extraction Tests ---


class TestCertificateFromScope:
    """Tests for locating the peer certificate in an ASGI scope."""

    def test_certificate_in_state(self, peer_certificate: x509.Certificate) -> None:
        """A certificate placed in request state is used."""
        scope = {"type": "http", "state": {"client_cert": peer_certificate}}

        assert certificate_from_scope(scope) is peer_certificate

    def test_certificate_in_tls_extension(self, peer_certificate: x509.Certificate) -> None:
        """The first PEM of the TLS extension chain is loaded."""
        pem = peer_certificate.public_bytes(Encoding.PEM).decode("ascii")
        scope = {"type": "http", "extensions": {"tls": {"client_cert_chain": [pem]}}}

        assert certificate_from_scope(scope) == peer_certificate

    def test_no_certificate(self) -> None:
        """A scope without certificate information yields None."""
        assert certificate_from_scope({"type": "http", "extensions": {"tls": {}}}) is None
        assert certificate_from_scope({"type": "http"}) is None

    def test_unloadable_pem(self) -> None:
        """A malformed PEM is logged and treated as no certificate."""
        scope = {"type": "http", "extensions": {"tls": {"client_cert_chain": ["not a pem"]}}}

        with patch("peer_cert_headers.host.properties.log_certificate_unloadable") as mock_log:
            result = certificate_from_scope(scope)

        assert result is None
        mock_log.assert_called_once()
