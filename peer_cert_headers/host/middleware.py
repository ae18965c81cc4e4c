"""ASGI middleware that attaches peer certificate headers to each request.

Uses raw ASGI (no BaseHTTPMiddleware) so streaming bodies and background
tasks of the wrapped application are unaffected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from peer_cert_headers.audit.logger import clear_correlation_id, set_correlation_id
from peer_cert_headers.config import FilterConfig, PropertySourceMode
from peer_cert_headers.host.properties import (
    CertificatePropertySource,
    MappingPropertySource,
    certificate_from_scope,
    forwarded_header_source,
)
from peer_cert_headers.projection.headers import HEADER_PREFIX, HeaderSet, project_headers

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, MutableMapping

    from peer_cert_headers.host.properties import PropertySource

    Scope = MutableMapping[str, Any]
    ASGIApp = Callable[[Scope, Callable[..., Awaitable[Any]], Callable[..., Awaitable[Any]]], Awaitable[None]]

REQUEST_ID_HEADER = b"x-request-id"

_PEER_PREFIX = HEADER_PREFIX.lower().encode()


class PeerCertificateHeadersMiddleware:
    """Project the peer certificate onto X-Peer-* request headers."""

    def __init__(self, app: ASGIApp, config: FilterConfig | None = None) -> None:
        """Initialize middleware.

        Args:
            app: Downstream ASGI application.
            config: Filter configuration, defaults if not provided.
        """
        self.app = app
        self.config = config or FilterConfig()

    async def __call__(self, scope: Scope, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        set_correlation_id(_get_header(scope, REQUEST_ID_HEADER))
        try:
            scope = dict(scope)
            headers = list(scope.get("headers", []))
            if self.config.strip_inbound_peer_headers:
                headers = [(k, v) for k, v in headers if not k.lower().startswith(_PEER_PREFIX)]

            header_set = HeaderSet()
            project_headers(self._property_source(scope, headers), header_set)

            scope["headers"] = _apply_headers(headers, header_set)
            await self.app(scope, receive, send)
        finally:
            clear_correlation_id()

    def _property_source(
        self,
        scope: Scope,
        headers: list[tuple[bytes, bytes]],
    ) -> PropertySource:
        """Build the property source for this request."""
        if self.config.source == PropertySourceMode.FORWARDED_HEADERS:
            return forwarded_header_source(headers, self.config.forwarded_headers)

        certificate = certificate_from_scope(scope)
        if certificate is None:
            return MappingPropertySource({})
        return CertificatePropertySource(certificate)


def _get_header(scope: Scope, name: bytes) -> str | None:
    """Return first header value for name (case-insensitive)."""
    for k, v in scope.get("headers", []):
        if k.lower() == name:
            return v.decode("utf-8", errors="replace")
    return None


def _apply_headers(
    headers: list[tuple[bytes, bytes]],
    header_set: HeaderSet,
) -> list[tuple[bytes, bytes]]:
    """Write projected headers over the request headers.

    Header values are passed through as UTF-8 bytes without escaping.
    """
    replaced = {name.lower().encode() for name in header_set.names()}
    result = [(k, v) for k, v in headers if k.lower() not in replaced]
    result.extend((name.lower().encode(), value.encode("utf-8")) for name, value in header_set)
    return result
