"""FastAPI application entry point for Peer Certificate Headers.

Initializes configuration, audit logging, the header middleware, and routes.
Run with: uvicorn peer_cert_headers.main:app --reload
"""

from __future__ import annotations

import ssl
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from peer_cert_headers import __version__
from peer_cert_headers.audit.logger import (
    configure_audit_logger,
    log_error,
    log_shutdown,
    log_startup,
)
from peer_cert_headers.config import load_config_from_env
from peer_cert_headers.exceptions import ConfigurationError
from peer_cert_headers.host.middleware import PeerCertificateHeadersMiddleware
from peer_cert_headers.routes.peer import router

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from peer_cert_headers.config import Settings, TLSConfig


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided,
            loads from environment or defaults.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = load_config_from_env()

    configure_audit_logger(settings.audit)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events."""
        log_startup(
            version=__version__,
            host=settings.server.host,
            port=settings.server.port,
        )
        yield
        log_shutdown()

    app = FastAPI(
        title="Peer Certificate Headers",
        description="Projects mTLS peer certificate identity onto X-Peer-* request headers",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(PeerCertificateHeadersMiddleware, config=settings.filter)
    app.include_router(router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint for monitoring."""
        return {"status": "healthy", "version": __version__}

    return app


def tls_options(tls: TLSConfig) -> dict[str, str | int]:
    """Build uvicorn TLS keyword arguments.

    Args:
        tls: TLS configuration.

    Returns:
        Keyword arguments for uvicorn.run.

    Raises:
        ConfigurationError: If client certificates are required without a CA file.
    """
    options: dict[str, str | int] = {
        "ssl_certfile": str(tls.cert_file),
        "ssl_keyfile": str(tls.key_file),
    }

    if tls.ca_file is None:
        if tls.require_client_cert:
            raise ConfigurationError.missing_required(field="server.tls.ca_file")
        return options

    options["ssl_ca_certs"] = str(tls.ca_file)
    options["ssl_cert_reqs"] = ssl.CERT_REQUIRED if tls.require_client_cert else ssl.CERT_OPTIONAL
    return options


def main() -> None:
    """Run the server using uvicorn."""
    settings = load_config_from_env()

    uvicorn_config: dict[str, str | int | bool | None] = {
        "app": "peer_cert_headers.main:app",
        "host": settings.server.host,
        "port": settings.server.port,
        "reload": False,
    }

    if settings.server.tls:
        try:
            uvicorn_config.update(tls_options(settings.server.tls))
        except ConfigurationError as e:
            log_error(error=e, context="startup")
            raise

    uvicorn.run(**uvicorn_config)


# Default app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    main()
