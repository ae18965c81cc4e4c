"""Audit logging for peer certificate header projection.

Provides structured logging with correlation IDs so the identity attached
to each upstream request can be traced back to the connection it came from.
"""

from __future__ import annotations

import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from peer_cert_headers.exceptions import PeerCertHeadersError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from peer_cert_headers.config import AuditConfig


# Context variable for request correlation ID
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation ID for request tracing."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for current request context."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    """Clear the correlation ID after request completes."""
    _correlation_id.set("")


# Structured format for audit logs
_AUDIT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} [{level}] "
    "[{extra[correlation_id]}] <{extra[event]}> {message} | {extra}"
)


def configure_audit_logger(config: AuditConfig) -> None:
    """Configure the audit logger based on settings."""
    logger.remove()

    # Console handler for development
    logger.add(
        sys.stderr,
        level="DEBUG",
        format=_AUDIT_FORMAT,
        filter=lambda r: r["extra"].get("audit", False),
    )

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_path),
        level=config.log_level.value,
        format=_AUDIT_FORMAT,
        rotation="10 MB",
        retention="90 days",
        compression="gz",
        filter=lambda r: r["extra"].get("audit", False),
    )


def _get_audit_logger() -> Any:
    """Get logger bound with audit context."""
    return logger.bind(
        audit=True,
        correlation_id=get_correlation_id() or "-",
        event="",
    )


def log_peer_certificate_absent() -> None:
    """Log a request that arrived without a peer certificate."""
    audit = _get_audit_logger().bind(event="peer_cert_absent")
    audit.info("No peer certificate presented")


def log_peer_headers_projected(
    *,
    subject_name: str | None,
    header_names: Sequence[str],
    errors: Sequence[str],
) -> None:
    """Log the identity headers attached to a request."""
    audit = _get_audit_logger().bind(
        event="peer_headers_projected",
        peer_name=subject_name,
        headers=",".join(header_names),
        errors="; ".join(errors) or None,
    )

    if errors:
        audit.warning("Peer certificate incomplete: {}", "; ".join(errors))
    else:
        audit.info("Projected {} peer headers for {}", len(header_names), subject_name)


def log_property_unreadable(*, path: Sequence[str], reason: str) -> None:
    """Log a connection property that could not be read."""
    audit = _get_audit_logger().bind(
        event="property_unreadable",
        property=".".join(path),
        reason=reason,
    )
    audit.warning("Connection property {} unreadable, treating as empty", ".".join(path))


def log_certificate_unloadable(*, reason: str) -> None:
    """Log a peer certificate the host supplied but that could not be loaded."""
    audit = _get_audit_logger().bind(event="peer_cert_unloadable", reason=reason)
    audit.warning("Peer certificate could not be loaded: {}", reason)


def log_error(*, error: Exception, context: str) -> None:
    """Log an error with full context."""
    details = error.to_audit_dict() if isinstance(error, PeerCertHeadersError) else {}
    audit = _get_audit_logger().bind(
        event="error",
        error_type=type(error).__name__,
        error_message=str(error),
        context=context,
        **details,
    )
    audit.exception("Error during {}: {}", context, error)


def log_startup(*, version: str, host: str, port: int) -> None:
    """Log server startup."""
    audit = _get_audit_logger().bind(
        event="startup",
        version=version,
        host=host,
        port=port,
    )
    audit.info("Peer Certificate Headers v{} starting", version)


def log_shutdown() -> None:
    """Log server shutdown."""
    audit = _get_audit_logger().bind(event="shutdown")
    audit.info("Peer Certificate Headers shutting down")
