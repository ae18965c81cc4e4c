"""Custom exception hierarchy for Peer Certificate Headers.

All exceptions inherit from PeerCertHeadersError for consistent handling.
Header projection itself is fail-open, so these only surface from startup
and configuration, or from property sources where they are caught.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class PeerCertHeadersError(Exception):
    """Base exception for all Peer Certificate Headers errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context for audit logging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, str | int | bool | None] | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Human-readable error description.
            details: Additional context for audit logging.
        """
        super().__init__(message)
        self.message = message
        self.details = dict(details) if details else {}

    def to_audit_dict(self) -> dict[str, str | int | bool | None]:
        """Return dictionary suitable for audit logging.

        Returns:
            Dictionary with exception type, message, and details.
        """
        return {
            "exception_type": self.__class__.__name__,
            "message": self.message,
            **self.details,
        }


class PropertyReadError(PeerCertHeadersError):
    """A connection property exists but could not be read.

    Raised by property sources; the fail-soft reader converts it into an
    empty value so it never aborts header projection.
    """

    @classmethod
    def unreadable(cls, *, path: Sequence[str], reason: str) -> PropertyReadError:
        """Create exception for a property that could not be decoded.

        Args:
            path: Hierarchical property key.
            reason: Why the property could not be read.

        Returns:
            PropertyReadError instance.
        """
        joined = ".".join(path)
        return cls(
            f"Failed to read property '{joined}': {reason}",
            details={"property": joined, "reason": reason},
        )


class ConfigurationError(PeerCertHeadersError):
    """Configuration error (startup failure)."""

    @classmethod
    def invalid_config(cls, *, field: str, reason: str) -> ConfigurationError:
        """Create exception for invalid configuration.

        Args:
            field: The configuration field with the error.
            reason: Why the configuration is invalid.

        Returns:
            ConfigurationError instance.
        """
        return cls(f"Invalid configuration for '{field}': {reason}", details={"field": field, "reason": reason})

    @classmethod
    def missing_required(cls, *, field: str) -> ConfigurationError:
        """Create exception for missing required configuration.

        Args:
            field: The missing configuration field.

        Returns:
            ConfigurationError instance.
        """
        return cls(f"Missing required configuration: {field}", details={"field": field})
