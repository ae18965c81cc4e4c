"""Configuration management for Peer Certificate Headers.

Loads configuration from YAML file and validates with Pydantic models.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Annotated

import yaml
from pydantic import BaseModel, ConfigDict, Field

from peer_cert_headers.exceptions import ConfigurationError


class TLSConfig(BaseModel):
    """TLS configuration for server."""

    model_config = ConfigDict(frozen=True)

    cert_file: Path
    key_file: Path
    ca_file: Path | None = None
    require_client_cert: bool = False


class ServerConfig(BaseModel):
    """HTTP/S server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"  # noqa: S104 - binding to all interfaces is intentional for server
    port: Annotated[int, Field(ge=1, le=65535)] = 8443
    tls: TLSConfig | None = None


class PropertySourceMode(str, Enum):
    """Where connection properties for the peer certificate come from."""

    CERTIFICATE = "certificate"
    FORWARDED_HEADERS = "forwarded_headers"


class ForwardedHeadersConfig(BaseModel):
    """Inbound header names set by a TLS-terminating proxy in front of us."""

    model_config = ConfigDict(frozen=True)

    subject: str = "X-SSL-Client-S-DN"
    dns_sans: str = "X-SSL-Client-SAN-DNS"
    uri_sans: str = "X-SSL-Client-SAN-URI"
    ip_sans: str = "X-SSL-Client-SAN-IP"
    email_sans: str = "X-SSL-Client-SAN-Email"


class FilterConfig(BaseModel):
    """Peer certificate header filter configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Carried for compatibility with existing policy definitions; not consulted.
    string_property: str = Field(default="", alias="stringProperty")
    source: PropertySourceMode = PropertySourceMode.CERTIFICATE
    forwarded_headers: ForwardedHeadersConfig = ForwardedHeadersConfig()
    strip_inbound_peer_headers: bool = True


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class AuditConfig(BaseModel):
    """Audit logging configuration."""

    model_config = ConfigDict(frozen=True)

    log_file: Path = Path("./logs/audit.log")
    log_level: LogLevel = LogLevel.INFO


class Settings(BaseModel):
    """Root configuration model for Peer Certificate Headers."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig = ServerConfig()
    filter: FilterConfig = FilterConfig()
    audit: AuditConfig = AuditConfig()


def load_config(config_path: Path | str) -> Settings:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration YAML file.

    Returns:
        Validated Settings instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If YAML parsing fails.
        ConfigurationError: If the document is not a mapping.
        pydantic.ValidationError: If configuration validation fails.
    """
    path = Path(config_path)
    with path.open("r") as f:
        data = yaml.safe_load(f)

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError.invalid_config(
            field=str(path),
            reason=f"expected a mapping at top level, got {type(data).__name__}",
        )

    return Settings.model_validate(data or {})


def load_config_from_env(
    env_var: str = "PEER_CERT_HEADERS_CONFIG",
    default_paths: list[Path] | None = None,
) -> Settings:
    """Load configuration from environment variable or default paths.

    Args:
        env_var: Environment variable name containing config path.
        default_paths: List of default paths to try if env var not set.

    Returns:
        Validated Settings instance, or defaults if no config file is found.
    """
    config_path = os.environ.get(env_var)
    if config_path:
        return load_config(config_path)

    if default_paths is None:
        default_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/etc/peer-cert-headers/config.yaml"),
        ]

    for path in default_paths:
        if path.exists():
            return load_config(path)

    return Settings()
