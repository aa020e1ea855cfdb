import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import colorlog
from azure.identity import AzureAuthorityHosts
from dotenv import load_dotenv

from .timeout_config import Timeouts

# Load environment variables
load_dotenv(override=True)

"""
Configuration Management for Tenant Connections

This module provides centralized configuration management with validation
and environment variable handling.
"""

DEFAULT_HOME = Path.home() / ".tenant-connections"


def _set_azure_http_log_level(log_level: str) -> None:
    """Set log levels for HTTP-related loggers to reduce noise."""
    http_loggers = [
        "azure.core.pipeline.policies.http_logging_policy",
        "azure.core.pipeline",
        "azure.identity",
        "azure",
        "msal",
        "urllib3",
        "aiohttp",
    ]
    # HTTP logging should only appear at DEBUG level
    target_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in http_loggers:
        logging.getLogger(name).setLevel(target_level)


logger = logging.getLogger(__name__)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass
class StoreConfig:
    """Configuration for the tenant configuration store."""

    path: Path = field(
        default_factory=lambda: Path(
            os.getenv(
                "TENANT_CONNECTIONS_STORE_PATH", str(DEFAULT_HOME / "configuration.json")
            )
        ).expanduser()
    )
    configuration_name: str = field(
        default_factory=lambda: os.getenv("TENANT_CONNECTIONS_CONFIGURATION_NAME", "default")
    )
    certificate_passphrase: Optional[str] = field(
        default_factory=lambda: os.getenv("TENANT_CONNECTIONS_CERTIFICATE_PASSPHRASE") or None
    )

    def __post_init__(self) -> None:
        """Validate store configuration."""
        self.path = Path(self.path)
        if not self.configuration_name or not self.configuration_name.strip():
            raise ValueError("Configuration name is required")
        if self.path.exists() and self.path.is_dir():
            raise ValueError(f"Store path must be a file, not a directory: {self.path}")


@dataclass
class AuthorityConfig:
    """Configuration for the Azure AD authority used by connection tests."""

    authority_host: str = field(
        default_factory=lambda: os.getenv(
            "AZURE_AUTHORITY_HOST", AzureAuthorityHosts.AZURE_PUBLIC_CLOUD
        )
    )
    scope: str = field(
        default_factory=lambda: os.getenv(
            "TENANT_CONNECTIONS_TOKEN_SCOPE", "https://graph.microsoft.com/.default"
        )
    )
    timeout: int = field(default_factory=lambda: Timeouts.CONNECTION_TEST)

    def __post_init__(self) -> None:
        """Validate authority configuration."""
        # azure-identity expects a bare host; tolerate a scheme in the env var
        for prefix in ("https://", "http://"):
            if self.authority_host.startswith(prefix):
                self.authority_host = self.authority_host[len(prefix):]
        self.authority_host = self.authority_host.rstrip("/")
        if not self.authority_host:
            raise ValueError("Authority host is required")
        if not self.scope:
            raise ValueError("Token scope is required")
        if self.timeout < 1:
            raise ValueError("Connection test timeout must be at least 1 second")


@dataclass
class ElevationConfig:
    """Configuration for the elevated execution context of connection tests."""

    identity: str = field(
        default_factory=lambda: os.getenv("TENANT_CONNECTIONS_ELEVATED_IDENTITY", "service")
    )
    uid: Optional[int] = field(
        default_factory=lambda: _optional_int(os.getenv("TENANT_CONNECTIONS_ELEVATED_UID"))
    )

    def __post_init__(self) -> None:
        """Validate elevation configuration."""
        if not self.identity:
            raise ValueError("Elevated identity name is required")
        if self.uid is not None and self.uid < 0:
            raise ValueError("Elevated uid must be non-negative")


@dataclass
class AuditConfig:
    """Configuration for the tenant change audit log."""

    enabled: bool = field(
        default_factory=lambda: os.getenv("TENANT_CONNECTIONS_AUDIT_ENABLED", "true").lower()
        == "true"
    )
    path: Path = field(
        default_factory=lambda: Path(
            os.getenv("TENANT_CONNECTIONS_AUDIT_LOG", str(DEFAULT_HOME / "audit.jsonl"))
        ).expanduser()
    )


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(log_color)s%(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        self.level = self.level.upper()

    def get_log_level(self) -> int:
        """Convert string log level to logging constant."""
        level_attr = getattr(logging, self.level, None)
        if level_attr is None:
            raise ValueError(f"Invalid log level: {self.level}")
        return int(level_attr)


@dataclass
class TenantConnectionsConfig:
    """Main configuration class that aggregates all configuration sections."""

    store: StoreConfig = field(default_factory=StoreConfig)
    authority: AuthorityConfig = field(default_factory=AuthorityConfig)
    elevation: ElevationConfig = field(default_factory=ElevationConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_environment(
        cls,
        store_path: Optional[str] = None,
        configuration_name: Optional[str] = None,
        timeout: Optional[int] = None,
        log_level: Optional[str] = None,
    ) -> "TenantConnectionsConfig":
        """
        Create configuration from environment variables.

        Args:
            store_path: Optional override of the configuration store path
            configuration_name: Optional override of the configuration name
            timeout: Optional override of the connection test timeout
            log_level: Optional override of the log level

        Returns:
            TenantConnectionsConfig: Configured instance
        """
        config = cls()
        if store_path is not None:
            config.store.path = Path(store_path).expanduser()
        if configuration_name is not None:
            config.store.configuration_name = configuration_name
        if timeout is not None:
            config.authority.timeout = timeout
        if log_level is not None:
            config.logging.level = log_level
        return config

    def validate_all(self) -> None:
        """Validate all configuration sections."""
        try:
            self.store.__post_init__()
            self.authority.__post_init__()
            self.elevation.__post_init__()
            self.logging.__post_init__()
            logger.debug("Configuration validation successful")
        except Exception as e:
            logger.exception(f"Configuration validation failed: {e}")
            raise

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration (without sensitive data)."""
        logger.info("=" * 60)
        logger.info("TENANT CONNECTIONS CONFIGURATION")
        logger.info("=" * 60)
        logger.info(f"Configuration: {self.store.configuration_name}")
        logger.info(f"   Store: {self.store.path}")
        logger.info(
            f"   Certificate encryption: {'on' if self.store.certificate_passphrase else 'off'}"
        )
        logger.info(f"Authority host: {self.authority.authority_host}")
        logger.info(f"   Scope: {self.authority.scope}")
        logger.info(f"   Timeout: {self.authority.timeout}s")
        logger.info(
            f"Elevated identity: {self.elevation.identity}"
            + (f" (uid {self.elevation.uid})" if self.elevation.uid is not None else "")
        )
        logger.info(f"Audit log: {self.audit.path if self.audit.enabled else 'disabled'}")
        logger.info(f"Logging Level: {self.logging.level}")
        if self.logging.file_output:
            logger.info(f"Log File: {self.logging.file_output}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "store": {
                "path": str(self.store.path),
                "configuration_name": self.store.configuration_name,
                # Don't include the certificate passphrase in serialization
                "certificate_encryption": bool(self.store.certificate_passphrase),
            },
            "authority": {
                "authority_host": self.authority.authority_host,
                "scope": self.authority.scope,
                "timeout": self.authority.timeout,
            },
            "elevation": {
                "identity": self.elevation.identity,
                "uid": self.elevation.uid,
            },
            "audit": {
                "enabled": self.audit.enabled,
                "path": str(self.audit.path),
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    _set_azure_http_log_level(config.level.upper())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.get_log_level())

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(config.format))
    root_logger.addHandler(console_handler)

    if config.file_output:
        file_handler = logging.FileHandler(config.file_output)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s:%(name)s:%(message)s"
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    logger.debug(
        f"Logging configured: level={config.level}, file={config.file_output or 'console'}"
    )


def create_config_from_env(
    store_path: Optional[str] = None,
    configuration_name: Optional[str] = None,
    timeout: Optional[int] = None,
    log_level: Optional[str] = None,
) -> TenantConnectionsConfig:
    """
    Factory function to create and validate configuration from environment.

    Raises:
        ValueError: If configuration is invalid
    """
    config = TenantConnectionsConfig.from_environment(
        store_path, configuration_name, timeout, log_level
    )
    config.validate_all()
    return config
