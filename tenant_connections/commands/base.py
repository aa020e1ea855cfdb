"""Base command infrastructure and shared utilities.

This module provides common utilities used across command modules:
- CommandContext for shared command execution context
- Helpers that build the registry, tester and admin service from configuration
"""

import functools
import logging
import sys
from typing import Any, Callable, Optional

import click

from ..config_manager import TenantConnectionsConfig, create_config_from_env, setup_logging
from ..connection_tester import ConnectionTester
from ..elevation import ElevatedContext
from ..exceptions import TenantConnectionsError
from ..services.audit_log import TamperProofAuditLog
from ..services.configuration_store import JsonConfigurationStore
from ..services.tenant_admin import TenantAdminService
from ..services.tenant_registry import TenantRegistry

logger = logging.getLogger(__name__)


class CommandContext:
    """Shared context for command execution."""

    def __init__(
        self,
        ctx: click.Context,
        log_level: str = "INFO",
        store_path: Optional[str] = None,
        configuration_name: Optional[str] = None,
    ):
        self.click_ctx = ctx
        self.log_level = log_level
        self.store_path = store_path
        self.configuration_name = configuration_name
        self._config: Optional[TenantConnectionsConfig] = None
        self._registry: Optional[TenantRegistry] = None

    def get_config(self, timeout: Optional[int] = None) -> TenantConnectionsConfig:
        """Get configuration from environment and set up logging (once)."""
        if self._config is None:
            config = create_config_from_env(
                store_path=self.store_path,
                configuration_name=self.configuration_name,
                log_level=self.log_level,
            )
            setup_logging(config.logging)
            if config.logging.level == "DEBUG":
                config.log_configuration_summary()
            self._config = config
        if timeout is not None:
            self._config.authority.timeout = timeout
            self._config.validate_all()
        return self._config

    def get_registry(self) -> TenantRegistry:
        """Build the tenant registry backed by the configured JSON store."""
        if self._registry is None:
            config = self.get_config()
            store = JsonConfigurationStore(
                config.store.path,
                configuration_name=config.store.configuration_name,
                certificate_passphrase=config.store.certificate_passphrase,
            )
            audit_log = TamperProofAuditLog(config.audit.path) if config.audit.enabled else None
            self._registry = TenantRegistry(store, audit_log=audit_log)
        return self._registry

    def get_tester(self, timeout: Optional[int] = None) -> ConnectionTester:
        """Build a connection tester for the configured authority."""
        config = self.get_config(timeout)
        return ConnectionTester(
            authority_host=config.authority.authority_host,
            scope=config.authority.scope,
            timeout=config.authority.timeout,
            elevation=ElevatedContext(config.elevation.identity, config.elevation.uid),
        )

    def get_admin(self, timeout: Optional[int] = None) -> TenantAdminService:
        return TenantAdminService(self.get_registry(), self.get_tester(timeout))


def command_context(ctx: click.Context) -> CommandContext:
    """Create CommandContext from click context."""
    obj = ctx.obj or {}
    return CommandContext(
        ctx=ctx,
        log_level=obj.get("log_level", "INFO"),
        store_path=obj.get("store_path"),
        configuration_name=obj.get("configuration_name"),
    )


def exit_with_error(message: str, code: int = 1) -> None:
    """Exit with error message."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def handle_errors(f: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator mapping tenant connection, configuration and file errors to a clean exit."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except TenantConnectionsError as e:
            logger.debug(f"Command failed: {e}")
            exit_with_error(e.message)
        except ValueError as e:
            # Invalid configuration values
            exit_with_error(str(e))
        except OSError as e:
            # Audit log or certificate file not accessible
            logger.debug(f"Command failed: {e!r}")
            exit_with_error(str(e))

    return wrapper
