"""
Centralized timeout configuration for outbound identity provider calls.

The connection test is the only network-bound operation in tenant connection
management. Its deadline is configurable via an environment variable.

Usage:
    from tenant_connections.timeout_config import Timeouts

    tester = ConnectionTester(timeout=Timeouts.CONNECTION_TEST)

Environment Variables:
    - TENANT_CONNECTIONS_TIMEOUT_CONNECTION_TEST: Token request deadline (default: 10s)
"""

import logging
import os
from typing import Final

logger = logging.getLogger(__name__)


def _get_timeout(env_var: str, default: int) -> int:
    """Get timeout value from environment variable or use default.

    Args:
        env_var: Environment variable name
        default: Default timeout in seconds

    Returns:
        Timeout value in seconds
    """
    value = os.environ.get(env_var)
    if value is not None:
        try:
            timeout = int(value)
            if timeout <= 0:
                logger.warning(
                    f"Invalid timeout value for {env_var}: {value}. "
                    f"Must be positive. Using default: {default}s"
                )
                return default
            return timeout
        except ValueError:
            logger.warning(
                f"Invalid timeout value for {env_var}: {value}. "
                f"Must be integer. Using default: {default}s"
            )
            return default
    return default


class Timeouts:
    """Timeout constants for identity provider operations, in seconds."""

    CONNECTION_TEST: Final[int] = _get_timeout(
        "TENANT_CONNECTIONS_TIMEOUT_CONNECTION_TEST", 10
    )

    # Seconds between checks of a caller's cancellation flag
    CANCEL_POLL_INTERVAL: Final[float] = 0.05


def log_timeout_event(
    operation: str,
    timeout_value: float,
    tenant_name: str | None = None,
    level: str = "warning",
) -> None:
    """Log a timeout event with consistent formatting.

    Args:
        operation: Name of the operation that timed out
        timeout_value: Timeout value that was exceeded
        tenant_name: Optional tenant the operation targeted
        level: Log level (debug, info, warning, error)
    """
    log_func = getattr(logger, level, logger.warning)
    tenant_str = f" for tenant '{tenant_name}'" if tenant_name else ""
    log_func(
        f"Operation '{operation}'{tenant_str} timed out after {timeout_value} seconds"
    )
