"""Tests for timeout configuration and handling.

This module tests the centralized timeout configuration including:
- Default timeout values
- Environment variable overrides
- Logging functions
"""

import importlib
import logging
import os
from unittest.mock import patch

import pytest

import tenant_connections.timeout_config as tc


@pytest.fixture(autouse=True)
def restore_timeouts():
    """Reload the module afterwards so other tests see the real environment."""
    yield
    importlib.reload(tc)


class TestTimeoutDefaults:
    """Test default timeout values."""

    def test_connection_test_default(self):
        with patch.dict(os.environ, {}, clear=True):
            importlib.reload(tc)

            assert tc.Timeouts.CONNECTION_TEST == 10

    def test_cancel_poll_interval_is_short(self):
        assert 0 < tc.Timeouts.CANCEL_POLL_INTERVAL < 1


class TestTimeoutEnvironmentOverrides:
    """Test environment variable overrides."""

    def test_override(self):
        with patch.dict(os.environ, {"TENANT_CONNECTIONS_TIMEOUT_CONNECTION_TEST": "25"}):
            importlib.reload(tc)

            assert tc.Timeouts.CONNECTION_TEST == 25

    @pytest.mark.parametrize("value", ["abc", "0", "-5", "1.5"])
    def test_invalid_values_fall_back_to_default(self, value, caplog):
        with patch.dict(os.environ, {"TENANT_CONNECTIONS_TIMEOUT_CONNECTION_TEST": value}):
            with caplog.at_level(logging.WARNING):
                importlib.reload(tc)

            assert tc.Timeouts.CONNECTION_TEST == 10
            assert "Invalid timeout value" in caplog.text


class TestLogTimeoutEvent:
    """Test timeout event logging."""

    def test_includes_operation_and_tenant(self, caplog):
        with caplog.at_level(logging.WARNING):
            tc.log_timeout_event("connection_test", 10, tenant_name="contoso")

        assert "Operation 'connection_test' for tenant 'contoso' timed out after 10 seconds" in caplog.text

    def test_custom_level(self, caplog):
        with caplog.at_level(logging.DEBUG):
            tc.log_timeout_event("connection_test", 5, level="debug")

        assert caplog.records[-1].levelno == logging.DEBUG
