"""Tests for the tenant connections exception hierarchy."""

from tenant_connections.exceptions import (
    CertificateError,
    ConcurrentModificationError,
    InvalidFileNameError,
    NoPrivateKeyError,
    PersistenceError,
    TenantConnectionsError,
    TenantNotFoundError,
    wrap_storage_exception,
)


class TestTenantConnectionsError:
    def test_str_includes_code_context_and_suggestion(self):
        error = TenantConnectionsError(
            "Something failed",
            error_code="E1",
            context={"tenant": "contoso"},
            recovery_suggestion="Retry",
        )

        text = str(error)
        assert text.startswith("[E1] Something failed")
        assert "tenant=contoso" in text
        assert "(suggestion: Retry)" in text

    def test_to_dict(self):
        cause = OSError("disk full")
        error = PersistenceError("Commit failed", configuration_name="default", cause=cause)

        data = error.to_dict()
        assert data["error_type"] == "PersistenceError"
        assert data["error_code"] == "PERSISTENCE_FAILED"
        assert data["context"] == {"configuration_name": "default"}
        assert data["cause"] == "disk full"

    def test_defaults(self):
        assert NoPrivateKeyError().message == "Certificate does not contain the private key."
        assert isinstance(InvalidFileNameError("bad", file_name="a:b"), CertificateError)
        assert TenantNotFoundError("x", tenant_identifier="id-1").context == {
            "tenant_identifier": "id-1"
        }

    def test_concurrent_modification_context(self):
        error = ConcurrentModificationError(
            "changed", expected_revision=2, actual_revision=3, configuration_name="default"
        )

        assert isinstance(error, PersistenceError)
        assert error.context == {
            "expected_revision": 2,
            "actual_revision": 3,
            "configuration_name": "default",
        }


class TestWrapStorageException:
    def test_wraps_low_level_error(self):
        cause = OSError("permission denied")

        wrapped = wrap_storage_exception(cause, "commit", "default", {"path": "/tmp/x"})

        assert isinstance(wrapped, PersistenceError)
        assert wrapped.cause is cause
        assert wrapped.context["operation"] == "commit"
        assert wrapped.context["path"] == "/tmp/x"
        assert "permission denied" in wrapped.message

    def test_passes_persistence_errors_through(self):
        original = ConcurrentModificationError("changed")

        assert wrap_storage_exception(original, "commit") is original
