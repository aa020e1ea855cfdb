"""
Custom Exception Hierarchy for Tenant Connections

This module provides the exception hierarchy used across tenant connection
management. Every validation, certificate import and persistence failure maps
to exactly one class here, so callers can tell them apart without parsing
messages.
"""

from typing import Any, Dict, Optional


class TenantConnectionsError(Exception):
    """
    Base exception class for all tenant connection errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


# Credential shape exceptions
class CredentialValidationError(TenantConnectionsError):
    """Base class for operator input that fails credential validation."""

    pass


class MissingFieldsError(CredentialValidationError):
    """Raised when the tenant name or application id is missing."""

    def __init__(
        self,
        message: str = "Some mandatory fields are missing.",
        missing_fields: Optional[list[str]] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if missing_fields:
            context["missing_fields"] = missing_fields
        kwargs["context"] = context
        kwargs.setdefault("error_code", "MISSING_FIELDS")
        super().__init__(message, **kwargs)


class ConflictingCredentialsError(CredentialValidationError):
    """Raised when both or neither of secret and certificate are supplied."""

    def __init__(
        self,
        message: str = "Specify either a client secret or a client certificate, but not both.",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "CONFLICTING_CREDENTIALS")
        super().__init__(message, **kwargs)


# Certificate exceptions
class CertificateError(TenantConnectionsError):
    """Base class for certificate import errors."""

    pass


class InvalidFileNameError(CertificateError):
    """Raised when the uploaded certificate file name is malformed or illegal."""

    def __init__(
        self, message: str, file_name: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if file_name is not None:
            context["file_name"] = file_name
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_FILE_NAME")
        super().__init__(message, **kwargs)


class CertificateParseError(CertificateError):
    """Raised when the PKCS#12 container cannot be parsed."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "CERTIFICATE_PARSE_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check the certificate password and that the file is a PKCS#12 (.pfx) container",
        )
        super().__init__(message, **kwargs)


class NoPrivateKeyError(CertificateError):
    """Raised when the certificate does not carry a private key."""

    def __init__(
        self,
        message: str = "Certificate does not contain the private key.",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "NO_PRIVATE_KEY")
        kwargs.setdefault(
            "recovery_suggestion",
            "Export the certificate together with its private key",
        )
        super().__init__(message, **kwargs)


class ExportValidationError(CertificateError):
    """Raised when the private key cannot be exported back to PKCS#12."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "EXPORT_VALIDATION_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Export the certificate with its private key marked as exportable",
        )
        super().__init__(message, **kwargs)


# Registry and persistence exceptions
class PersistenceError(TenantConnectionsError):
    """Raised when the configuration store fails to load or commit."""

    def __init__(
        self, message: str, configuration_name: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if configuration_name:
            context["configuration_name"] = configuration_name
        kwargs["context"] = context
        kwargs.setdefault("error_code", "PERSISTENCE_FAILED")
        super().__init__(message, **kwargs)


class ConcurrentModificationError(PersistenceError):
    """Raised when the persisted configuration changed since it was last read."""

    def __init__(
        self,
        message: str,
        expected_revision: Optional[int] = None,
        actual_revision: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if expected_revision is not None:
            context["expected_revision"] = expected_revision
        if actual_revision is not None:
            context["actual_revision"] = actual_revision
        kwargs["context"] = context
        kwargs.setdefault("error_code", "CONCURRENT_MODIFICATION")
        kwargs.setdefault(
            "recovery_suggestion",
            "Reload the tenant list and retry the operation",
        )
        super().__init__(message, **kwargs)


class TenantNotFoundError(TenantConnectionsError):
    """Raised when a tenant identifier is not present in the registry."""

    def __init__(
        self, message: str, tenant_identifier: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if tenant_identifier:
            context["tenant_identifier"] = tenant_identifier
        kwargs["context"] = context
        kwargs.setdefault("error_code", "TENANT_NOT_FOUND")
        super().__init__(message, **kwargs)


def wrap_storage_exception(
    exc: Exception,
    operation: str,
    configuration_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> PersistenceError:
    """
    Wrap a low-level storage exception in a PersistenceError.

    Args:
        exc: The original exception
        operation: Storage operation that failed (load, commit, delete)
        configuration_name: Name of the configuration being accessed
        context: Optional context information

    Returns:
        PersistenceError: Wrapped exception with enhanced context
    """
    if isinstance(exc, PersistenceError):
        return exc
    context = dict(context or {})
    context["operation"] = operation
    return PersistenceError(
        f"Failed to {operation} tenant configuration: {exc}",
        configuration_name=configuration_name,
        context=context,
        cause=exc,
    )
