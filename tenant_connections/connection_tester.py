"""
Connection Tester Module

This module performs a live OAuth2 client-credentials token acquisition
against a tenant's Azure AD authority, to prove that the application id and
credential an operator entered actually work before they are saved.

The token request runs inside the elevated execution context (the private key
of a client certificate may not be usable by the interactive caller) and is
bounded by an explicit, cancellable deadline.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import AzureAuthorityHosts
from azure.identity.aio import CertificateCredential, ClientSecretCredential

from .elevation import ElevatedContext
from .exceptions import ConflictingCredentialsError
from .models import ImportedCertificate
from .timeout_config import Timeouts, log_timeout_event

logger = logging.getLogger(__name__)

AUTHORITY_URI_TEMPLATE = "https://{authority_host}/{tenant}"
DEFAULT_SCOPE = "https://graph.microsoft.com/.default"

TEXT_CONNECTION_SUCCESSFUL = "Connection successful."
TEXT_ERROR_TEST_CONNECTION = "Unable to get access token for tenant '{0}': {1}"

Credential = Union[str, ImportedCertificate]


class ConnectionTestStatus(Enum):
    """
    Outcome of a connection test.

    SUCCESS: An access token was issued
    AUTH_SERVICE_FAILURE: The identity provider rejected the request
    GENERIC_FAILURE: Anything else (network, TLS, timeout, local error)
    INVALID_INPUT: The request was rejected locally; no token was requested
    """

    SUCCESS = "success"
    AUTH_SERVICE_FAILURE = "auth_service_failure"
    GENERIC_FAILURE = "generic_failure"
    INVALID_INPUT = "invalid_input"


@dataclass
class ConnectionTestResult:
    """
    Result of a connection test, ready to show to an operator.

    Attributes:
        status: Classified outcome
        tenant_name: Tenant the test targeted
        message: Operator-facing message
        error_text: Raw error text from the provider or exception, if any
        authority: Tenant-scoped authority URL used for the request
        elapsed_seconds: Wall-clock duration of the test
        error_code: Error code of the rejected input, for INVALID_INPUT results
    """

    status: ConnectionTestStatus
    tenant_name: str
    message: str
    error_text: Optional[str] = None
    authority: str = ""
    elapsed_seconds: float = 0.0
    error_code: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ConnectionTestStatus.SUCCESS

    @classmethod
    def failure(
        cls,
        status: ConnectionTestStatus,
        tenant_name: str,
        error_text: str,
        **kwargs,
    ) -> "ConnectionTestResult":
        return cls(
            status=status,
            tenant_name=tenant_name,
            message=TEXT_ERROR_TEST_CONNECTION.format(tenant_name, error_text),
            error_text=error_text,
            **kwargs,
        )


def build_authority(
    tenant_name: str, authority_host: str = AzureAuthorityHosts.AZURE_PUBLIC_CLOUD
) -> str:
    """Return the tenant-scoped authority URL for a tenant."""
    return AUTHORITY_URI_TEMPLATE.format(authority_host=authority_host, tenant=tenant_name)


def _check_credential(credential: Credential) -> None:
    if isinstance(credential, ImportedCertificate):
        return
    if isinstance(credential, str) and credential.strip():
        return
    raise ConflictingCredentialsError(
        "A connection test needs either a client secret or a client certificate."
    )


class ConnectionTester:
    """
    Tests tenant credentials by requesting an app-only access token.

    Attributes:
        authority_host: Azure AD authority host, without scheme
        scope: Scope requested in the token request
        timeout: Deadline for the whole test, in seconds
        elevation: Context the credential preparation and token request run in
    """

    def __init__(
        self,
        authority_host: str = AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
        scope: str = DEFAULT_SCOPE,
        timeout: float = Timeouts.CONNECTION_TEST,
        elevation: Optional[ElevatedContext] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("Connection test timeout must be positive")
        self.authority_host = authority_host
        self.scope = scope
        self.timeout = timeout
        self.elevation = elevation or ElevatedContext()

    def test_connection(
        self,
        tenant_name: str,
        application_id: str,
        credential: Credential,
        cancel_event: Optional[threading.Event] = None,
    ) -> ConnectionTestResult:
        """
        Run a connection test and block until it has a definitive outcome.

        Must not be called from a running event loop; use
        test_connection_async there.

        Args:
            tenant_name: Tenant domain name or id
            application_id: Client id of the registered application
            credential: Client secret or imported client certificate
            cancel_event: Optional event the caller sets to abandon the test

        Returns:
            ConnectionTestResult

        Raises:
            ConflictingCredentialsError: If credential is neither a secret nor a certificate
        """
        _check_credential(credential)
        return asyncio.run(
            self.test_connection_async(
                tenant_name, application_id, credential, cancel_event=cancel_event
            )
        )

    async def test_connection_async(
        self,
        tenant_name: str,
        application_id: str,
        credential: Credential,
        cancel_event: Optional[threading.Event] = None,
    ) -> ConnectionTestResult:
        """Async form of test_connection; cancelling the awaiting task abandons the request."""
        _check_credential(credential)
        authority = build_authority(tenant_name, self.authority_host)
        channel = "certificate" if isinstance(credential, ImportedCertificate) else "secret"
        logger.info(
            f"Testing connection to tenant '{tenant_name}' via {authority} "
            f"(application {application_id}, {channel} credential)"
        )

        started = time.monotonic()
        token_task = asyncio.ensure_future(
            self._acquire_token(tenant_name, application_id, credential)
        )
        pending = {token_task}
        cancel_task: Optional[asyncio.Future] = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(self._wait_for_cancel(cancel_event))
            pending.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                pending, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in pending:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        elapsed = time.monotonic() - started
        details = {"authority": authority, "elapsed_seconds": elapsed}

        if token_task in done:
            return self._classify(tenant_name, token_task.exception(), details)

        if cancel_task is not None and cancel_task in done:
            logger.warning(f"Connection test for tenant '{tenant_name}' was cancelled")
            return ConnectionTestResult.failure(
                ConnectionTestStatus.GENERIC_FAILURE,
                tenant_name,
                "The connection test was cancelled.",
                **details,
            )

        log_timeout_event("connection_test", self.timeout, tenant_name=tenant_name)
        return ConnectionTestResult.failure(
            ConnectionTestStatus.GENERIC_FAILURE,
            tenant_name,
            f"No response from the identity provider within {self.timeout} seconds.",
            **details,
        )

    def _classify(
        self, tenant_name: str, error: Optional[BaseException], details: dict
    ) -> ConnectionTestResult:
        if error is None:
            logger.info(
                f"Connection to tenant '{tenant_name}' succeeded in {details['elapsed_seconds']:.2f}s"
            )
            return ConnectionTestResult(
                status=ConnectionTestStatus.SUCCESS,
                tenant_name=tenant_name,
                message=TEXT_CONNECTION_SUCCESSFUL,
                **details,
            )

        if isinstance(error, ClientAuthenticationError):
            error_text = error.message or str(error)
            logger.warning(
                f"Identity provider rejected credentials for tenant '{tenant_name}': {error_text}"
            )
            return ConnectionTestResult.failure(
                ConnectionTestStatus.AUTH_SERVICE_FAILURE, tenant_name, error_text, **details
            )

        error_text = str(error) or error.__class__.__name__
        logger.error(
            f"Connection test for tenant '{tenant_name}' failed with "
            f"{error.__class__.__name__}: {error_text}"
        )
        return ConnectionTestResult.failure(
            ConnectionTestStatus.GENERIC_FAILURE, tenant_name, error_text, **details
        )

    async def _acquire_token(
        self, tenant_name: str, application_id: str, credential: Credential
    ) -> None:
        with self.elevation.elevated():
            token_credential = self._build_credential(tenant_name, application_id, credential)
            async with token_credential:
                token = await token_credential.get_token(self.scope)
        if not token or not token.token:
            raise RuntimeError("Identity provider returned an empty access token")

    def _build_credential(
        self, tenant_name: str, application_id: str, credential: Credential
    ) -> Union[CertificateCredential, ClientSecretCredential]:
        if isinstance(credential, ImportedCertificate):
            logger.debug(
                f"Building client assertion credential from certificate {credential.thumbprint}"
            )
            return CertificateCredential(
                tenant_id=tenant_name,
                client_id=application_id,
                certificate_data=credential.to_pem(),
                authority=self.authority_host,
            )
        return ClientSecretCredential(
            tenant_id=tenant_name,
            client_id=application_id,
            client_secret=credential,
            authority=self.authority_host,
        )

    @staticmethod
    async def _wait_for_cancel(cancel_event: threading.Event) -> None:
        while not cancel_event.is_set():
            await asyncio.sleep(Timeouts.CANCEL_POLL_INTERVAL)
