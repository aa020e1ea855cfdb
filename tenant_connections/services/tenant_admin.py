"""
Tenant connection administration workflow.

Turns what an operator typed into a tenant connection: validates the
credential shape, imports the certificate when one was uploaded, and then
either tests the connection or adds the tenant. Testing and adding share
prepare_credential, so a credential that passes the test is exactly a
credential that can be saved, and vice versa.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from ..certificates import import_certificate
from ..connection_tester import (
    ConnectionTester,
    ConnectionTestResult,
    ConnectionTestStatus,
    Credential,
)
from ..exceptions import ConflictingCredentialsError, TenantConnectionsError
from ..models import CredentialChannel, TenantRecord
from ..validation import validate_credential_shape
from .tenant_registry import TenantRegistry

logger = logging.getLogger(__name__)

DEFAULT_TENANT_NAME_HINT = "TENANTNAME.onMicrosoft.com"


@dataclass
class TenantConnectionRequest:
    """
    Operator input for a new tenant connection.

    Attributes:
        name: Tenant domain name
        application_id: Client id of the registered application
        client_secret: Client secret, empty when a certificate is uploaded
        certificate_bytes: Uploaded PKCS#12 content, None when no file was uploaded
        certificate_file_name: File name the certificate was uploaded as
        certificate_password: Password protecting the PKCS#12 container
        exclude_members: Only return guest users from this tenant
    """

    name: str
    application_id: str
    client_secret: str = ""
    certificate_bytes: Optional[bytes] = None
    certificate_file_name: str = ""
    certificate_password: str = ""
    exclude_members: bool = False

    def __repr__(self) -> str:
        return (
            f"TenantConnectionRequest(name={self.name!r}, application_id={self.application_id!r}, "
            f"secret={'set' if self.client_secret else 'unset'}, "
            f"certificate_file_name={self.certificate_file_name!r})"
        )


class TenantAdminService:
    """Operator-facing operations on the tenant connections of one configuration."""

    def __init__(self, registry: TenantRegistry, tester: ConnectionTester) -> None:
        self.registry = registry
        self.tester = tester

    def prepare_credential(self, request: TenantConnectionRequest) -> Credential:
        """
        Validate the request and return the credential it authenticates with.

        Raises:
            MissingFieldsError: If the name or application id is blank
            ConflictingCredentialsError: If both or neither credential is supplied
            CertificateError: If the uploaded certificate cannot be imported
        """
        channel = validate_credential_shape(
            request.name,
            request.application_id,
            request.client_secret,
            certificate_present=request.certificate_bytes is not None,
            certificate_has_content=bool(request.certificate_bytes),
        )
        if channel == CredentialChannel.CERTIFICATE:
            return import_certificate(
                request.certificate_bytes,
                request.certificate_file_name,
                request.certificate_password,
            )
        return request.client_secret

    def test_connection(
        self,
        request: TenantConnectionRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> ConnectionTestResult:
        """
        Test the credentials of a request without saving anything.

        Invalid input yields an INVALID_INPUT result carrying the operator
        message and error code; no token request is made in that case.
        """
        try:
            credential = self.prepare_credential(request)
        except TenantConnectionsError as e:
            logger.info(f"Connection test for '{request.name}' rejected: {e.message}")
            return ConnectionTestResult(
                status=ConnectionTestStatus.INVALID_INPUT,
                tenant_name=request.name,
                message=e.message,
                error_text=e.message,
                error_code=e.error_code,
            )
        return self.tester.test_connection(
            request.name, request.application_id, credential, cancel_event=cancel_event
        )

    def test_tenant(
        self, tenant_identifier: str, cancel_event: Optional[threading.Event] = None
    ) -> ConnectionTestResult:
        """
        Test the credentials of a stored tenant.

        Raises:
            TenantNotFoundError: If no tenant has this identifier
            ConflictingCredentialsError: If the stored record does not have exactly one credential
        """
        tenant = self.registry.get(tenant_identifier)
        channel = tenant.credential_channel
        if channel is None:
            raise ConflictingCredentialsError(
                f"Stored tenant '{tenant.name}' does not have exactly one credential; "
                "remove it and add it again",
                context={"tenant_identifier": tenant.id},
            )
        credential: Credential = (
            tenant.client_certificate  # type: ignore[assignment]
            if channel == CredentialChannel.CERTIFICATE
            else tenant.application_secret
        )
        return self.tester.test_connection(
            tenant.name, tenant.application_id, credential, cancel_event=cancel_event
        )

    def add_tenant(self, request: TenantConnectionRequest) -> TenantRecord:
        """
        Validate the request and add it to the registry.

        Returns:
            The stored record, with its assigned identifier

        Raises:
            TenantConnectionsError: For invalid input or a failed commit
        """
        credential = self.prepare_credential(request)
        if isinstance(credential, str):
            record = TenantRecord(
                name=request.name,
                application_id=request.application_id,
                application_secret=credential,
                exclude_members=request.exclude_members,
            )
        else:
            record = TenantRecord(
                name=request.name,
                application_id=request.application_id,
                client_certificate=credential,
                exclude_members=request.exclude_members,
            )
        tenant_identifier = self.registry.add(record)
        return self.registry.get(tenant_identifier)

    def remove_tenant(self, tenant_identifier: str) -> Optional[TenantRecord]:
        """Remove a tenant; returns None when it was not registered."""
        return self.registry.remove(tenant_identifier)
