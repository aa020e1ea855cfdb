"""
Credential shape validation for new tenant connections.

Both the connection test and the add-tenant path call
validate_credential_shape before touching certificate bytes or the network,
so the two can never disagree on what input is acceptable.
"""

from typing import Optional

from .exceptions import ConflictingCredentialsError, MissingFieldsError
from .models import CredentialChannel


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_credential_shape(
    name: Optional[str],
    application_id: Optional[str],
    secret_text: Optional[str],
    certificate_present: bool,
    certificate_has_content: bool,
) -> CredentialChannel:
    """
    Check required fields and the secret/certificate mutual exclusion.

    Args:
        name: Tenant domain name
        application_id: Client id of the registered application
        secret_text: Client secret as typed by the operator
        certificate_present: Whether a certificate file was uploaded
        certificate_has_content: Whether the uploaded file is non-empty

    Returns:
        The single usable credential channel

    Raises:
        MissingFieldsError: If the name or application id is blank
        ConflictingCredentialsError: If both or neither channel is usable
    """
    missing = [
        field_name
        for field_name, value in (("name", name), ("application_id", application_id))
        if _is_blank(value)
    ]
    if missing:
        raise MissingFieldsError(missing_fields=missing)

    uses_certificate = certificate_present and certificate_has_content
    uses_secret = not _is_blank(secret_text)
    if uses_certificate == uses_secret:
        raise ConflictingCredentialsError(
            context={"secret": uses_secret, "certificate": uses_certificate}
        )

    return CredentialChannel.CERTIFICATE if uses_certificate else CredentialChannel.SECRET
