"""
Tenant Connection Data Model

This module defines the records persisted for each Azure AD tenant the claims
provider can authenticate against, and the imported client certificate value
that one of them may carry instead of a client secret.
"""

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

logger = logging.getLogger(__name__)


class CredentialChannel(Enum):
    """
    The credential a tenant connection authenticates with.

    SECRET: Shared client secret submitted directly in the token request
    CERTIFICATE: Client assertion signed with a certificate's private key
    """

    SECRET = "secret"
    CERTIFICATE = "certificate"


@dataclass(frozen=True)
class ImportedCertificate:
    """
    A client certificate together with its exportable private key.

    Attributes:
        certificate: Leaf x509 certificate registered on the application
        private_key: Private key matching the certificate
        file_name: Bare file name the certificate was uploaded as
        additional_certificates: Chain certificates bundled in the container
    """

    certificate: x509.Certificate
    private_key: PrivateKeyTypes
    file_name: str = ""
    additional_certificates: Tuple[x509.Certificate, ...] = ()

    @property
    def thumbprint(self) -> str:
        """SHA-1 thumbprint, upper-case hex, as shown in the Azure portal."""
        return self.certificate.fingerprint(hashes.SHA1()).hex().upper()  # noqa: S303

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def not_valid_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    def to_pem(self) -> bytes:
        """Return the private key followed by the certificate, PEM encoded."""
        key_pem = self.private_key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.PKCS8,
            encryption_algorithm=NoEncryption(),
        )
        return key_pem + self.certificate.public_bytes(Encoding.PEM)

    def to_pkcs12(self, passphrase: Optional[bytes] = None) -> bytes:
        """Serialize to a PKCS#12 container, encrypted when a passphrase is given."""
        encryption = BestAvailableEncryption(passphrase) if passphrase else NoEncryption()
        return pkcs12.serialize_key_and_certificates(
            name=self.file_name.encode("utf-8") or None,
            key=self.private_key,  # type: ignore[arg-type]
            cert=self.certificate,
            cas=list(self.additional_certificates) or None,
            encryption_algorithm=encryption,
        )

    @classmethod
    def from_pkcs12(
        cls, data: bytes, passphrase: Optional[bytes], file_name: str = ""
    ) -> "ImportedCertificate":
        """
        Load a certificate previously written with to_pkcs12.

        Raises:
            ValueError: If the container cannot be read or lacks a key or certificate
        """
        private_key, certificate, additional = pkcs12.load_key_and_certificates(
            data, passphrase
        )
        if private_key is None or certificate is None:
            raise ValueError("PKCS#12 container must hold a certificate and its private key")
        return cls(
            certificate=certificate,
            private_key=private_key,
            file_name=file_name,
            additional_certificates=tuple(additional),
        )


@dataclass(frozen=True)
class TenantRecord:
    """
    Connection settings for a single Azure AD tenant.

    Attributes:
        name: Tenant domain name, e.g. contoso.onmicrosoft.com
        application_id: Client id of the registered application
        application_secret: Client secret, when authenticating with a secret
        client_certificate: Client certificate, when authenticating with a certificate
        exclude_members: Only return guest users from this tenant
        id: Identifier assigned by the registry when the record is added
    """

    name: str
    application_id: str
    application_secret: Optional[str] = None
    client_certificate: Optional[ImportedCertificate] = None
    exclude_members: bool = False
    id: str = ""

    @property
    def has_secret(self) -> bool:
        return bool(self.application_secret and self.application_secret.strip())

    @property
    def has_certificate(self) -> bool:
        return self.client_certificate is not None

    @property
    def credential_channel(self) -> Optional[CredentialChannel]:
        """
        The single credential this record authenticates with.

        Returns None when the record holds both or neither credential. Such
        records can only come from legacy or hand-edited state, since the
        registry refuses them on add.
        """
        if self.has_secret == self.has_certificate:
            return None
        return CredentialChannel.SECRET if self.has_secret else CredentialChannel.CERTIFICATE

    def mask_secret(self) -> str:
        """Return a safe representation for logging."""
        channel = self.credential_channel
        return (
            f"TenantRecord(id={self.id}, name={self.name}, "
            f"application_id={self.application_id}, "
            f"credential={channel.value if channel else 'invalid'})"
        )

    def to_dict(self, certificate_passphrase: Optional[bytes] = None) -> Dict[str, Any]:
        """Convert record to dictionary for serialization."""
        certificate_data = None
        certificate_file_name = None
        if self.client_certificate is not None:
            certificate_data = base64.b64encode(
                self.client_certificate.to_pkcs12(certificate_passphrase)
            ).decode("ascii")
            certificate_file_name = self.client_certificate.file_name
        return {
            "id": self.id,
            "name": self.name,
            "application_id": self.application_id,
            "application_secret": self.application_secret or None,
            "client_certificate": certificate_data,
            "certificate_file_name": certificate_file_name,
            "exclude_members": self.exclude_members,
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], certificate_passphrase: Optional[bytes] = None
    ) -> "TenantRecord":
        """Create record from dictionary."""
        certificate = None
        if data.get("client_certificate"):
            certificate = ImportedCertificate.from_pkcs12(
                base64.b64decode(data["client_certificate"]),
                certificate_passphrase,
                file_name=data.get("certificate_file_name") or "",
            )
        return cls(
            id=data["id"],
            name=data["name"],
            application_id=data["application_id"],
            application_secret=data.get("application_secret"),
            client_certificate=certificate,
            exclude_members=bool(data.get("exclude_members", False)),
        )
