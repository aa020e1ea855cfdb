"""Shared fixtures for tenant connection tests.

Certificates are generated on the fly with cryptography, so no key material
is checked into the repository.
"""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    NoEncryption,
    pkcs12,
)
from cryptography.x509.oid import NameOID

from tenant_connections.models import ImportedCertificate, TenantRecord
from tenant_connections.services.audit_log import TamperProofAuditLog
from tenant_connections.services.configuration_store import JsonConfigurationStore
from tenant_connections.services.tenant_registry import TenantRegistry

PFX_PASSWORD = "pfx-password"
CONTOSO = "contoso.onMicrosoft.com"
CONTOSO_APP_ID = "11111111-1111-1111-1111-111111111111"


def build_certificate(key, common_name: str = "tenant-connections-test") -> x509.Certificate:
    """Build a self-signed certificate for the given key."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def rsa_key():
    """Generate an RSA private key for testing."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    """A second RSA key that does not match the test certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate(rsa_key):
    return build_certificate(rsa_key)


@pytest.fixture(scope="session")
def pfx_bytes(rsa_key, certificate):
    """Password-protected PKCS#12 container with the certificate and its key."""
    return pkcs12.serialize_key_and_certificates(
        name=b"app",
        key=rsa_key,
        cert=certificate,
        cas=None,
        encryption_algorithm=BestAvailableEncryption(PFX_PASSWORD.encode()),
    )


@pytest.fixture(scope="session")
def pfx_without_key(certificate):
    """Password-protected PKCS#12 container holding only a certificate."""
    return pkcs12.serialize_key_and_certificates(
        name=None,
        key=None,
        cert=None,
        cas=[certificate],
        encryption_algorithm=BestAvailableEncryption(PFX_PASSWORD.encode()),
    )


@pytest.fixture(scope="session")
def unprotected_pfx_without_key(certificate):
    """PKCS#12 container holding only a certificate, without a password."""
    return pkcs12.serialize_key_and_certificates(
        name=None,
        key=None,
        cert=None,
        cas=[certificate],
        encryption_algorithm=NoEncryption(),
    )


@pytest.fixture
def imported_certificate(rsa_key, certificate):
    return ImportedCertificate(certificate=certificate, private_key=rsa_key, file_name="app.pfx")


@pytest.fixture
def secret_record():
    return TenantRecord(
        name=CONTOSO,
        application_id=CONTOSO_APP_ID,
        application_secret="s3cr3t",
    )


@pytest.fixture
def certificate_record(imported_certificate):
    return TenantRecord(
        name="fabrikam.onmicrosoft.com",
        application_id="22222222-2222-2222-2222-222222222222",
        client_certificate=imported_certificate,
        exclude_members=True,
    )


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "store" / "configuration.json"


@pytest.fixture
def store(store_path):
    return JsonConfigurationStore(store_path, configuration_name="test-configuration")


@pytest.fixture
def audit_log(tmp_path):
    return TamperProofAuditLog(tmp_path / "audit.jsonl")


@pytest.fixture
def registry(store, audit_log):
    return TenantRegistry(store, audit_log=audit_log)


@pytest.fixture
def pfx_password():
    return PFX_PASSWORD
