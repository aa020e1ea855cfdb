"""
Tenant Connections

Management of the Azure AD tenants a claims provider can authenticate
against: credential validation, client certificate import, live connection
tests and a persisted, audited tenant registry.
"""

from .certificates import import_certificate
from .connection_tester import ConnectionTester, ConnectionTestResult, ConnectionTestStatus
from .elevation import ElevatedContext
from .exceptions import TenantConnectionsError
from .models import CredentialChannel, ImportedCertificate, TenantRecord
from .validation import validate_credential_shape

__version__ = "1.0.0"

__all__ = [
    "ConnectionTestResult",
    "ConnectionTestStatus",
    "ConnectionTester",
    "CredentialChannel",
    "ElevatedContext",
    "ImportedCertificate",
    "TenantConnectionsError",
    "TenantRecord",
    "import_certificate",
    "validate_credential_shape",
]
