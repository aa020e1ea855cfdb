"""Services for tenant connection storage, registry and administration."""

from .audit_log import AuditEntry, AuditSink, TamperProofAuditLog
from .configuration_store import ConfigurationPersistence, JsonConfigurationStore
from .tenant_admin import TenantAdminService, TenantConnectionRequest
from .tenant_registry import TenantRegistry

__all__ = [
    "AuditEntry",
    "AuditSink",
    "ConfigurationPersistence",
    "JsonConfigurationStore",
    "TamperProofAuditLog",
    "TenantAdminService",
    "TenantConnectionRequest",
    "TenantRegistry",
]
