"""
Tenant Registry Service

This module keeps the ordered list of Azure AD tenant connections of one
configuration, and persists every change through a ConfigurationPersistence
store.

A record is only accepted when it carries exactly one credential. There is no
update in place: changing a tenant means removing it and adding it again.
Mutations are serialised, and a failed commit leaves the in-memory list
exactly as it was before the call.
"""

import dataclasses
import logging
import threading
import uuid
from typing import List, Optional, Tuple

from ..exceptions import (
    ConflictingCredentialsError,
    MissingFieldsError,
    TenantNotFoundError,
    wrap_storage_exception,
)
from ..models import TenantRecord
from .audit_log import AuditSink
from .configuration_store import ConfigurationPersistence

logger = logging.getLogger(__name__)

TEXT_TENANT_ADDED = "Azure AD tenant '{0}' was successfully added in configuration '{1}'"
TEXT_TENANT_REMOVED = "Azure AD tenant '{0}' was successfully removed from configuration '{1}'"


class TenantRegistry:
    """
    Ordered, persisted collection of tenant connection records.

    Attributes:
        persistence: Store the records are loaded from and committed to
        audit_log: Optional sink receiving an entry for every add and remove
    """

    def __init__(
        self,
        persistence: ConfigurationPersistence,
        audit_log: Optional[AuditSink] = None,
    ) -> None:
        """
        Initialize the registry and load the persisted records.

        Raises:
            PersistenceError: If the stored configuration cannot be read
        """
        self.persistence = persistence
        self.audit_log = audit_log
        self._lock = threading.RLock()
        self._tenants: List[TenantRecord] = list(persistence.load())

    @property
    def configuration_name(self) -> str:
        return self.persistence.current_configuration_name()

    def reload(self) -> None:
        """Discard in-memory state and load the persisted records again."""
        with self._lock:
            self._tenants = list(self.persistence.load())

    def list(self) -> Tuple[TenantRecord, ...]:
        """Return the tenants in insertion order."""
        with self._lock:
            return tuple(self._tenants)

    def get(self, tenant_identifier: str) -> TenantRecord:
        """
        Get a tenant by identifier.

        Raises:
            TenantNotFoundError: If no tenant has this identifier
        """
        tenant = self._find(tenant_identifier)
        if tenant is None:
            raise TenantNotFoundError(
                f"Tenant {tenant_identifier} not found",
                tenant_identifier=tenant_identifier,
            )
        return tenant

    def add(self, record: TenantRecord) -> str:
        """
        Add a tenant and commit the configuration.

        The record must already have passed credential validation (and
        certificate import, when it uses a certificate). Duplicate names and
        application ids are accepted.

        Args:
            record: Tenant to add; any identifier it carries is replaced

        Returns:
            The identifier assigned to the new tenant

        Raises:
            MissingFieldsError: If name or application id is blank
            ConflictingCredentialsError: If the record does not have exactly one credential
            PersistenceError: If the commit fails; nothing is added in that case
        """
        self._check_writable(record)

        with self._lock:
            tenant = dataclasses.replace(record, id=self._new_identifier())
            previous = list(self._tenants)
            self._tenants.append(tenant)
            self._commit_or_rollback(previous, "add", tenant)

        logger.info(f"Added tenant {tenant.mask_secret()}")
        self._audit(
            "tenant_added",
            tenant,
            TEXT_TENANT_ADDED.format(tenant.name, self.configuration_name),
        )
        return tenant.id

    def remove(self, tenant_identifier: str) -> Optional[TenantRecord]:
        """
        Remove a tenant by identifier and commit the configuration.

        Returns:
            The removed tenant, or None if no tenant has this identifier
            (nothing is committed in that case)

        Raises:
            PersistenceError: If the commit fails; the tenant stays in that case
        """
        with self._lock:
            tenant = self._find(tenant_identifier)
            if tenant is None:
                logger.debug(f"Tenant {tenant_identifier} not in registry, nothing removed")
                return None

            previous = list(self._tenants)
            self._tenants = [t for t in self._tenants if t.id != tenant_identifier]
            self._commit_or_rollback(previous, "remove", tenant)

        logger.info(f"Removed tenant {tenant.mask_secret()}")
        self._audit(
            "tenant_removed",
            tenant,
            TEXT_TENANT_REMOVED.format(tenant.name, self.configuration_name),
        )
        return tenant

    def reset(self) -> None:
        """
        Delete the persisted configuration and forget every tenant.

        Raises:
            PersistenceError: If the configuration cannot be deleted
        """
        with self._lock:
            configuration_name = self.configuration_name
            removed = len(self._tenants)
            self.persistence.delete()
            self._tenants = []

        logger.warning(
            f"Configuration '{configuration_name}' was reset ({removed} tenant(s) removed)"
        )
        if self.audit_log is not None:
            self._append_audit(
                "configuration_reset",
                "",
                f"Configuration '{configuration_name}' was reset",
                {"tenants_removed": removed},
            )

    def _find(self, tenant_identifier: str) -> Optional[TenantRecord]:
        with self._lock:
            for tenant in self._tenants:
                if tenant.id == tenant_identifier:
                    return tenant
        return None

    def _new_identifier(self) -> str:
        existing = {t.id for t in self._tenants}
        while True:
            identifier = str(uuid.uuid4())
            if identifier not in existing:
                return identifier

    @staticmethod
    def _check_writable(record: TenantRecord) -> None:
        missing = [
            name
            for name, value in (("name", record.name), ("application_id", record.application_id))
            if not value or not value.strip()
        ]
        if missing:
            raise MissingFieldsError(missing_fields=missing)
        if record.credential_channel is None:
            raise ConflictingCredentialsError(
                context={"secret": record.has_secret, "certificate": record.has_certificate}
            )

    def _commit_or_rollback(
        self, previous: List[TenantRecord], operation: str, tenant: TenantRecord
    ) -> None:
        try:
            self.persistence.commit(tuple(self._tenants))
        except Exception as e:
            self._tenants = previous
            logger.error(
                f"Failed to {operation} tenant '{tenant.name}' in configuration "
                f"'{self.configuration_name}'; in-memory state rolled back"
            )
            error = wrap_storage_exception(e, "commit", self.configuration_name)
            if error is e:
                raise
            raise error from e

    def _audit(self, event: str, tenant: TenantRecord, message: str) -> None:
        if self.audit_log is None:
            return
        channel = tenant.credential_channel
        self._append_audit(
            event,
            tenant.name,
            message,
            {
                "tenant_identifier": tenant.id,
                "application_id": tenant.application_id,
                "credential": channel.value if channel else None,
            },
        )

    def _append_audit(self, event: str, tenant_name: str, message: str, details: dict) -> None:
        # The change is already committed; a failing audit sink must not undo it.
        try:
            self.audit_log.append(  # type: ignore[union-attr]
                event=event,
                tenant_name=tenant_name,
                configuration_name=self.configuration_name,
                message=message,
                details=details,
            )
        except Exception as e:
            logger.exception(f"Failed to write audit entry '{event}': {e}")
