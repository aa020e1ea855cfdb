"""
Configuration Store

Durable storage for the tenant connection list. The registry talks to it
through the ConfigurationPersistence protocol; JsonConfigurationStore is the
file-backed implementation used by the CLI.

The JSON document carries a revision counter. Each commit checks that the
revision on disk is still the one this store last read or wrote, so a write
made by another process in between is detected instead of silently lost.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from cryptography.exceptions import UnsupportedAlgorithm

from ..exceptions import ConcurrentModificationError, wrap_storage_exception
from ..models import TenantRecord

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

_RECORD_ERRORS = (ValueError, KeyError, TypeError, AttributeError, UnsupportedAlgorithm)


class ConfigurationPersistence(Protocol):
    """Contract the tenant registry needs from its configuration store."""

    def load(self) -> List[TenantRecord]:
        """Return the persisted tenant records in display order."""
        ...

    def commit(self, tenants: Sequence[TenantRecord]) -> None:
        """Durably replace the persisted tenant records. Raises PersistenceError."""
        ...

    def current_configuration_name(self) -> str:
        """Name of the configuration, used to correlate audit entries."""
        ...

    def delete(self) -> None:
        """Remove the persisted configuration entirely."""
        ...


class JsonConfigurationStore:
    """
    Stores tenant connections in a single JSON document.

    Certificates are embedded as base64 PKCS#12, encrypted with
    certificate_passphrase when one is configured.

    Stored entries that cannot be turned into a TenantRecord (a missing field,
    or a certificate that no longer decrypts with the configured passphrase)
    are skipped on load and written back unchanged on commit. Only delete()
    discards them.
    """

    def __init__(
        self,
        path: Path,
        configuration_name: str = "default",
        certificate_passphrase: Optional[str] = None,
    ) -> None:
        if not configuration_name:
            raise ValueError("Configuration name is required")
        self.path = Path(path)
        self.configuration_name = configuration_name
        self._passphrase = certificate_passphrase.encode("utf-8") if certificate_passphrase else None
        self._revision = 0
        self._unreadable_records: List[Any] = []
        self._lock = threading.Lock()

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def unreadable_records(self) -> Tuple[Any, ...]:
        """Raw stored entries the last load could not turn into tenant records."""
        return tuple(self._unreadable_records)

    def current_configuration_name(self) -> str:
        return self.configuration_name

    def load(self) -> List[TenantRecord]:
        with self._lock:
            data = self._read_document()
            if data is None:
                self._revision = 0
                self._unreadable_records = []
                logger.debug(f"No tenant configuration at {self.path}, starting empty")
                return []

            stored = data.get("tenants", [])
            if not isinstance(stored, list):
                raise wrap_storage_exception(
                    ValueError("'tenants' must be a list"),
                    "load",
                    self.configuration_name,
                    {"path": str(self.path)},
                )

            tenants: List[TenantRecord] = []
            unreadable: List[Any] = []
            for index, item in enumerate(stored):
                try:
                    tenants.append(TenantRecord.from_dict(item, self._passphrase))
                except _RECORD_ERRORS as e:
                    label = item.get("id") if isinstance(item, dict) else None
                    logger.warning(
                        f"Skipping stored tenant record {index} ({label or 'no id'}) of "
                        f"configuration '{self.configuration_name}': {e!r}. It is kept as is "
                        "on the next commit"
                    )
                    unreadable.append(item)

            for tenant in tenants:
                if tenant.credential_channel is None:
                    logger.warning(
                        f"Stored tenant '{tenant.name}' ({tenant.id}) does not have exactly one "
                        "credential; it cannot be used until it is removed and added again"
                    )

            self._revision = int(data.get("revision", 0))
            self._unreadable_records = unreadable
            logger.info(
                f"Loaded {len(tenants)} tenant(s) from configuration "
                f"'{self.configuration_name}' (revision {self._revision})"
            )
            return tenants

    def commit(self, tenants: Sequence[TenantRecord]) -> None:
        with self._lock:
            on_disk = self._read_document()
            on_disk_revision = int(on_disk.get("revision", 0)) if on_disk else 0
            if on_disk_revision != self._revision:
                raise ConcurrentModificationError(
                    f"Configuration '{self.configuration_name}' was modified by another writer",
                    expected_revision=self._revision,
                    actual_revision=on_disk_revision,
                    configuration_name=self.configuration_name,
                )

            if self._passphrase is None and any(t.has_certificate for t in tenants):
                logger.warning(
                    "Storing client certificates without encryption; set "
                    "TENANT_CONNECTIONS_CERTIFICATE_PASSPHRASE to protect them"
                )

            new_revision = self._revision + 1
            try:
                document = {
                    "format_version": FORMAT_VERSION,
                    "configuration_name": self.configuration_name,
                    "revision": new_revision,
                    "tenants": [t.to_dict(self._passphrase) for t in tenants]
                    + self._unreadable_records,
                }
                self._write_atomic(json.dumps(document, indent=2))
            except (OSError, ValueError, TypeError) as e:
                raise wrap_storage_exception(
                    e, "commit", self.configuration_name, {"path": str(self.path)}
                ) from e

            self._revision = new_revision
            logger.debug(
                f"Committed {len(tenants)} tenant(s) to '{self.configuration_name}' "
                f"(revision {new_revision})"
            )

    def delete(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                raise wrap_storage_exception(
                    e, "delete", self.configuration_name, {"path": str(self.path)}
                ) from e
            self._revision = 0
            self._unreadable_records = []
            logger.info(f"Deleted tenant configuration '{self.configuration_name}'")

    def _read_document(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise wrap_storage_exception(
                e, "read", self.configuration_name, {"path": str(self.path)}
            ) from e
        if not isinstance(data, dict):
            raise wrap_storage_exception(
                ValueError("document root must be an object"),
                "read",
                self.configuration_name,
                {"path": str(self.path)},
            )
        return data

    def _write_atomic(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            os.chmod(tmp_name, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
