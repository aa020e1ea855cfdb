"""
Tamper-Proof Audit Log for tenant connection changes.

Every tenant added to or removed from a configuration is recorded as a
human-readable entry in a JSONL file. Entries form a SHA-256 hash chain, so no
entry can be modified or deleted without verify_integrity noticing.
"""

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

GENESIS_HASH = "0" * 64
_ENTRY_FIELDS = frozenset(
    [
        "event",
        "timestamp",
        "tenant_name",
        "configuration_name",
        "message",
        "details",
        "previous_hash",
        "hash",
    ]
)


class AuditSink(Protocol):
    """Anything the tenant registry can report configuration changes to."""

    def append(
        self,
        event: str,
        tenant_name: str,
        configuration_name: str,
        message: str,
        details: Optional[Dict] = None,
    ) -> str: ...


@dataclass
class AuditEntry:
    """Single audit log entry."""

    event: str
    timestamp: float
    tenant_name: str
    configuration_name: str
    message: str
    details: Dict
    previous_hash: str
    hash: str

    @classmethod
    def from_dict(cls, data: Dict) -> "AuditEntry":
        return cls(
            event=data["event"],
            timestamp=data["timestamp"],
            tenant_name=data["tenant_name"],
            configuration_name=data["configuration_name"],
            message=data["message"],
            details=data["details"],
            previous_hash=data["previous_hash"],
            hash=data["hash"],
        )


class TamperProofAuditLog:
    """
    Tamper-proof audit log using cryptographic hash chain.

    Each entry contains:
    - event: Event name (tenant_added, tenant_removed, configuration_reset)
    - timestamp: Unix timestamp
    - tenant_name: Tenant domain name
    - configuration_name: Configuration the change was made in
    - message: Human-readable description
    - details: Event-specific data
    - previous_hash: Hash of previous entry (forms chain)
    - hash: SHA-256 hash of current entry
    """

    def __init__(self, log_path: Path):
        """
        Initialize audit log.

        Args:
            log_path: Path to audit log file (.jsonl format)
        """
        self.log_path = Path(log_path)
        self._lock = threading.Lock()
        self._initialize_if_needed()

    def _initialize_if_needed(self):
        """Initialize audit log with genesis entry if it doesn't exist."""
        if not self.log_path.exists():
            genesis_entry = {
                "event": "audit_log_initialized",
                "timestamp": time.time(),
                "tenant_name": "",
                "configuration_name": "",
                "message": "Audit log initialized",
                "details": {},
                "previous_hash": GENESIS_HASH,
            }
            genesis_entry["hash"] = self._compute_entry_hash(genesis_entry)

            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "w") as f:
                f.write(json.dumps(genesis_entry) + "\n")

    def _compute_entry_hash(self, entry: Dict) -> str:
        """SHA-256 of the entry without its 'hash' field."""
        entry_copy = {k: v for k, v in entry.items() if k != "hash"}
        entry_json = json.dumps(entry_copy, sort_keys=True)
        return hashlib.sha256(entry_json.encode()).hexdigest()

    def _read_lines(self) -> List[str]:
        with open(self.log_path) as f:
            return [line for line in f.readlines() if line.strip()]

    def _last_hash(self, lines: List[str]) -> str:
        if not lines:
            return GENESIS_HASH
        try:
            previous_hash = json.loads(lines[-1])["hash"]
        except (ValueError, KeyError, TypeError) as e:
            raise ValueError(
                f"AUDIT LOG CORRUPTED: Last entry of {self.log_path} has no readable hash ({e!r})"
            ) from e
        if not isinstance(previous_hash, str):
            raise ValueError(
                f"AUDIT LOG CORRUPTED: Last entry of {self.log_path} has no readable hash"
            )
        return previous_hash

    def append(
        self,
        event: str,
        tenant_name: str,
        configuration_name: str,
        message: str,
        details: Optional[Dict] = None,
    ) -> str:
        """
        Append tamper-proof entry to audit log.

        Args:
            event: Event name
            tenant_name: Tenant the change applies to
            configuration_name: Configuration the change was made in
            message: Human-readable description of the change
            details: Event-specific details

        Returns:
            Hash of appended entry

        Raises:
            ValueError: If the last entry of the log is not a readable audit entry
        """
        with self._lock:
            lines = self._read_lines()
            previous_hash = self._last_hash(lines)

            entry = {
                "event": event,
                "timestamp": time.time(),
                "tenant_name": tenant_name,
                "configuration_name": configuration_name,
                "message": message,
                "details": details or {},
                "previous_hash": previous_hash,
            }
            entry["hash"] = self._compute_entry_hash(entry)

            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry) + "\n")

            return entry["hash"]

    def verify_integrity(self) -> bool:
        """
        Verify integrity of entire audit log chain.

        Returns:
            True if chain is valid

        Raises:
            ValueError: If audit log has been tampered with
        """
        lines = self._read_lines()
        if not lines:
            return True

        previous_hash = None
        for i, line in enumerate(lines):
            entry = json.loads(line)
            if not isinstance(entry, dict) or not _ENTRY_FIELDS <= entry.keys():
                raise ValueError(
                    f"AUDIT LOG TAMPERING DETECTED: Entry {i} is not a valid audit entry"
                )

            stored_hash = entry["hash"]
            computed_hash = self._compute_entry_hash(entry)
            if stored_hash != computed_hash:
                raise ValueError(
                    f"AUDIT LOG TAMPERING DETECTED: Entry {i} hash mismatch. "
                    f"Expected: {stored_hash}, Computed: {computed_hash}"
                )

            if i == 0:
                if entry["previous_hash"] != GENESIS_HASH:
                    raise ValueError(
                        "AUDIT LOG TAMPERING DETECTED: Genesis entry has invalid previous_hash"
                    )
            elif entry["previous_hash"] != previous_hash:
                raise ValueError(
                    f"AUDIT LOG TAMPERING DETECTED: Entry {i} previous_hash mismatch. "
                    f"Expected: {previous_hash}, Found: {entry['previous_hash']}"
                )

            previous_hash = stored_hash

        return True

    def get_entries(
        self, event: Optional[str] = None, tenant_name: Optional[str] = None
    ) -> List[AuditEntry]:
        """
        Get audit log entries, optionally filtered by event and tenant name.
        """
        entries = []
        for line in self._read_lines():
            entry_dict = json.loads(line)
            if event and entry_dict["event"] != event:
                continue
            if tenant_name and entry_dict["tenant_name"] != tenant_name:
                continue
            entries.append(AuditEntry.from_dict(entry_dict))
        return entries

    def get_last_entry(self) -> Optional[AuditEntry]:
        """Get the most recent audit log entry, or None if the log is empty."""
        lines = self._read_lines()
        if not lines:
            return None
        return AuditEntry.from_dict(json.loads(lines[-1]))
