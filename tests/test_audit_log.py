"""Tests for the tamper-proof tenant audit log."""

import json

import pytest

from tenant_connections.services.audit_log import GENESIS_HASH, TamperProofAuditLog


class TestTamperProofAuditLog:
    """Tests for TamperProofAuditLog."""

    def test_initialized_with_genesis_entry(self, tmp_path):
        audit_log = TamperProofAuditLog(tmp_path / "nested" / "audit.jsonl")

        entries = audit_log.get_entries()
        assert len(entries) == 1
        assert entries[0].event == "audit_log_initialized"
        assert entries[0].previous_hash == GENESIS_HASH

    def test_append_chains_hashes(self, audit_log):
        first = audit_log.append("tenant_added", "contoso", "default", "added")
        audit_log.append("tenant_removed", "contoso", "default", "removed", {"id": "1"})

        last = audit_log.get_last_entry()
        assert last.previous_hash == first
        assert last.details == {"id": "1"}
        assert audit_log.verify_integrity() is True

    def test_filters(self, audit_log):
        audit_log.append("tenant_added", "contoso", "default", "added")
        audit_log.append("tenant_added", "fabrikam", "default", "added")
        audit_log.append("tenant_removed", "contoso", "default", "removed")

        assert len(audit_log.get_entries(event="tenant_added")) == 2
        assert len(audit_log.get_entries(tenant_name="contoso")) == 2
        assert len(audit_log.get_entries(event="tenant_removed", tenant_name="fabrikam")) == 0

    def test_modified_entry_detected(self, audit_log):
        audit_log.append("tenant_added", "contoso", "default", "added")
        lines = audit_log.log_path.read_text().splitlines()
        entry = json.loads(lines[1])
        entry["tenant_name"] = "evil"
        lines[1] = json.dumps(entry)
        audit_log.log_path.write_text("\n".join(lines) + "\n")

        with pytest.raises(ValueError, match="AUDIT LOG TAMPERING DETECTED"):
            audit_log.verify_integrity()

    def test_deleted_entry_detected(self, audit_log):
        audit_log.append("tenant_added", "contoso", "default", "added")
        audit_log.append("tenant_removed", "contoso", "default", "removed")
        lines = audit_log.log_path.read_text().splitlines()
        del lines[1]
        audit_log.log_path.write_text("\n".join(lines) + "\n")

        with pytest.raises(ValueError, match="previous_hash mismatch"):
            audit_log.verify_integrity()

    def test_existing_log_is_reused(self, audit_log):
        audit_log.append("tenant_added", "contoso", "default", "added")

        reopened = TamperProofAuditLog(audit_log.log_path)

        assert len(reopened.get_entries()) == 2
        assert reopened.verify_integrity() is True

    def test_append_after_malformed_entry_raises_value_error(self, audit_log):
        with open(audit_log.log_path, "a") as f:
            f.write('{"x": 1}\n')

        with pytest.raises(ValueError, match="AUDIT LOG CORRUPTED"):
            audit_log.append("tenant_added", "contoso", "default", "added")

    def test_append_after_truncated_entry_raises_value_error(self, audit_log):
        with open(audit_log.log_path, "a") as f:
            f.write('{"event": "tenant_added", "hash": \n')

        with pytest.raises(ValueError, match="AUDIT LOG CORRUPTED"):
            audit_log.append("tenant_added", "contoso", "default", "added")

    def test_entry_without_hash_detected(self, audit_log):
        with open(audit_log.log_path, "a") as f:
            f.write('{"x": 1}\n')

        with pytest.raises(ValueError, match="Entry 1 is not a valid audit entry"):
            audit_log.verify_integrity()
