"""Tests for the JSON configuration store."""

import json
import os
import stat
from unittest.mock import patch

import pytest

from tenant_connections.exceptions import ConcurrentModificationError, PersistenceError
from tenant_connections.models import TenantRecord
from tenant_connections.services.configuration_store import (
    FORMAT_VERSION,
    JsonConfigurationStore,
)


def with_id(record, identifier):
    return TenantRecord(
        id=identifier,
        name=record.name,
        application_id=record.application_id,
        application_secret=record.application_secret,
        client_certificate=record.client_certificate,
        exclude_members=record.exclude_members,
    )


class TestJsonConfigurationStore:
    """Tests for JsonConfigurationStore."""

    def test_requires_configuration_name(self, store_path):
        with pytest.raises(ValueError):
            JsonConfigurationStore(store_path, configuration_name="")

    def test_missing_file_loads_empty(self, store):
        assert store.load() == []
        assert store.revision == 0

    def test_commit_and_load_round_trip(self, store, store_path, secret_record):
        tenant = with_id(secret_record, "id-1")

        store.commit([tenant])

        document = json.loads(store_path.read_text())
        assert document["format_version"] == FORMAT_VERSION
        assert document["configuration_name"] == "test-configuration"
        assert document["revision"] == 1
        assert JsonConfigurationStore(store_path, "test-configuration").load() == [tenant]

    def test_preserves_order(self, store, store_path, secret_record):
        tenants = [with_id(secret_record, f"id-{i}") for i in range(3)]

        store.commit(tenants)

        loaded = JsonConfigurationStore(store_path).load()
        assert [t.id for t in loaded] == ["id-0", "id-1", "id-2"]

    def test_file_is_private(self, store, store_path, secret_record):
        store.commit([with_id(secret_record, "id-1")])

        mode = stat.S_IMODE(os.stat(store_path).st_mode)
        assert mode == 0o600

    def test_certificate_encrypted_with_passphrase(self, store_path, certificate_record):
        store = JsonConfigurationStore(store_path, certificate_passphrase="store-passphrase")
        store.commit([with_id(certificate_record, "id-1")])

        loaded = JsonConfigurationStore(
            store_path, certificate_passphrase="store-passphrase"
        ).load()
        assert (
            loaded[0].client_certificate.thumbprint
            == certificate_record.client_certificate.thumbprint
        )

    def test_certificate_under_rotated_passphrase_is_skipped_and_kept(
        self, store_path, secret_record, certificate_record, caplog
    ):
        JsonConfigurationStore(store_path, certificate_passphrase="store-passphrase").commit(
            [with_id(secret_record, "id-1"), with_id(certificate_record, "id-2")]
        )
        stored_certificate = json.loads(store_path.read_text())["tenants"][1]

        rotated = JsonConfigurationStore(store_path, certificate_passphrase="wrong")
        loaded = rotated.load()

        assert [t.id for t in loaded] == ["id-1"]
        assert rotated.unreadable_records == (stored_certificate,)
        assert "Skipping stored tenant record 1 (id-2)" in caplog.text

        rotated.commit([])

        assert json.loads(store_path.read_text())["tenants"] == [stored_certificate]
        restored = JsonConfigurationStore(
            store_path, certificate_passphrase="store-passphrase"
        ).load()
        assert [t.id for t in restored] == ["id-2"]

    def test_concurrent_writer_is_detected(self, store_path, secret_record):
        first = JsonConfigurationStore(store_path)
        second = JsonConfigurationStore(store_path)
        first.load()
        second.load()

        first.commit([with_id(secret_record, "id-1")])

        with pytest.raises(ConcurrentModificationError) as exc_info:
            second.commit([with_id(secret_record, "id-2")])

        assert exc_info.value.context["expected_revision"] == 0
        assert exc_info.value.context["actual_revision"] == 1
        assert [t.id for t in JsonConfigurationStore(store_path).load()] == ["id-1"]

    def test_reload_after_conflict_allows_commit(self, store_path, secret_record):
        first = JsonConfigurationStore(store_path)
        second = JsonConfigurationStore(store_path)
        first.commit([with_id(secret_record, "id-1")])

        second.load()
        second.commit([with_id(secret_record, "id-1"), with_id(secret_record, "id-2")])

        assert second.revision == 2

    def test_corrupt_document(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("{not json")

        with pytest.raises(PersistenceError) as exc_info:
            store.load()

        assert exc_info.value.context["operation"] == "read"

    def test_non_object_document(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("[]")

        with pytest.raises(PersistenceError):
            store.load()

    def test_write_failure_keeps_previous_document(self, store, store_path, secret_record):
        store.commit([with_id(secret_record, "id-1")])

        with patch(
            "tenant_connections.services.configuration_store.os.replace",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(PersistenceError, match="disk full"):
                store.commit([])

        assert store.revision == 1
        assert [t.id for t in JsonConfigurationStore(store_path).load()] == ["id-1"]
        assert list(store_path.parent.glob("*.tmp")) == []

    def test_delete(self, store, store_path, secret_record):
        store.commit([with_id(secret_record, "id-1")])

        store.delete()
        store.delete()

        assert not store_path.exists()
        assert store.revision == 0
        assert store.load() == []

    def test_legacy_invalid_record_loads_with_warning(self, store, store_path, caplog):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(
            json.dumps(
                {
                    "revision": 4,
                    "tenants": [
                        {"id": "id-1", "name": "legacy.onmicrosoft.com", "application_id": "app"}
                    ],
                }
            )
        )

        tenants = store.load()

        assert tenants[0].credential_channel is None
        assert store.revision == 4
        assert "does not have exactly one credential" in caplog.text

    def test_record_without_id_is_skipped_and_kept(self, store, store_path, secret_record):
        store.commit([with_id(secret_record, "id-1")])
        document = json.loads(store_path.read_text())
        legacy = {"name": "legacy", "application_id": "x"}
        document["tenants"].append(legacy)
        store_path.write_text(json.dumps(document))

        loaded = store.load()

        assert [t.id for t in loaded] == ["id-1"]
        assert store.unreadable_records == (legacy,)

        store.commit([])

        assert json.loads(store_path.read_text())["tenants"] == [legacy]

    def test_non_object_record_is_skipped(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"revision": 1, "tenants": ["garbage", 3]}))

        assert store.load() == []
        assert store.unreadable_records == ("garbage", 3)

    def test_tenants_must_be_a_list(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"revision": 1, "tenants": 3}))

        with pytest.raises(PersistenceError) as exc_info:
            store.load()

        assert exc_info.value.context["operation"] == "load"

    def test_delete_discards_unreadable_records(self, store, store_path, secret_record):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"revision": 1, "tenants": [{"name": "legacy"}]}))
        store.load()

        store.delete()
        store.commit([with_id(secret_record, "id-1")])

        assert store.unreadable_records == ()
        assert [t["id"] for t in json.loads(store_path.read_text())["tenants"]] == ["id-1"]
