"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import os
from datetime import datetime, timezone

from emi_ledger.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage
)


# Test data
test_data = {
    "id": "loan_001",
    "name": "Home loan",
    "principal_amount": "5000000.00",
    "loan_type": "home",
    "version": 1,
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Run each test against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(":memory:")
    yield backend
    backend.close()


class TestStorageBackends:
    """Test basic operations on each backend"""

    def test_save_and_load(self, storage):
        storage.save("loans", "loan_001", test_data)
        assert storage.load("loans", "loan_001") == test_data
        assert storage.load("loans", "missing") is None

    def test_load_returns_copy(self, storage):
        storage.save("loans", "loan_001", test_data)
        loaded = storage.load("loans", "loan_001")
        loaded["name"] = "Changed"
        assert storage.load("loans", "loan_001")["name"] == "Home loan"

    def test_load_all_and_count(self, storage):
        storage.save("loans", "a", dict(test_data, id="a"))
        storage.save("loans", "b", dict(test_data, id="b"))

        assert storage.count("loans") == 2
        assert {r["id"] for r in storage.load_all("loans")} == {"a", "b"}
        assert storage.count("empty") == 0

    def test_find(self, storage):
        storage.save("loans", "a", dict(test_data, id="a", loan_type="home"))
        storage.save("loans", "b", dict(test_data, id="b", loan_type="car"))

        found = storage.find("loans", {"loan_type": "car"})
        assert [r["id"] for r in found] == ["b"]
        assert storage.find("loans", {"missing_key": 1}) == []

    def test_delete_and_exists(self, storage):
        storage.save("loans", "loan_001", test_data)
        assert storage.exists("loans", "loan_001")

        assert storage.delete("loans", "loan_001")
        assert not storage.exists("loans", "loan_001")
        assert not storage.delete("loans", "loan_001")


class TestVersionedSave:
    """Compare-and-set on the document version"""

    def test_insert_requires_version_zero(self, storage):
        assert storage.save_versioned("loans", "loan_001", dict(test_data, version=1), 0)
        # A second insert with the same ID is a conflict
        assert not storage.save_versioned("loans", "loan_001", dict(test_data, version=1), 0)

    def test_update_requires_current_version(self, storage):
        storage.save_versioned("loans", "loan_001", dict(test_data, version=1), 0)

        assert storage.save_versioned("loans", "loan_001", dict(test_data, version=2, name="v2"), 1)
        assert not storage.save_versioned("loans", "loan_001", dict(test_data, version=2, name="stale"), 1)

        loaded = storage.load("loans", "loan_001")
        assert loaded["version"] == 2
        assert loaded["name"] == "v2"

    def test_update_of_missing_record(self, storage):
        assert not storage.save_versioned("loans", "missing", dict(test_data, version=2), 1)


class TestSQLiteTransactions:
    """Test atomic() on SQLite"""

    def setup_method(self):
        self.storage = SQLiteStorage(":memory:")
        self.storage.save("loans", "existing", dict(test_data, id="existing"))

    def teardown_method(self):
        self.storage.close()

    def test_commit(self):
        with self.storage.atomic():
            self.storage.save("loans", "new", dict(test_data, id="new"))
        assert self.storage.exists("loans", "new")

    def test_rollback_on_error(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("loans", "new", dict(test_data, id="new"))
                raise RuntimeError("boom")

        assert not self.storage.exists("loans", "new")
        assert self.storage.exists("loans", "existing")

    def test_file_persistence(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ledger.db")
            first = SQLiteStorage(path)
            first.save("loans", "loan_001", test_data)
            first.close()

            second = SQLiteStorage(path)
            assert second.load("loans", "loan_001") == test_data
            second.close()


class TestStorageRecord:
    """Test shared record helpers"""

    def test_timestamps_round_trip(self):
        now = datetime.now(timezone.utc)
        record = StorageRecord(id="r1", created_at=now, updated_at=now)

        parsed = StorageRecord.parse_timestamps(record.base_dict())
        assert parsed == {"created_at": now, "updated_at": now}


class TestCreateStorage:
    """Test URL-based backend selection"""

    def test_memory(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_memory(self):
        storage = create_storage("sqlite://")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == ":memory:"
        storage.close()

    def test_sqlite_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = create_storage(f"sqlite:///{tmp}/ledger.db")
            assert storage.db_path == f"{tmp}/ledger.db"
            storage.close()

    def test_unsupported(self):
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/db")
