"""
Tests for the SQLAlchemy quota store
"""

import threading

import pytest
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import StorageUnavailableError
from app.models.quota import ContactViewCount
from app.services.quota_store import create_quota_store
from app.services.sql_quota_store import SqlQuotaStore

DAY = "2026-01-15"


class TestStoreContract:
    """get_count / get_marks / add_marks / increment_count / reset"""

    def test_empty_state(self, sql_store):
        assert sql_store.get_count("user_1", DAY) == 0
        assert sql_store.get_marks("user_1", DAY) == set()

    def test_add_marks_is_idempotent(self, sql_store):
        sql_store.add_marks("user_1", DAY, ["a", "b"])
        sql_store.add_marks("user_1", DAY, ["b", "c", "c"])

        assert sql_store.get_marks("user_1", DAY) == {"a", "b", "c"}

    def test_add_marks_empty_is_noop(self, sql_store):
        sql_store.add_marks("user_1", DAY, [])

        assert sql_store.get_marks("user_1", DAY) == set()

    def test_increment_count_creates_then_adds(self, sql_store):
        assert sql_store.increment_count("user_1", DAY, 3) == 3
        assert sql_store.increment_count("user_1", DAY, 2) == 5
        assert sql_store.get_count("user_1", DAY) == 5

    def test_increment_count_concurrent_no_lost_updates(self, sql_store):
        def worker():
            for _ in range(20):
                sql_store.increment_count("user_1", DAY, 1)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sql_store.get_count("user_1", DAY) == 100

    def test_reset_deletes_counter_and_marks(self, sql_store):
        sql_store.charge("user_1", DAY, ["a", "b"], limit=10)
        sql_store.charge("user_1", "2026-01-14", ["a"], limit=10)

        sql_store.reset("user_1", DAY)

        assert sql_store.get_count("user_1", DAY) == 0
        assert sql_store.get_marks("user_1", DAY) == set()
        # Other days are untouched
        assert sql_store.get_count("user_1", "2026-01-14") == 1

    def test_keys_are_per_user_and_day(self, sql_store):
        sql_store.charge("user_1", DAY, ["a"], limit=10)

        assert sql_store.get_marks("user_2", DAY) == set()
        assert sql_store.get_marks("user_1", "2026-01-16") == set()


class TestCharge:
    """Atomic mark-and-count"""

    def test_charge_marks_and_counts_together(self, sql_store):
        result = sql_store.charge("user_1", DAY, ["a", "b", "c"], limit=10)

        assert result.charged == ["a", "b", "c"]
        assert result.already_marked == []
        assert result.count == 3
        assert sql_store.get_marks("user_1", DAY) == {"a", "b", "c"}
        assert sql_store.get_count("user_1", DAY) == 3

    def test_charge_truncates_in_order(self, sql_store):
        sql_store.charge("user_1", DAY, ["a", "b"], limit=4)

        result = sql_store.charge("user_1", DAY, ["z", "b", "y", "x"], limit=4)

        assert result.charged == ["z", "y"]
        assert result.already_marked == ["b"]
        assert result.count == 4
        assert "x" not in sql_store.get_marks("user_1", DAY)

    def test_charge_at_limit_changes_nothing(self, sql_store):
        sql_store.charge("user_1", DAY, ["a", "b"], limit=2)

        result = sql_store.charge("user_1", DAY, ["c"], limit=2)

        assert result.charged == []
        assert result.count == 2
        assert sql_store.get_marks("user_1", DAY) == {"a", "b"}

    def test_charge_with_no_ids_returns_count(self, sql_store):
        sql_store.charge("user_1", DAY, ["a"], limit=5)

        result = sql_store.charge("user_1", DAY, [], limit=5)

        assert result.charged == []
        assert result.count == 1

    def test_concurrent_charges_respect_limit(self, sql_store):
        results = []
        lock = threading.Lock()

        def worker(prefix):
            result = sql_store.charge("user_1", DAY, [f"{prefix}{i}" for i in range(10)], limit=15)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=worker, args=(p,)) for p in "abcdef"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        charged = [cid for r in results for cid in r.charged]
        assert sql_store.get_count("user_1", DAY) == 15
        assert len(charged) == 15
        assert set(charged) == sql_store.get_marks("user_1", DAY)


class TestReconcile:
    """Read-repair: marks are the source of truth"""

    def test_reconcile_rewrites_counter_from_marks(self, sql_store, db_session):
        sql_store.charge("user_1", DAY, ["a", "b", "c"], limit=10)
        db_session.query(ContactViewCount).filter(ContactViewCount.user_id == "user_1").update({"count": 7})
        db_session.commit()

        assert sql_store.reconcile("user_1", DAY) == 3
        assert sql_store.get_count("user_1", DAY) == 3

    def test_reconcile_consistent_state_is_unchanged(self, sql_store):
        sql_store.charge("user_1", DAY, ["a", "b"], limit=10)

        assert sql_store.reconcile("user_1", DAY) == 2
        assert sql_store.get_count("user_1", DAY) == 2


class TestStorageFailures:
    """Database errors surface as StorageUnavailableError"""

    @pytest.fixture
    def broken_store(self):
        factory = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("database is down")))
        return SqlQuotaStore(factory)

    @pytest.mark.parametrize("call", [
        lambda s: s.get_count("user_1", DAY),
        lambda s: s.get_marks("user_1", DAY),
        lambda s: s.add_marks("user_1", DAY, ["a"]),
        lambda s: s.increment_count("user_1", DAY, 1),
        lambda s: s.reset("user_1", DAY),
        lambda s: s.charge("user_1", DAY, ["a"], limit=5),
        lambda s: s.reconcile("user_1", DAY),
    ])
    def test_errors_are_wrapped(self, broken_store, call):
        with pytest.raises(StorageUnavailableError):
            call(broken_store)


class TestCreateQuotaStore:
    """Backend selection at startup"""

    def test_sql_backend(self, session_factory):
        store = create_quota_store('sql', session_factory=session_factory)

        assert isinstance(store, SqlQuotaStore)

    def test_unsupported_dialect_fails_at_construction(self):
        engine = MagicMock()
        engine.dialect.name = "mysql"

        with pytest.raises(ValueError, match="mysql"):
            create_quota_store('sql', session_factory=sessionmaker(bind=engine))

    def test_unknown_backend(self, session_factory):
        with pytest.raises(ValueError):
            create_quota_store('memcached', session_factory=session_factory)
