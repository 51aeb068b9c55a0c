"""
Unit tests for the storage layer.

Tests schema creation, blob round trips, versioning and transaction rollback.
"""

import gc
import json
import os
import sqlite3
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from contact_ledger.core.errors import InsufficientCredits, StorageFailure
from contact_ledger.core.ledger import CreditLedger
from contact_ledger.storage.db import get_connection
from contact_ledger.storage.models import (
    AccountState,
    BillingCycle,
    ContactSnapshot,
    Subscription,
    UnlockRecord,
)
from contact_ledger.storage.repository import (
    STATE_VERSION,
    AccountRepository,
    decode_state,
    encode_state,
    initialize_schema,
)


def _sample_state() -> AccountState:
    return AccountState(
        business_id="biz-1",
        balance=6,
        subscription=Subscription(
            id="sub-1",
            business_id="biz-1",
            plan_id="premium_yearly",
            billing_cycle=BillingCycle.YEARLY,
            purchase_discount_percent=30,
            started_at=datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        ),
        unlocks=[UnlockRecord(
            id="rec-1",
            business_id="biz-1",
            project_id="p-1",
            credits_spent=4,
            unlocked_at=datetime(2024, 3, 2, 10, 30, tzinfo=timezone.utc),
            contact=ContactSnapshot(
                name="Anna Muster",
                email="anna@example.ch",
                phone="+41 79 000 00 00",
                address="Bahnhofstrasse 1, 8001 Zürich",
                budget_display="CHF 800 - 1'000",
                project_title="Küche erneuern"
            )
        )]
    )


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("PRAGMA table_info(account_state)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == ['business_id', 'version', 'payload', 'updated_at']
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            initialize_schema(db_path)


class TestStateEncoding:
    """Test the versioned account blob."""

    def test_round_trip_preserves_state(self):
        state = _sample_state()
        assert decode_state("biz-1", encode_state(state)) == state

    def test_unknown_version_rejected(self):
        data = json.loads(encode_state(_sample_state()))
        data["version"] = STATE_VERSION + 1
        payload = json.dumps(data)
        with pytest.raises(StorageFailure, match="unsupported state version"):
            decode_state("biz-1", payload)

    def test_corrupt_payload_rejected(self):
        with pytest.raises(StorageFailure, match="corrupt"):
            decode_state("biz-1", "{not json")


class TestAccountRepository:
    """Test loading, saving and transactions."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repository = AccountRepository(self.db_path, initial_credits=10)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_unknown_business_gets_initial_grant(self):
        state = self.repository.load("new-biz")
        assert state.balance == 10
        assert state.subscription is None
        assert state.unlocks == []

    def test_load_does_not_write(self):
        self.repository.load("new-biz")
        conn = get_connection(self.db_path)
        try:
            count = conn.execute("SELECT COUNT(*) FROM account_state").fetchone()[0]
        finally:
            conn.close()
        assert count == 0

    def test_save_and_load(self):
        """Test that state persists across repository instances."""
        self.repository.save(_sample_state())
        reloaded = AccountRepository(self.db_path).load("biz-1")
        assert reloaded == _sample_state()

    def test_transact_commits_mutation(self):
        result = self.repository.transact("biz-1", lambda s: CreditLedger(s).credit(5))
        assert result == 15
        assert self.repository.load("biz-1").balance == 15

    def test_transact_rolls_back_on_callback_error(self):
        """Verify a failing callback leaves the stored state unchanged."""
        self.repository.transact("biz-1", lambda s: CreditLedger(s).credit(1))

        def debit_then_fail(state):
            CreditLedger(state).debit(3)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            self.repository.transact("biz-1", debit_then_fail)
        assert self.repository.load("biz-1").balance == 11

    def test_ledger_errors_propagate_unchanged(self):
        with pytest.raises(InsufficientCredits):
            self.repository.transact("biz-1", lambda s: CreditLedger(s).debit(50))
        assert self.repository.load("biz-1").balance == 10

    def test_write_failure_surfaces_storage_failure(self):
        """Verify I/O errors are wrapped and nothing is persisted."""
        with patch.object(
            AccountRepository, "_write",
            side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(StorageFailure) as exc_info:
                self.repository.transact("biz-1", lambda s: CreditLedger(s).credit(5))
        assert isinstance(exc_info.value.cause, sqlite3.OperationalError)
        assert self.repository.load("biz-1").balance == 10

    def test_missing_schema_is_storage_failure(self):
        repository = AccountRepository(os.path.join(self.temp_dir, "empty.db"))
        with pytest.raises(StorageFailure):
            repository.load("biz-1")

    def test_updated_at_is_utc(self):
        self.repository.transact("biz-1", lambda s: CreditLedger(s).credit(1))
        conn = get_connection(self.db_path)
        try:
            raw = conn.execute("SELECT updated_at FROM account_state").fetchone()[0]
        finally:
            conn.close()
        assert datetime.fromisoformat(raw).utcoffset() == timedelta(0)

    def test_idle_business_locks_are_released(self):
        """Verify the lock table does not grow with every business seen."""
        for index in range(50):
            self.repository.transact(f"biz-{index}", lambda s: CreditLedger(s).credit(1))
        gc.collect()
        assert len(self.repository._locks) == 0

    def test_negative_initial_grant_rejected(self):
        with pytest.raises(ValueError):
            AccountRepository(self.db_path, initial_credits=-1)

    def test_concurrent_transactions_do_not_lose_updates(self):
        """Verify per-business serialization of read-modify-write."""
        errors = []

        def add_one():
            try:
                self.repository.transact("biz-1", lambda s: CreditLedger(s).credit(1))
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [threading.Thread(target=add_one) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert self.repository.load("biz-1").balance == 30
