"""
Persistence adapter for per-business account state.

Each business owns one versioned JSON blob holding its balance,
subscription and unlock records. The blob is always loaded and saved
wholesale; the only way to change it is ``transact``.
"""

import json
import logging
import sqlite3
import threading
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from .db import DEFAULT_DB_PATH, get_connection
from .models import (
    AccountState,
    BillingCycle,
    ContactSnapshot,
    Subscription,
    UnlockRecord,
)
from ..core.errors import StorageFailure

logger = logging.getLogger(__name__)

STATE_VERSION = 1

T = TypeVar("T")


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the account_state table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS account_state (
                business_id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def _subscription_to_dict(subscription: Optional[Subscription]) -> Optional[Dict[str, Any]]:
    if subscription is None:
        return None
    return {
        "id": subscription.id,
        "business_id": subscription.business_id,
        "plan_id": subscription.plan_id,
        "billing_cycle": subscription.billing_cycle.value,
        "purchase_discount_percent": subscription.purchase_discount_percent,
        "started_at": subscription.started_at.isoformat(),
    }


def _subscription_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Subscription]:
    if data is None:
        return None
    return Subscription(
        id=data["id"],
        business_id=data["business_id"],
        plan_id=data["plan_id"],
        billing_cycle=BillingCycle(data["billing_cycle"]),
        purchase_discount_percent=data["purchase_discount_percent"],
        started_at=datetime.fromisoformat(data["started_at"]),
    )


def _record_to_dict(record: UnlockRecord) -> Dict[str, Any]:
    contact = record.contact
    return {
        "id": record.id,
        "business_id": record.business_id,
        "project_id": record.project_id,
        "credits_spent": record.credits_spent,
        "unlocked_at": record.unlocked_at.isoformat(),
        "contact": {
            "version": contact.version,
            "name": contact.name,
            "email": contact.email,
            "phone": contact.phone,
            "address": contact.address,
            "budget_display": contact.budget_display,
            "project_title": contact.project_title,
        },
    }


def _record_from_dict(data: Dict[str, Any]) -> UnlockRecord:
    contact = data["contact"]
    return UnlockRecord(
        id=data["id"],
        business_id=data["business_id"],
        project_id=data["project_id"],
        credits_spent=data["credits_spent"],
        unlocked_at=datetime.fromisoformat(data["unlocked_at"]),
        contact=ContactSnapshot(
            name=contact["name"],
            email=contact["email"],
            phone=contact["phone"],
            address=contact["address"],
            budget_display=contact["budget_display"],
            project_title=contact["project_title"],
            version=contact["version"],
        ),
    )


def encode_state(state: AccountState) -> str:
    """Serialize account state to its versioned JSON blob."""
    return json.dumps({
        "version": STATE_VERSION,
        "business_id": state.business_id,
        "balance": state.balance,
        "subscription": _subscription_to_dict(state.subscription),
        "unlocks": [_record_to_dict(record) for record in state.unlocks],
    }, sort_keys=True)


def decode_state(business_id: str, payload: str) -> AccountState:
    """Deserialize a blob written by ``encode_state``.

    Raises:
        StorageFailure: If the blob is corrupt or has an unknown version
    """
    try:
        data = json.loads(payload)
        version = data.get("version")
        if version != STATE_VERSION:
            raise StorageFailure(business_id, f"unsupported state version {version!r}")
        return AccountState(
            business_id=data["business_id"],
            balance=data["balance"],
            subscription=_subscription_from_dict(data["subscription"]),
            unlocks=[_record_from_dict(item) for item in data["unlocks"]],
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise StorageFailure(business_id, f"corrupt account state: {e}", e) from e


class AccountRepository:
    """Durable store of account state, one row per business.

    All writes go through ``transact`` which holds a per-business lock and
    an SQLite write transaction, so a check-then-act sequence on one
    business cannot interleave with another.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, initial_credits: int = 0):
        """Initialize the repository.

        Args:
            db_path: Path to SQLite database file
            initial_credits: Balance granted to a business on first access
        """
        if initial_credits < 0:
            raise ValueError("initial_credits cannot be negative")
        self.db_path = db_path
        self.initial_credits = initial_credits
        # locks vanish once no transaction holds them
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, business_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(business_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[business_id] = lock
            return lock

    def _new_state(self, business_id: str) -> AccountState:
        return AccountState(business_id=business_id, balance=self.initial_credits)

    def _read(self, conn: sqlite3.Connection, business_id: str) -> AccountState:
        cursor = conn.execute(
            "SELECT payload FROM account_state WHERE business_id = ?",
            (business_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return self._new_state(business_id)
        return decode_state(business_id, row[0])

    def _write(self, conn: sqlite3.Connection, state: AccountState) -> None:
        conn.execute("""
            INSERT INTO account_state (business_id, version, payload, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(business_id) DO UPDATE SET
                version = excluded.version,
                payload = excluded.payload,
                updated_at = excluded.updated_at
        """, (
            state.business_id,
            STATE_VERSION,
            encode_state(state),
            datetime.now(timezone.utc).isoformat()
        ))

    def load(self, business_id: str) -> AccountState:
        """Read the committed state of a business.

        A business without a stored row gets a fresh state carrying the
        initial credit grant. Nothing is written.

        Raises:
            StorageFailure: If the database cannot be read
        """
        try:
            conn = get_connection(self.db_path)
            try:
                return self._read(conn, business_id)
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Failed to load account %s: %s", business_id, e)
            raise StorageFailure(business_id, str(e), e) from e

    def save(self, state: AccountState) -> None:
        """Overwrite the stored state of a business as one unit."""
        self.transact(state.business_id, lambda _current: None, replace_with=state)

    def transact(
        self,
        business_id: str,
        fn: Callable[[AccountState], T],
        replace_with: Optional[AccountState] = None
    ) -> T:
        """Load, apply ``fn`` and save, atomically for one business.

        ``fn`` receives a private state object it may mutate. The mutation
        becomes visible only once the write has committed; if ``fn`` raises
        or the write fails, the transaction rolls back and the mutated
        object is discarded.

        Args:
            business_id: Business whose state is changed
            fn: Callback mutating the state and returning a result
            replace_with: State to store instead of the loaded one

        Returns:
            Whatever ``fn`` returned

        Raises:
            StorageFailure: If the database cannot be read or written
            Any exception raised by ``fn``, unchanged
        """
        with self._lock_for(business_id):
            try:
                conn = get_connection(self.db_path)
            except sqlite3.Error as e:
                logger.error("Failed to open store for %s: %s", business_id, e)
                raise StorageFailure(business_id, str(e), e) from e
            try:
                conn.execute("BEGIN IMMEDIATE")
                state = self._read(conn, business_id)
                result = fn(state)
                self._write(conn, replace_with if replace_with is not None else state)
                conn.commit()
                return result
            except sqlite3.Error as e:
                conn.rollback()
                logger.error("Failed to persist account %s: %s", business_id, e)
                raise StorageFailure(business_id, str(e), e) from e
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()
