"""
In-memory ledgers over a single business's account state.

These classes never perform I/O. The engine obtains an AccountState from
the repository inside a transaction, mutates it through these ledgers and
lets the repository persist the result as one unit.
"""

from typing import List, Optional

from .errors import InsufficientCredits
from ..storage.models import AccountState, Subscription, UnlockRecord


class CreditLedger:
    """Integer credit balance of one business. Never goes negative."""

    def __init__(self, state: AccountState):
        self.state = state

    @property
    def balance(self) -> int:
        return self.state.balance

    def credit(self, amount: int) -> int:
        """Add purchased credits and return the new balance."""
        if amount <= 0:
            raise ValueError("credit amount must be > 0")
        self.state.balance += amount
        return self.state.balance

    def debit(self, amount: int) -> int:
        """Remove credits if the balance covers them.

        Args:
            amount: Credits to remove

        Returns:
            New balance

        Raises:
            ValueError: If amount is not positive
            InsufficientCredits: If balance < amount; the balance is untouched
        """
        if amount <= 0:
            raise ValueError("debit amount must be > 0")
        if self.state.balance < amount:
            raise InsufficientCredits(required=amount, available=self.state.balance)
        self.state.balance -= amount
        return self.state.balance


class SubscriptionLedger:
    """Optional active subscription of one business."""

    def __init__(self, state: AccountState):
        self.state = state

    @property
    def current(self) -> Optional[Subscription]:
        return self.state.subscription

    def subscribe(self, subscription: Subscription) -> None:
        """Replace any existing subscription."""
        if subscription.business_id != self.state.business_id:
            raise ValueError("subscription belongs to another business")
        self.state.subscription = subscription

    def cancel(self) -> Optional[Subscription]:
        """Remove the subscription, returning the cancelled one if any."""
        cancelled = self.state.subscription
        self.state.subscription = None
        return cancelled

    def purchase_discount(self) -> int:
        """Discount percent applied to credit purchases, 0 without subscription."""
        if self.state.subscription is None:
            return 0
        return self.state.subscription.purchase_discount_percent


class UnlockRegistry:
    """Append-only set of unlock records, at most one per project."""

    def __init__(self, state: AccountState):
        self.state = state

    def find(self, project_id: str) -> Optional[UnlockRecord]:
        for record in self.state.unlocks:
            if record.project_id == project_id:
                return record
        return None

    def append(self, record: UnlockRecord) -> None:
        """Add a record; a second record for the same project is rejected."""
        if record.business_id != self.state.business_id:
            raise ValueError("unlock record belongs to another business")
        if self.find(record.project_id) is not None:
            raise ValueError(f"Project {record.project_id} is already unlocked")
        self.state.unlocks.append(record)

    def newest_first(self) -> List[UnlockRecord]:
        """Records ordered by unlock time, most recent first."""
        # ties keep the later append first
        indexed = list(enumerate(self.state.unlocks))
        indexed.sort(key=lambda item: (item[1].unlocked_at, item[0]), reverse=True)
        return [record for _, record in indexed]

    def __len__(self) -> int:
        return len(self.state.unlocks)
