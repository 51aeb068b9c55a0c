"""
Unlock engine and the operations exposed to UI collaborators.

Unlock flow for one (business, project) pair:
1. Resolve the project from the catalog
2. Return the existing record if the pair is already unlocked (no charge)
3. Price the project from its budget
4. Debit the credit ledger
5. Snapshot the contact details into a new unlock record
6. Append the record and persist ledger and registry together

Steps 2-6 run inside one repository transaction, so a double-tap or a
retried call can never charge twice or grant access without charging.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Callable, List, Optional

from .catalog import (
    DEFAULT_PACKAGES,
    DEFAULT_PLANS,
    AccountDirectory,
    PackageCatalog,
    PlanCatalog,
    ProjectCatalog,
)
from .errors import InsufficientCredits, NotAuthorized, PremiumRequired, ProjectNotFound
from .ledger import CreditLedger, SubscriptionLedger, UnlockRegistry
from .pricing import credits_for_purchase, format_budget, price_for
from ..storage.models import (
    AccountState,
    ContactSnapshot,
    Project,
    Subscription,
    UnlockRecord,
)
from ..storage.repository import AccountRepository

logger = logging.getLogger(__name__)

UNKNOWN_CONTACT_NAME = "Unbekannt"


class UnlockStatus(Enum):
    """How an unlock request was satisfied."""
    UNLOCKED = auto()          # Newly unlocked, credits charged
    ALREADY_UNLOCKED = auto()  # Existing record returned, nothing charged


@dataclass(frozen=True)
class UnlockOutcome:
    """Result of an unlock request."""
    record: UnlockRecord
    status: UnlockStatus
    charged: int
    balance: int

    @property
    def already_unlocked(self) -> bool:
        return self.status == UnlockStatus.ALREADY_UNLOCKED


def snapshot_contact(project: Project) -> ContactSnapshot:
    """Copy a project's current contact details."""
    location = project.location
    return ContactSnapshot(
        name=project.contact_name or UNKNOWN_CONTACT_NAME,
        email=project.contact_email or "",
        phone=project.contact_phone or "",
        address=f"{location.address}, {location.postal_code} {location.city}",
        budget_display=format_budget(project.budget),
        project_title=project.title,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnlockEngine:
    """Credit ledger and contact unlock operations for business accounts.

    Args:
        repository: Persistence adapter holding per-business state
        projects: Project catalog to resolve projects from
        accounts: Account collaborator for business and premium status
        packages: Credit package catalog
        plans: Subscription plan catalog
        clock: Source of unlock and subscription timestamps
    """

    def __init__(
        self,
        repository: AccountRepository,
        projects: ProjectCatalog,
        accounts: Optional[AccountDirectory] = None,
        packages: PackageCatalog = DEFAULT_PACKAGES,
        plans: PlanCatalog = DEFAULT_PLANS,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.repository = repository
        self.projects = projects
        self.accounts = accounts or AccountDirectory()
        self.packages = packages
        self.plans = plans
        self.clock = clock

    def _require_business(self, business_id: str) -> None:
        if not self.accounts.is_business(business_id):
            raise NotAuthorized(business_id)

    def _get_project(self, project_id: str) -> Project:
        project = self.projects.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def preview_price(self, project_id: str) -> int:
        """Credits an unlock of the project would cost. Read-only."""
        return price_for(self._get_project(project_id).budget)

    def get_balance(self, business_id: str) -> int:
        self._require_business(business_id)
        return self.repository.load(business_id).balance

    def has_enough_credits(self, business_id: str, project_id: str) -> bool:
        return self.get_balance(business_id) >= self.preview_price(project_id)

    def is_unlocked(self, business_id: str, project_id: str) -> bool:
        self._require_business(business_id)
        state = self.repository.load(business_id)
        return UnlockRegistry(state).find(project_id) is not None

    def purchase(self, business_id: str, package_id: str) -> int:
        """Simulated top-up: add a package's credits to the balance.

        An active subscription's purchase discount adds bonus credits,
        rounded down.

        Returns:
            New balance

        Raises:
            NotAuthorized: If the account is not a business
            PackageNotFound: If the package id is unknown
            PremiumRequired: If the package is premium-only and the business is not premium
            StorageFailure: If the new balance cannot be persisted
        """
        self._require_business(business_id)
        package = self.packages.get_package(package_id)

        def apply(state: AccountState) -> int:
            subscriptions = SubscriptionLedger(state)
            if package.premium_only and not (
                    self.accounts.is_premium(business_id) or subscriptions.current is not None):
                raise PremiumRequired(business_id, package_id)
            granted = credits_for_purchase(package, subscriptions.purchase_discount())
            balance = CreditLedger(state).credit(granted)
            logger.info(
                "Business %s bought %s: %d credits granted, balance %d",
                business_id, package_id, granted, balance
            )
            return balance

        return self.repository.transact(business_id, apply)

    def unlock(self, business_id: str, project_id: str) -> UnlockOutcome:
        """Unlock a project's contact details, charging at most once.

        Returns:
            UnlockOutcome; a repeated request returns the original record
            with ALREADY_UNLOCKED status and charges nothing

        Raises:
            NotAuthorized: If the account is not a business
            ProjectNotFound: If the project does not exist
            InsufficientCredits: If the balance cannot cover the price; nothing changes
            StorageFailure: If the result cannot be persisted; nothing changes
        """
        self._require_business(business_id)
        project = self._get_project(project_id)

        def apply(state: AccountState) -> UnlockOutcome:
            registry = UnlockRegistry(state)
            existing = registry.find(project_id)
            if existing is not None:
                return UnlockOutcome(
                    record=existing,
                    status=UnlockStatus.ALREADY_UNLOCKED,
                    charged=0,
                    balance=state.balance
                )

            cost = price_for(project.budget)
            balance = CreditLedger(state).debit(cost)
            record = UnlockRecord(
                id=uuid.uuid4().hex,
                business_id=business_id,
                project_id=project_id,
                credits_spent=cost,
                unlocked_at=self.clock(),
                contact=snapshot_contact(project)
            )
            registry.append(record)
            return UnlockOutcome(
                record=record,
                status=UnlockStatus.UNLOCKED,
                charged=cost,
                balance=balance
            )

        try:
            outcome = self.repository.transact(business_id, apply)
        except InsufficientCredits as e:
            logger.warning(
                "Business %s cannot unlock %s: %d required, %d available",
                business_id, project_id, e.required, e.available
            )
            raise

        if outcome.already_unlocked:
            logger.info("Business %s already unlocked %s", business_id, project_id)
        else:
            logger.info(
                "Business %s unlocked %s for %d credits, balance %d",
                business_id, project_id, outcome.charged, outcome.balance
            )
        return outcome

    def subscribe(self, business_id: str, plan_id: str) -> Subscription:
        """Start a subscription, replacing any existing one."""
        self._require_business(business_id)
        plan = self.plans.get_plan(plan_id)
        subscription = Subscription(
            id=uuid.uuid4().hex,
            business_id=business_id,
            plan_id=plan.id,
            billing_cycle=plan.billing_cycle,
            purchase_discount_percent=plan.purchase_discount_percent,
            started_at=self.clock()
        )

        def apply(state: AccountState) -> None:
            SubscriptionLedger(state).subscribe(subscription)

        self.repository.transact(business_id, apply)
        logger.info("Business %s subscribed to %s", business_id, plan_id)
        return subscription

    def cancel(self, business_id: str) -> Optional[Subscription]:
        """Cancel the active subscription. Unlock records are unaffected."""
        self._require_business(business_id)
        cancelled = self.repository.transact(
            business_id, lambda state: SubscriptionLedger(state).cancel()
        )
        if cancelled is not None:
            logger.info("Business %s cancelled %s", business_id, cancelled.plan_id)
        return cancelled

    def current_subscription(self, business_id: str) -> Optional[Subscription]:
        self._require_business(business_id)
        return self.repository.load(business_id).subscription

    def list_unlocked_contacts(self, business_id: str) -> List[UnlockRecord]:
        """Unlock records of a business, most recently unlocked first."""
        self._require_business(business_id)
        state = self.repository.load(business_id)
        return UnlockRegistry(state).newest_first()
