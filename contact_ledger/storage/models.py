"""
Data models for the ledger and its collaborators.

Defines the value types persisted per business and the read-only
entities supplied by the project catalog.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


SNAPSHOT_VERSION = 1


class BillingCycle(Enum):
    """Billing cycle of a premium subscription."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class BudgetRange:
    """Advertised project budget in CHF."""
    min: float
    max: float

    def __post_init__(self):
        """Validate budget bounds."""
        if not (math.isfinite(self.min) and math.isfinite(self.max)):
            raise ValueError("budget bounds must be finite")
        if self.min < 0 or self.max < 0:
            raise ValueError("budget bounds cannot be negative")
        if self.min > self.max:
            raise ValueError("budget min must not exceed max")


@dataclass(frozen=True)
class Location:
    """Postal location of a project."""
    address: str
    postal_code: str
    city: str
    canton: str = ""


@dataclass(frozen=True)
class Project:
    """Customer service request, owned by the project catalog.

    The ledger only reads projects; it never mutates them.
    """
    id: str
    title: str
    customer_id: str
    location: Location
    budget: Optional[BudgetRange] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


@dataclass(frozen=True)
class ContactSnapshot:
    """Customer contact details copied at unlock time.

    Immutable once captured; later edits to the project do not reach it.
    """
    name: str
    email: str
    phone: str
    address: str
    budget_display: str
    project_title: str
    version: int = SNAPSHOT_VERSION


@dataclass(frozen=True)
class UnlockRecord:
    """Proof that a business paid for a project's contact details.

    At most one record exists per (business_id, project_id).
    """
    id: str
    business_id: str
    project_id: str
    credits_spent: int
    unlocked_at: datetime
    contact: ContactSnapshot


@dataclass(frozen=True)
class CreditPackage:
    """Purchasable bundle of credits."""
    id: str
    credits: int
    price_chf: float
    name: str = ""
    discount_percent: Optional[int] = None
    premium_only: bool = False

    def __post_init__(self):
        """Validate package values."""
        if self.credits <= 0:
            raise ValueError("package credits must be > 0")
        if self.price_chf <= 0:
            raise ValueError("package price must be > 0")
        if self.discount_percent is not None and not 0 <= self.discount_percent <= 100:
            raise ValueError("package discount_percent must be between 0 and 100")


@dataclass(frozen=True)
class SubscriptionPlan:
    """Catalog entry a business can subscribe to."""
    id: str
    billing_cycle: BillingCycle
    price_chf: float
    purchase_discount_percent: int
    name: str = ""

    def __post_init__(self):
        """Validate plan values."""
        if not 0 <= self.purchase_discount_percent <= 100:
            raise ValueError("purchase_discount_percent must be between 0 and 100")
        if self.price_chf <= 0:
            raise ValueError("plan price must be > 0")


@dataclass(frozen=True)
class Subscription:
    """Active subscription held by one business."""
    id: str
    business_id: str
    plan_id: str
    billing_cycle: BillingCycle
    purchase_discount_percent: int
    started_at: datetime


@dataclass
class AccountState:
    """Everything persisted for one business, written as one unit."""
    business_id: str
    balance: int
    subscription: Optional[Subscription] = None
    unlocks: List[UnlockRecord] = field(default_factory=list)
