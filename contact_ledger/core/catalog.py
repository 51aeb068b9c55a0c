"""
Read-only collaborators of the ledger.

Project lookups, account identity and the package and plan catalogs.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from .errors import PackageNotFound, PlanNotFound
from ..storage.models import BillingCycle, CreditPackage, Project, SubscriptionPlan


class ProjectCatalog:
    """Query-only repository of projects.

    The ledger reads a project once, at unlock time, to snapshot its
    contact details. It never writes projects back.
    """

    def __init__(self, projects: Iterable[Project] = ()):
        self._projects: Dict[str, Project] = {}
        for project in projects:
            if project.id in self._projects:
                raise ValueError(f"Duplicate project id: {project.id}")
            self._projects[project.id] = project

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._projects.get(project_id)

    def list_projects(self) -> List[Project]:
        return list(self._projects.values())

    def __len__(self) -> int:
        return len(self._projects)


class AccountDirectory:
    """Account collaborator: who is a business and who is premium.

    Args:
        businesses: Known business ids, or None to treat every id as a business
        premium: Business ids with premium status
        current: Business id of the signed-in account
    """

    def __init__(
        self,
        businesses: Optional[Iterable[str]] = None,
        premium: Iterable[str] = (),
        current: Optional[str] = None
    ):
        self._businesses: Optional[Set[str]] = set(businesses) if businesses is not None else None
        self._premium = set(premium)
        self._current = current

    def current_business_id(self) -> Optional[str]:
        return self._current

    def is_business(self, account_id: str) -> bool:
        if not account_id:
            return False
        return self._businesses is None or account_id in self._businesses

    def is_premium(self, business_id: str) -> bool:
        return business_id in self._premium


@dataclass(frozen=True)
class PackageCatalog:
    """Fixed set of purchasable credit packages."""
    packages: Dict[str, CreditPackage]

    def get_package(self, package_id: str) -> CreditPackage:
        """Get a package by id.

        Raises:
            PackageNotFound: If the id is unknown
        """
        if package_id not in self.packages:
            raise PackageNotFound(package_id)
        return self.packages[package_id]


@dataclass(frozen=True)
class PlanCatalog:
    """Fixed set of subscription plans."""
    plans: Dict[str, SubscriptionPlan]

    def get_plan(self, plan_id: str) -> SubscriptionPlan:
        """Get a plan by id.

        Raises:
            PlanNotFound: If the id is unknown
        """
        if plan_id not in self.plans:
            raise PlanNotFound(plan_id)
        return self.plans[plan_id]


DEFAULT_PACKAGES = PackageCatalog({
    "basic": CreditPackage(
        id="basic", name="Basis Paket", credits=10, price_chf=49
    ),
    "standard": CreditPackage(
        id="standard", name="Standard Paket", credits=25, price_chf=99,
        discount_percent=20
    ),
    "premium": CreditPackage(
        id="premium", name="Premium Paket", credits=50, price_chf=179,
        discount_percent=27
    ),
    "premium_plus": CreditPackage(
        id="premium_plus", name="Premium+ Paket", credits=100, price_chf=299,
        discount_percent=40, premium_only=True
    ),
})

DEFAULT_PLANS = PlanCatalog({
    "premium_monthly": SubscriptionPlan(
        id="premium_monthly", name="Premium Monatsabo",
        billing_cycle=BillingCycle.MONTHLY, price_chf=29.90,
        purchase_discount_percent=20
    ),
    "premium_yearly": SubscriptionPlan(
        id="premium_yearly", name="Premium Jahresabo",
        billing_cycle=BillingCycle.YEARLY, price_chf=299,
        purchase_discount_percent=30
    ),
})
