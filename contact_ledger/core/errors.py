"""
Typed failures raised by the ledger.

Every error is distinguishable by class; callers never parse messages.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger failures."""


class InsufficientCredits(LedgerError):
    """Raised when a debit exceeds the available balance.

    Recoverable: the UI should prompt the business to buy credits.
    """
    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient credits: {required} required, {available} available"
        )
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int:
        """Credits missing to complete the debit."""
        return self.required - self.available


class ProjectNotFound(LedgerError):
    """Raised when the project catalog has no such project."""
    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class NotAuthorized(LedgerError):
    """Raised when an account may not perform a ledger operation."""
    def __init__(self, account_id: str, reason: str = "not a business account"):
        super().__init__(f"Account {account_id} not authorized: {reason}")
        self.account_id = account_id
        self.reason = reason


class PremiumRequired(NotAuthorized):
    """Raised when a premium-only package is bought without premium status."""
    def __init__(self, account_id: str, package_id: str):
        super().__init__(account_id, f"package {package_id} requires premium")
        self.package_id = package_id


class PackageNotFound(LedgerError):
    """Raised for an unknown credit package id."""
    def __init__(self, package_id: str):
        super().__init__(f"Credit package not found: {package_id}")
        self.package_id = package_id


class PlanNotFound(LedgerError):
    """Raised for an unknown subscription plan id."""
    def __init__(self, plan_id: str):
        super().__init__(f"Subscription plan not found: {plan_id}")
        self.plan_id = plan_id


class StorageFailure(LedgerError):
    """Raised when persisted state cannot be read or written.

    Never retried automatically; the in-memory mutation of the failed
    operation has already been discarded when this is raised.
    """
    def __init__(self, business_id: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Storage failure for {business_id}: {message}")
        self.business_id = business_id
        self.cause = cause
