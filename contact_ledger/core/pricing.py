"""
Unlock pricing and purchase arithmetic.

Maps a project budget to a credit cost in fixed CHF tiers. The same
function serves price previews and actual charges so both always agree.
"""

import math
from typing import Mapping, Optional, Union

from ..storage.models import BudgetRange, CreditPackage


TIER_SIZE_CHF = 250
MIN_PRICE = 1
NO_BUDGET_DISPLAY = "Budget nicht angegeben"

BudgetLike = Union[BudgetRange, Mapping[str, float], int, float, None]


def _budget_ceiling(budget: BudgetLike) -> Optional[float]:
    """Extract the upper budget bound, or None when no budget is given."""
    if budget is None:
        return None
    if isinstance(budget, BudgetRange):
        return budget.max
    if isinstance(budget, (int, float)):
        return float(budget)
    if isinstance(budget, Mapping):
        if "max" not in budget:
            raise ValueError("budget mapping requires a 'max' value")
        return float(budget["max"])
    raise TypeError(f"Unsupported budget type: {type(budget).__name__}")


def price_for(budget: BudgetLike) -> int:
    """Credit cost to unlock a project with the given budget.

    Cost is ceil(max(ceiling, 250) / 250): up to CHF 250 costs 1 credit,
    up to 500 costs 2, up to 750 costs 3, with no upper cap. A missing
    budget costs the tier-1 price.

    Args:
        budget: BudgetRange, ``{"min", "max"}`` mapping, bare ceiling or None

    Returns:
        Integer credit cost, always >= 1

    Raises:
        ValueError: If the budget ceiling is negative or not finite
    """
    ceiling = _budget_ceiling(budget)
    if ceiling is None:
        return MIN_PRICE
    if not math.isfinite(ceiling):
        raise ValueError("budget must be finite")
    if ceiling < 0:
        raise ValueError("budget cannot be negative")

    return max(MIN_PRICE, math.ceil(max(ceiling, TIER_SIZE_CHF) / TIER_SIZE_CHF))


def credits_for_purchase(package: CreditPackage, discount_percent: int = 0) -> int:
    """Credits granted when buying a package under a purchase discount.

    The discount adds bonus credits and is rounded down. It never applies
    to unlock pricing.
    """
    if not 0 <= discount_percent <= 100:
        raise ValueError("discount_percent must be between 0 and 100")
    # integer arithmetic keeps floor exact, e.g. 100 * 115 // 100 == 115
    return package.credits * (100 + discount_percent) // 100


def _format_chf(amount: float) -> str:
    """Format an amount with Swiss thousands separators."""
    text = f"{amount:,.0f}" if float(amount).is_integer() else f"{amount:,.2f}"
    return text.replace(",", "'")


def format_budget(budget: Optional[BudgetRange]) -> str:
    """Human readable budget as shown on an unlocked contact."""
    if budget is None:
        return NO_BUDGET_DISPLAY
    return f"CHF {_format_chf(budget.min)} - {_format_chf(budget.max)}"
