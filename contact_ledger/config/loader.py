"""
Configuration management and loading.

Handles ledger settings, catalogs and project catalog files.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.catalog import (
    DEFAULT_PACKAGES,
    DEFAULT_PLANS,
    PackageCatalog,
    PlanCatalog,
    ProjectCatalog,
)
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import (
    BillingCycle,
    BudgetRange,
    CreditPackage,
    Location,
    Project,
    SubscriptionPlan,
)


@dataclass(frozen=True)
class LedgerConfig:
    """Complete ledger configuration."""
    initial_credits: int
    database: str
    packages: PackageCatalog
    plans: PlanCatalog

    def __post_init__(self):
        """Validate ledger settings."""
        if self.initial_credits < 0:
            raise ValueError("initial_credits must be >= 0")
        if not self.database:
            raise ValueError("database path cannot be empty")

    @classmethod
    def default(cls) -> "LedgerConfig":
        """Configuration used when no file is given."""
        return cls(
            initial_credits=0,
            database=DEFAULT_DB_PATH,
            packages=DEFAULT_PACKAGES,
            plans=DEFAULT_PLANS
        )


def _read_yaml(path: str, kind: str) -> Any:
    """Read a YAML file, failing loudly on missing, invalid or empty files."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"{kind} file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in {kind.lower()} file {path}: {e}")

    if not raw:
        raise ValueError(f"{kind} file is empty")
    return raw


def _check_keys(data: Dict, allowed: set, required: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")
    for key in sorted(required):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")


def _require_int(value: Any, key: str, path: str, minimum: int, maximum: int = None) -> int:
    # bool is an int subclass, reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"'{key}' in {path} must be an integer")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValueError(f"'{key}' in {path} must be {bounds}")
    return value


def _require_price(value: Any, key: str, path: str) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ValueError(f"'{key}' in {path} must be > 0")
    return float(value)


def _optional_str(data: Dict, key: str, path: str) -> Optional[str]:
    # unquoted phone numbers like +41791234567 load as int and lose the sign
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{key}' in {path} must be a string")
    return value


def load_ledger_config(path: str) -> LedgerConfig:
    """Load and validate ledger configuration from YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated LedgerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    raw_config = _read_yaml(path, "Config")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")
    _check_keys(raw_config, {'ledger', 'packages', 'subscriptions'}, {'ledger'}, "config")

    ledger_data = raw_config['ledger']
    if not isinstance(ledger_data, dict):
        raise ValueError("'ledger' must be a dictionary")
    _check_keys(ledger_data, {'initial_credits', 'database'}, set(), "ledger")

    initial_credits = _require_int(ledger_data.get('initial_credits', 0), 'initial_credits', "ledger", 0)
    database = ledger_data.get('database', DEFAULT_DB_PATH)
    if not isinstance(database, str) or not database.strip():
        raise ValueError("'database' in ledger must be a non-empty string")

    packages = DEFAULT_PACKAGES
    if 'packages' in raw_config:
        packages_data = raw_config['packages']
        if not isinstance(packages_data, dict) or not packages_data:
            raise ValueError("'packages' must be a non-empty dictionary")
        packages = PackageCatalog({
            package_id: _parse_package(package_id, data)
            for package_id, data in packages_data.items()
        })

    plans = DEFAULT_PLANS
    if 'subscriptions' in raw_config:
        plans_data = raw_config['subscriptions']
        if not isinstance(plans_data, dict) or not plans_data:
            raise ValueError("'subscriptions' must be a non-empty dictionary")
        plans = PlanCatalog({
            plan_id: _parse_plan(plan_id, data)
            for plan_id, data in plans_data.items()
        })

    return LedgerConfig(
        initial_credits=initial_credits,
        database=database,
        packages=packages,
        plans=plans
    )


def _parse_package(package_id: str, data: Any) -> CreditPackage:
    """Parse and validate one credit package entry."""
    path = f"packages.{package_id}"
    if not isinstance(data, dict):
        raise ValueError(f"Package '{package_id}' must be a dictionary")
    _check_keys(
        data,
        {'name', 'credits', 'price_chf', 'discount_percent', 'premium_only'},
        {'credits', 'price_chf'},
        path
    )

    discount = data.get('discount_percent')
    if discount is not None:
        discount = _require_int(discount, 'discount_percent', path, 0, 100)

    premium_only = data.get('premium_only', False)
    if not isinstance(premium_only, bool):
        raise ValueError(f"'premium_only' in {path} must be true or false")

    return CreditPackage(
        id=package_id,
        name=str(data.get('name', package_id)),
        credits=_require_int(data['credits'], 'credits', path, 1),
        price_chf=_require_price(data['price_chf'], 'price_chf', path),
        discount_percent=discount,
        premium_only=premium_only
    )


def _parse_plan(plan_id: str, data: Any) -> SubscriptionPlan:
    """Parse and validate one subscription plan entry."""
    path = f"subscriptions.{plan_id}"
    if not isinstance(data, dict):
        raise ValueError(f"Subscription '{plan_id}' must be a dictionary")
    _check_keys(
        data,
        {'name', 'billing_cycle', 'price_chf', 'purchase_discount_percent'},
        {'billing_cycle', 'price_chf', 'purchase_discount_percent'},
        path
    )

    cycle = data['billing_cycle']
    try:
        billing_cycle = BillingCycle(str(cycle).lower())
    except ValueError:
        valid_cycles = [c.value for c in BillingCycle]
        raise ValueError(f"'billing_cycle' in {path} must be one of: {valid_cycles}")

    return SubscriptionPlan(
        id=plan_id,
        name=str(data.get('name', plan_id)),
        billing_cycle=billing_cycle,
        price_chf=_require_price(data['price_chf'], 'price_chf', path),
        purchase_discount_percent=_require_int(
            data['purchase_discount_percent'], 'purchase_discount_percent', path, 0, 100
        )
    )


def load_project_catalog(path: str) -> ProjectCatalog:
    """Load a read-only project catalog from a YAML list of projects.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If an entry is invalid or an id repeats
    """
    raw = _read_yaml(path, "Project catalog")
    if not isinstance(raw, list):
        raise ValueError("Project catalog must be a list of projects")

    projects: List[Project] = []
    for index, data in enumerate(raw):
        projects.append(_parse_project(data, f"projects[{index}]"))
    return ProjectCatalog(projects)


def _parse_project(data: Any, path: str) -> Project:
    """Parse and validate one project entry."""
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")
    _check_keys(
        data,
        {'id', 'title', 'customer_id', 'budget', 'location',
         'contact_name', 'contact_email', 'contact_phone'},
        {'id', 'title', 'customer_id', 'location'},
        path
    )

    location_data = data['location']
    if not isinstance(location_data, dict):
        raise ValueError(f"'location' in {path} must be a dictionary")
    _check_keys(
        location_data,
        {'address', 'postal_code', 'city', 'canton'},
        {'address', 'postal_code', 'city'},
        f"{path}.location"
    )

    budget = None
    if data.get('budget') is not None:
        budget_data = data['budget']
        if not isinstance(budget_data, dict):
            raise ValueError(f"'budget' in {path} must be a dictionary")
        _check_keys(budget_data, {'min', 'max'}, {'min', 'max'}, f"{path}.budget")
        for key in ('min', 'max'):
            if not isinstance(budget_data[key], (int, float)) or isinstance(budget_data[key], bool):
                raise ValueError(f"'{key}' in {path}.budget must be a number")
        budget = BudgetRange(min=budget_data['min'], max=budget_data['max'])

    return Project(
        id=str(data['id']),
        title=str(data['title']),
        customer_id=str(data['customer_id']),
        location=Location(
            address=str(location_data['address']),
            postal_code=str(location_data['postal_code']),
            city=str(location_data['city']),
            canton=str(location_data.get('canton', ''))
        ),
        budget=budget,
        contact_name=_optional_str(data, 'contact_name', path),
        contact_email=_optional_str(data, 'contact_email', path),
        contact_phone=_optional_str(data, 'contact_phone', path)
    )
