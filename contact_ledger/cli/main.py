"""
CLI interface for Contact Ledger.

Provides command-line access to balances, purchases, subscriptions and unlocks.
"""

import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from contact_ledger.config.loader import (
    LedgerConfig,
    load_ledger_config,
    load_project_catalog,
)
from contact_ledger.core.catalog import AccountDirectory, ProjectCatalog
from contact_ledger.core.engine import UnlockEngine
from contact_ledger.core.errors import InsufficientCredits, LedgerError
from contact_ledger.storage.repository import AccountRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1


class _Settings:
    config_path: Optional[str] = None
    projects_path: Optional[str] = None


settings = _Settings()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to ledger YAML configuration"
    ),
    projects: Optional[str] = typer.Option(
        None, "--projects", "-p", help="Path to project catalog YAML"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log ledger activity"
    )
):
    """Contact Ledger CLI."""
    settings.config_path = config
    settings.projects_path = projects
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)]
        )
    if ctx.invoked_subcommand is None:
        console.print("Contact Ledger - Use --help to see available commands")


def _load_config() -> LedgerConfig:
    if settings.config_path is None:
        return LedgerConfig.default()
    return load_ledger_config(settings.config_path)


def _build_engine() -> UnlockEngine:
    config = _load_config()
    catalog = ProjectCatalog()
    if settings.projects_path is not None:
        catalog = load_project_catalog(settings.projects_path)
    repository = AccountRepository(config.database, initial_credits=config.initial_credits)
    return UnlockEngine(
        repository=repository,
        projects=catalog,
        accounts=AccountDirectory(),
        packages=config.packages,
        plans=config.plans
    )


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _run(action):
    """Run a command body, turning ledger and config errors into exit codes."""
    try:
        action()
    except InsufficientCredits as e:
        _fail(f"{e.required} credits required, {e.available} available "
              f"(buy at least {e.shortfall} more)")
    except (LedgerError, ValueError, FileNotFoundError, yaml.YAMLError) as e:
        _fail(str(e))
    sys.exit(EXIT_CODE_OK)


@app.command()
def init():
    """Initialize the Contact Ledger database."""
    def action():
        initialize_schema(_load_config().database)
        console.print("[green]✓[/] Database initialized successfully")
    _run(action)


@app.command()
def balance(business: str = typer.Argument(..., help="Business id")):
    """Show a business's credit balance and subscription."""
    def action():
        engine = _build_engine()
        console.print(f"Balance: [bold]{engine.get_balance(business)}[/] credits")
        subscription = engine.current_subscription(business)
        if subscription is not None:
            console.print(
                f"Subscription: {subscription.plan_id} "
                f"({subscription.purchase_discount_percent}% purchase bonus)"
            )
    _run(action)


@app.command()
def price(project: str = typer.Argument(..., help="Project id")):
    """Preview the credit cost of unlocking a project."""
    def action():
        cost = _build_engine().preview_price(project)
        console.print(f"Unlocking {project} costs [bold]{cost}[/] credits")
    _run(action)


@app.command()
def packages():
    """List purchasable credit packages."""
    def action():
        table = Table(title="Credit Packages")
        table.add_column("Package")
        table.add_column("Credits", justify="right")
        table.add_column("Price (CHF)", justify="right")
        table.add_column("Premium only")
        for package in _load_config().packages.packages.values():
            table.add_row(
                package.id,
                str(package.credits),
                f"{package.price_chf:,.2f}",
                "yes" if package.premium_only else ""
            )
        console.print(table)
    _run(action)


@app.command()
def purchase(
    business: str = typer.Argument(..., help="Business id"),
    package: str = typer.Argument(..., help="Credit package id")
):
    """Buy a credit package (simulated top-up)."""
    def action():
        new_balance = _build_engine().purchase(business, package)
        console.print(f"[green]✓[/] Purchased {package}, balance is now {new_balance}")
    _run(action)


@app.command()
def unlock(
    business: str = typer.Argument(..., help="Business id"),
    project: str = typer.Argument(..., help="Project id")
):
    """Unlock a project's customer contact details."""
    def action():
        outcome = _build_engine().unlock(business, project)
        if outcome.already_unlocked:
            console.print(f"[yellow]Already unlocked[/] {project}, nothing charged")
        else:
            console.print(
                f"[green]✓[/] Unlocked {project} for {outcome.charged} credits, "
                f"balance is now {outcome.balance}"
            )
        contact = outcome.record.contact
        console.print(f"{contact.name} <{contact.email}> {contact.phone}")
        console.print(f"{contact.address} | {contact.budget_display}")
    _run(action)


@app.command()
def subscribe(
    business: str = typer.Argument(..., help="Business id"),
    plan: str = typer.Argument(..., help="Subscription plan id")
):
    """Subscribe a business to a premium plan."""
    def action():
        subscription = _build_engine().subscribe(business, plan)
        console.print(
            f"[green]✓[/] Subscribed to {plan} "
            f"({subscription.purchase_discount_percent}% purchase bonus)"
        )
    _run(action)


@app.command()
def cancel(business: str = typer.Argument(..., help="Business id")):
    """Cancel a business's subscription."""
    def action():
        cancelled = _build_engine().cancel(business)
        if cancelled is None:
            console.print("No active subscription")
        else:
            console.print(f"[green]✓[/] Cancelled {cancelled.plan_id}")
    _run(action)


@app.command()
def contacts(business: str = typer.Argument(..., help="Business id")):
    """List unlocked contacts, most recent first."""
    def action():
        records = _build_engine().list_unlocked_contacts(business)
        if not records:
            console.print("[dim]No unlocked contacts.[/]")
            return
        table = Table(title="Unlocked Contacts")
        table.add_column("Unlocked")
        table.add_column("Project")
        table.add_column("Name")
        table.add_column("Email")
        table.add_column("Phone")
        table.add_column("Credits", justify="right")
        for record in records:
            table.add_row(
                record.unlocked_at.strftime("%Y-%m-%d %H:%M"),
                record.contact.project_title,
                record.contact.name,
                record.contact.email,
                record.contact.phone,
                str(record.credits_spent)
            )
        console.print(table)
    _run(action)


if __name__ == "__main__":
    app()
