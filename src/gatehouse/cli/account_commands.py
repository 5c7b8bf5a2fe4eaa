"""Account provisioning CLI commands."""

import typer
from rich.panel import Panel
from rich.table import Table

from src.gatehouse.core.models.provider import ProviderType
from src.gatehouse.core.services.account.admin import AccountAdminService

from .utils import console, fail, get_database_service

# Create the accounts command group
accounts_app = typer.Typer(help="👥 Account provisioning and identity links")


def get_admin_service() -> AccountAdminService:
    return AccountAdminService(get_database_service())


@accounts_app.command("list")
def list_accounts(
    limit: int = typer.Option(50, help="Maximum number of accounts to show"),
) -> None:
    """
    📋 List provisioned accounts.
    """
    accounts = get_admin_service().list_accounts(limit)
    if not accounts:
        console.print("[yellow]No accounts provisioned yet[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Email", style="cyan")
    table.add_column("Name", style="blue")
    table.add_column("Status", style="yellow")
    table.add_column("Active", style="yellow")
    table.add_column("Last Login", style="green")

    for account in accounts:
        table.add_row(
            account.email,
            account.display_name,
            account.account_status,
            "✅" if account.is_active else "❌",
            account.last_login_at.isoformat() if account.last_login_at else "-",
        )

    console.print(table)
    console.print(f"\n[dim]Showing {len(accounts)} accounts[/dim]")


@accounts_app.command("create")
def create_account(
    email: str = typer.Argument(..., help="Email the user's identity provider will assert"),
    first_name: str | None = typer.Option(None, "--first-name", help="First name"),
    last_name: str | None = typer.Option(None, "--last-name", help="Last name"),
) -> None:
    """
    ➕ Provision an account.

    The account is linked to an external identity on the user's first login
    with a matching email.
    """
    console.print(Panel.fit(f"[bold green]Provisioning: {email}[/bold green]", border_style="green"))
    try:
        account = get_admin_service().create_account(email, first_name, last_name)
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ Account created: {account.id}[/green]")


@accounts_app.command("deactivate")
def deactivate_account(
    email: str = typer.Argument(..., help="Account email"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """
    🚫 Deactivate an account. Existing sessions stop resolving on their next request.
    """
    if not force and not typer.confirm(f"Deactivate account '{email}'?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(0)

    try:
        get_admin_service().set_active(email, False)
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ Account '{email}' deactivated[/green]")


@accounts_app.command("activate")
def activate_account(email: str = typer.Argument(..., help="Account email")) -> None:
    """
    ♻️  Re-enable a deactivated account.
    """
    try:
        get_admin_service().set_active(email, True)
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ Account '{email}' activated[/green]")


@accounts_app.command("identities")
def list_identities(email: str = typer.Argument(..., help="Account email")) -> None:
    """
    🔗 Show the external identities linked to an account.
    """
    try:
        identities = get_admin_service().list_identities(email)
    except ValueError as e:
        fail(str(e))

    if not identities:
        console.print(f"[yellow]No identities linked to '{email}'[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Provider", style="cyan")
    table.add_column("External ID", style="blue")
    table.add_column("Email", style="green")
    table.add_column("Last Used", style="yellow")
    for identity in identities:
        table.add_row(
            identity.provider_type,
            identity.external_id,
            identity.email or "-",
            identity.last_used_at.isoformat() if identity.last_used_at else "-",
        )
    console.print(table)


@accounts_app.command("unlink")
def unlink_identity(
    email: str = typer.Argument(..., help="Account email"),
    provider: ProviderType = typer.Argument(..., help="Provider type to unlink"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """
    ✂️  Remove the account's link to one provider.

    The next login through that provider links again by email.
    """
    if not force and not typer.confirm(f"Unlink {provider.value} identity from '{email}'?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(0)

    try:
        unlinked = get_admin_service().unlink(email, provider)
    except ValueError as e:
        fail(str(e))

    if not unlinked:
        console.print(f"[yellow]'{email}' has no {provider.value} identity[/yellow]")
        return
    console.print(f"[green]✅ Unlinked {provider.value} identity from '{email}'[/green]")
