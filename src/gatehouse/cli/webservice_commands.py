"""Webservice client administration CLI commands."""

from datetime import timedelta

import typer
from rich.panel import Panel
from rich.table import Table

from src.gatehouse.core.services.webservice import CredentialIssuanceService
from src.gatehouse.entities._base import utc_now
from src.gatehouse.entities.webservice import ClientStatus

from .utils import console, fail, get_database_service

# Create the webservice command group
ws_app = typer.Typer(help="🔑 Webservice bundles, clients and credentials")


def get_issuance_service() -> CredentialIssuanceService:
    return CredentialIssuanceService(get_database_service())


@ws_app.command("create-bundle")
def create_bundle(
    code: str = typer.Argument(..., help="Lowercase bundle code, e.g. 'payroll'"),
    name: str = typer.Argument(..., help="Display name"),
    description: str | None = typer.Option(None, help="Description"),
    version: str = typer.Option("1.0.0", help="Bundle version"),
) -> None:
    """
    📦 Create a webservice bundle.
    """
    try:
        bundle = get_issuance_service().create_bundle(code, name, description, version)
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ Bundle '{bundle.code}' created: {bundle.id}[/green]")


@ws_app.command("create-client")
def create_client(
    bundle_code: str = typer.Argument(..., help="Bundle the client may call"),
    name: str = typer.Argument(..., help="Client display name"),
    description: str | None = typer.Option(None, help="Description"),
    restrict_ips: bool = typer.Option(
        False, "--restrict-ips", help="Only accept calls from allow-listed addresses"
    ),
) -> None:
    """
    🤖 Register a webservice client in a bundle.
    """
    try:
        client = get_issuance_service().create_client(
            bundle_code, name, description, ip_allowlist_enabled=restrict_ips
        )
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ Client '{client.name}' created: {client.id}[/green]")


@ws_app.command("set-client-status")
def set_client_status(
    client_id: str = typer.Argument(..., help="Client ID"),
    client_status: ClientStatus = typer.Argument(..., help="New status"),
) -> None:
    """
    ⏸️  Suspend, revoke or re-activate a client.
    """
    try:
        get_issuance_service().set_client_status(client_id, client_status)
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ Client {client_id} is now {client_status.value}[/green]")


@ws_app.command("issue-credential")
def issue_credential(
    client_id: str = typer.Argument(..., help="Client ID"),
    label: str | None = typer.Option(None, help="Label to tell credentials apart"),
    expires_in_days: int | None = typer.Option(
        None, "--expires-in-days", help="Credential lifetime (default: no expiry)"
    ),
) -> None:
    """
    🎫 Issue a key/secret pair for a client.

    The secret is shown once and cannot be retrieved later.
    """
    expires_at = utc_now() + timedelta(days=expires_in_days) if expires_in_days else None
    try:
        issued = get_issuance_service().issue_credential(client_id, label, expires_at)
    except ValueError as e:
        fail(str(e))

    console.print(
        Panel.fit(
            f"[bold]Credential ID:[/bold] {issued.credential.id}\n"
            f"[bold]Client key:[/bold]    {issued.client_key}\n"
            f"[bold]Client secret:[/bold] {issued.client_secret}",
            title="[bold green]Credential issued[/bold green]",
            border_style="green",
        )
    )
    console.print("[yellow]⚠️  Store the secret now; it is not shown again.[/yellow]")


@ws_app.command("revoke-credential")
def revoke_credential(credential_id: str = typer.Argument(..., help="Credential ID")) -> None:
    """
    🗑️  Deactivate a credential.
    """
    if not get_issuance_service().revoke_credential(credential_id):
        fail(f"Credential {credential_id} not found")
    console.print(f"[green]✅ Credential {credential_id} revoked[/green]")


@ws_app.command("allow-ip")
def allow_ip(
    client_id: str = typer.Argument(..., help="Client ID"),
    ip_address: str = typer.Argument(..., help="Source address to allow"),
    description: str | None = typer.Option(None, help="Description"),
) -> None:
    """
    🌐 Allow-list a source address. Turns the client's allow-list on.
    """
    try:
        rule = get_issuance_service().allow_ip(client_id, ip_address, description)
    except ValueError as e:
        fail(str(e))

    console.print(f"[green]✅ {rule.ip_address} allowed for client {client_id}[/green]")


@ws_app.command("remove-ip")
def remove_ip(
    client_id: str = typer.Argument(..., help="Client ID"),
    ip_address: str = typer.Argument(..., help="Source address to remove"),
) -> None:
    """
    ➖ Deactivate an allow-list rule.
    """
    if not get_issuance_service().remove_ip(client_id, ip_address):
        fail(f"No rule for {ip_address} on client {client_id}")
    console.print(f"[green]✅ {ip_address} removed for client {client_id}[/green]")


@ws_app.command("credentials")
def list_credentials(client_id: str = typer.Argument(..., help="Client ID")) -> None:
    """
    📋 Show a client's credentials and IP allow-list. Secrets are never shown.
    """
    try:
        access = get_issuance_service().describe_client(client_id)
    except ValueError as e:
        fail(str(e))

    console.print(
        f"[bold]{access.client.name}[/bold] ({access.client.status.value}), "
        f"IP allow-list {'on' if access.client.ip_allowlist_enabled else 'off'}"
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Credential ID", style="cyan")
    table.add_column("Key", style="blue")
    table.add_column("Label")
    table.add_column("Active", style="yellow")
    table.add_column("Expires")
    table.add_column("Last used")
    for credential in access.credentials:
        table.add_row(
            credential.id,
            credential.client_key,
            credential.label or "-",
            "✅" if credential.is_active and not credential.is_expired() else "❌",
            credential.expires_at.strftime("%Y-%m-%d") if credential.expires_at else "never",
            credential.last_used_at.strftime("%Y-%m-%d %H:%M") if credential.last_used_at else "-",
        )
    console.print(table)

    for rule in access.ip_rules:
        marker = "✅" if rule.is_active else "❌"
        console.print(f"  {marker} {rule.ip_address} {rule.description or ''}".rstrip())
