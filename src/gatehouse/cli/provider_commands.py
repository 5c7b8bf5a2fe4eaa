"""Identity provider CLI commands."""

import typer
from rich.table import Table

from src.gatehouse.runtime.context import get_config

from .utils import console

# Create the providers command group
providers_app = typer.Typer(help="🪪 Identity provider configuration")


@providers_app.command("list")
def list_providers() -> None:
    """
    📋 Show the identity providers in the active configuration.
    """
    identity = get_config().identity
    if not identity.providers:
        console.print("[yellow]No identity providers configured[/yellow]")
        return

    enabled = identity.enabled_providers()
    default = next((p.type for p in enabled if p.is_default), None)
    default = default or identity.default_provider or (enabled[0].type if enabled else None)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="blue")
    table.add_column("Enabled", style="yellow")
    table.add_column("Default", style="yellow")
    table.add_column("Auto-provision", style="yellow")

    for provider in identity.providers:
        table.add_row(
            provider.type,
            provider.display_name or "-",
            "✅" if provider.enabled else "❌",
            "⭐" if provider.enabled and provider.type == default else "",
            "✅" if provider.auto_provision else "❌",
        )

    console.print(table)
    console.print(f"\n[dim]Callback path: {identity.callback_path}[/dim]")
