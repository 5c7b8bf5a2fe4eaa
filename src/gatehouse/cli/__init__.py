"""Main CLI application module."""

import typer

from src.gatehouse.runtime.init_db import init_db

from .account_commands import accounts_app
from .provider_commands import providers_app
from .utils import console, get_database_service
from .webservice_commands import ws_app

# Create the main CLI application
app = typer.Typer(
    help="🛡️  Gatehouse administration CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(accounts_app, name="accounts")
app.add_typer(ws_app, name="ws")
app.add_typer(providers_app, name="providers")


@app.command("init-db")
def init_database() -> None:
    """
    🗄️  Create the gatehouse tables in the configured database.
    """
    tables = init_db(get_database_service())
    console.print(f"[green]✅ {len(tables)} tables ready[/green]")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
