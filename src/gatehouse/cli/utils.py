"""Shared utilities for CLI commands."""

from typing import NoReturn

import typer
from rich.console import Console

from src.gatehouse.core.services.database.db_session import DbSessionService

# Initialize Rich console for colored output
console = Console()


def get_database_service() -> DbSessionService:
    """Database service for the configured database, with tables in place."""
    try:
        database_service = DbSessionService()
        database_service.create_all()
        return database_service
    except Exception as e:
        console.print(f"[red]❌ Failed to connect to the database: {e}[/red]")
        raise typer.Exit(1) from None


def fail(message: str) -> NoReturn:
    console.print(f"[red]❌ {message}[/red]")
    raise typer.Exit(1)
