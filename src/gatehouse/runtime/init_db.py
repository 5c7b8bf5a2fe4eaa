"""Database initialization script."""

from loguru import logger
from sqlmodel import SQLModel

from src.gatehouse.core.services.database.db_session import DbSessionService


def init_db(database_service: DbSessionService | None = None) -> list[str]:
    """Create the account, identity and webservice tables.

    Production startup never creates tables, so deployments run this once
    (``gatehouse init-db``) before the first start.
    """
    database_service = database_service or DbSessionService()
    database_service.create_all()
    tables = sorted(SQLModel.metadata.tables)
    logger.info("Tables in place: {}", ", ".join(tables))
    return tables


if __name__ == "__main__":
    init_db()
