"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, text
from sqlmodel import Session, SQLModel, create_engine

from src.gatehouse.runtime.config.config_data import ConfigData
from src.gatehouse.runtime.context import get_config


def register_tables() -> None:
    """Import every table model so it is attached to ``SQLModel.metadata``."""
    from src.gatehouse.entities.core.account import AccountTable  # noqa: F401
    from src.gatehouse.entities.core.external_identity import ExternalIdentityTable  # noqa: F401
    from src.gatehouse.entities.webservice import (  # noqa: F401
        WsBundleTable,
        WsClientCredentialTable,
        WsClientIpRuleTable,
        WsClientTable,
    )


class DbSessionService:
    def __init__(self, engine: Engine | None = None):
        """Initialize the shared database engine, or adopt one built by the caller."""
        if engine is not None:
            self._engine = engine
            return

        main_config = get_config()
        db_config = main_config.database

        logger.info("Configuring database engine for environment: {}", main_config.app.environment)
        engine_kwargs: dict = {
            "pool_pre_ping": True,
            "echo": False,
            "connect_args": self._get_connect_args(main_config),
        }
        if db_config.url.startswith("postgresql"):
            engine_kwargs.update(
                {
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                }
            )

        self._engine = create_engine(db_config.connection_string, **engine_kwargs)

    @property
    def engine(self) -> Engine:
        return self._engine

    def _get_connect_args(self, config: ConfigData) -> dict:
        """Get database-specific connection arguments."""
        connect_args: dict = {}

        if config.database.url.startswith("postgresql"):
            connect_args.update(
                {
                    "application_name": f"gatehouse_{config.app.environment}",
                    "connect_timeout": 30,
                }
            )
        elif config.database.url.startswith("sqlite"):
            connect_args.update({"check_same_thread": False, "timeout": 20})
            if config.app.environment == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )

        return connect_args

    def create_all(self) -> None:
        """Create all database tables."""
        register_tables()
        SQLModel.metadata.create_all(self._engine)
        logger.info("Database initialized with tables")

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False, autoflush=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """One unit of work: commit on success, roll back and re-raise on failure."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.bind(error_type=type(e).__name__).error(
                "Database transaction failed: {}", e
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.bind(error_type=type(e).__name__).error(
                "Database health check failed: {}", e
            )
            return False
