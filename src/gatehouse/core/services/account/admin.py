"""Administrator operations on accounts and their identity links."""

from loguru import logger

from src.gatehouse.core.models.provider import ProviderType
from src.gatehouse.core.services.database.db_session import DbSessionService
from src.gatehouse.entities.core.account import Account, AccountRepository
from src.gatehouse.entities.core.external_identity import (
    ExternalIdentity,
    ExternalIdentityRepository,
)


class AccountAdminService:
    """Provision accounts ahead of their first login and manage identity links."""

    def __init__(self, database_service: DbSessionService) -> None:
        self._database = database_service

    def create_account(
        self,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> Account:
        """Provision an active, not yet linked account.

        Raises:
            ValueError: If an account with this email already exists
        """
        email = email.strip()
        with self._database.session_scope() as db:
            accounts = AccountRepository(db)
            if accounts.get_by_email(email) is not None:
                raise ValueError(f"Account '{email}' already exists")
            account = accounts.create(
                Account(email=email, first_name=first_name, last_name=last_name)
            )
        logger.info("Provisioned account {}", account.id)
        return account

    def list_accounts(self, limit: int = 100) -> list[Account]:
        with self._database.session_scope() as db:
            return AccountRepository(db).list_accounts(limit)

    def set_active(self, email: str, is_active: bool) -> Account:
        """Enable or disable login for an account.

        Raises:
            ValueError: If no account has this email
        """
        with self._database.session_scope() as db:
            accounts = AccountRepository(db)
            account = accounts.get_by_email(email)
            if account is None:
                raise ValueError(f"Account '{email}' not found")
            account.is_active = is_active
            account = accounts.update(account)
        logger.info("Account {} is now {}", account.id, "active" if is_active else "inactive")
        return account

    def list_identities(self, email: str) -> list[ExternalIdentity]:
        with self._database.session_scope() as db:
            account = AccountRepository(db).get_by_email(email)
            if account is None:
                raise ValueError(f"Account '{email}' not found")
            return ExternalIdentityRepository(db).list_for_user(account.id)

    def unlink(self, email: str, provider_type: ProviderType) -> bool:
        """Remove the account's identity for one provider type.

        The next login through that provider links afresh by email.

        Returns:
            False if the account had no identity for that provider
        """
        with self._database.session_scope() as db:
            account = AccountRepository(db).get_by_email(email)
            if account is None:
                raise ValueError(f"Account '{email}' not found")
            identities = ExternalIdentityRepository(db)
            identity = identities.get_by_user_and_provider(account.id, provider_type)
            if identity is None:
                return False
            identities.delete(identity.id)
        logger.info("Unlinked {} identity from account {}", provider_type, account.id)
        return True
