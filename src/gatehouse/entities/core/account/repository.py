"""Account repository for data access operations."""

from sqlmodel import Session, select

from src.gatehouse.entities._base import utc_now
from src.gatehouse.entities.core.account.entity import Account
from src.gatehouse.entities.core.account.table import AccountTable


class AccountRepository:
    """Data-access layer for accounts."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, account_id: str) -> Account | None:
        row = self._session.get(AccountTable, account_id)
        if row is None:
            return None
        return Account.model_validate(row, from_attributes=True)

    def get_by_email(self, email: str) -> Account | None:
        """Exact (case-sensitive) email lookup."""
        statement = select(AccountTable).where(AccountTable.email == email)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return Account.model_validate(row, from_attributes=True)

    def create(self, account: Account) -> Account:
        row = AccountTable.model_validate(account.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return Account.model_validate(row, from_attributes=True)

    def update(self, account: Account) -> Account:
        row = self._session.get(AccountTable, account.id)
        if row is None:
            raise ValueError(f"Account {account.id} not found")

        for field_name, value in account.model_dump(exclude={"id", "created_at"}).items():
            setattr(row, field_name, value)
        row.updated_at = utc_now()

        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return Account.model_validate(row, from_attributes=True)

    def list_accounts(self, limit: int = 100) -> list[Account]:
        rows = self._session.exec(select(AccountTable).limit(limit)).all()
        return [Account.model_validate(row, from_attributes=True) for row in rows]
