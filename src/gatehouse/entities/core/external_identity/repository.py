"""External identity repository for data access operations."""

from sqlmodel import Session, select

from src.gatehouse.entities._base import utc_now
from src.gatehouse.entities.core.external_identity.entity import ExternalIdentity
from src.gatehouse.entities.core.external_identity.table import ExternalIdentityTable


class ExternalIdentityRepository:
    """Data-access layer for external identities."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_provider_external_id(
        self, provider_type: str, external_id: str
    ) -> ExternalIdentity | None:
        statement = select(ExternalIdentityTable).where(
            (ExternalIdentityTable.provider_type == provider_type)
            & (ExternalIdentityTable.external_id == external_id)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return ExternalIdentity.model_validate(row, from_attributes=True)

    def get_by_user_and_provider(
        self, user_id: str, provider_type: str
    ) -> ExternalIdentity | None:
        statement = select(ExternalIdentityTable).where(
            (ExternalIdentityTable.user_id == user_id)
            & (ExternalIdentityTable.provider_type == provider_type)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return ExternalIdentity.model_validate(row, from_attributes=True)

    def list_for_user(self, user_id: str) -> list[ExternalIdentity]:
        statement = select(ExternalIdentityTable).where(ExternalIdentityTable.user_id == user_id)
        rows = self._session.exec(statement).all()
        return [ExternalIdentity.model_validate(row, from_attributes=True) for row in rows]

    def create(self, identity: ExternalIdentity) -> ExternalIdentity:
        row = ExternalIdentityTable.model_validate(identity.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return ExternalIdentity.model_validate(row, from_attributes=True)

    def update(self, identity: ExternalIdentity) -> ExternalIdentity:
        row = self._session.get(ExternalIdentityTable, identity.id)
        if row is None:
            raise ValueError(f"External identity {identity.id} not found")

        row.email = identity.email
        row.display_name = identity.display_name
        row.profile_image_url = identity.profile_image_url
        row.last_used_at = identity.last_used_at
        row.updated_at = utc_now()

        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return ExternalIdentity.model_validate(row, from_attributes=True)

    def delete(self, identity_id: str) -> bool:
        """Remove a link. Only administrators unlink identities."""
        row = self._session.get(ExternalIdentityTable, identity_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True
