"""Account resolution: map an external identity onto an internal account.

There is exactly one resolution algorithm and every provider adapter calls it:

1. A known ``(provider_type, external_id)`` resolves to its linked account,
   which must exist and be active.
2. Otherwise the asserted email must match an existing account exactly. When no
   account matches, the login is rejected unless the provider opted into
   auto-provisioning.
3. A matching active account is linked to the new identity, unless it already
   holds a different identity for the same provider type.

Rejection reasons are for server logs only; callers get one generic denial.
"""

from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from src.gatehouse.core.models.provider import IdentityAssertion
from src.gatehouse.core.services.audit import AuditService
from src.gatehouse.core.services.database.db_session import DbSessionService
from src.gatehouse.entities._base import utc_now
from src.gatehouse.entities.core.account import Account, AccountRepository, AccountStatus
from src.gatehouse.entities.core.external_identity import (
    ExternalIdentity,
    ExternalIdentityRepository,
)

REASON_ACCOUNT_UNAVAILABLE = "account missing or inactive"
REASON_MISSING_EMAIL = "provider asserted no email"
REASON_NOT_PROVISIONED = "no provisioned account"
REASON_IDENTITY_MISMATCH = "account already linked to another identity for this provider"


class ResolutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    account: Account | None = None
    identity: ExternalIdentity | None = None
    reason: str | None = None
    account_linked: bool = False
    account_provisioned: bool = False

    @classmethod
    def reject(cls, reason: str) -> "ResolutionResult":
        return cls(accepted=False, reason=reason)

    @property
    def audit_action(self) -> str:
        """First logins are recorded under their own action so they can be filtered."""
        if self.account_provisioned:
            return "login.account_provisioned"
        if self.account_linked:
            return "login.account_linked"
        return "login"


def _apply_profile(account: Account, assertion: IdentityAssertion) -> None:
    """Refresh profile fields from claims; empty claims never blank out stored values."""
    if assertion.first_name:
        account.first_name = assertion.first_name
    if assertion.last_name:
        account.last_name = assertion.last_name
    if assertion.profile_image_url:
        account.profile_image_url = assertion.profile_image_url


class AccountResolutionService:
    def __init__(self, database_service: DbSessionService, audit_service: AuditService) -> None:
        self._database = database_service
        self._audit = audit_service

    async def resolve(
        self, assertion: IdentityAssertion, auto_provision: bool = False
    ) -> ResolutionResult:
        """Accept or reject an asserted identity.

        Store failures propagate; the calling adapter turns them into the same
        generic denial as a rejection.
        """
        result = await run_in_threadpool(self._resolve_in_session, assertion, auto_provision)

        if not result.accepted:
            logger.bind(
                provider_type=assertion.provider_type, external_id=assertion.external_id
            ).info("Login rejected: {}", result.reason)
            return result

        self._audit.emit(
            result.audit_action,
            user_id=result.account.id,
            provider_type=assertion.provider_type,
            external_id=assertion.external_id,
            email=result.account.email,
            details={
                "account_linked": result.account_linked,
                "account_provisioned": result.account_provisioned,
            },
        )
        return result

    def _resolve_in_session(
        self, assertion: IdentityAssertion, auto_provision: bool
    ) -> ResolutionResult:
        try:
            with self._database.session_scope() as db:
                return self._resolve(db, assertion, auto_provision)
        except IntegrityError:
            # A concurrent first login linked or provisioned the same identity;
            # the retry sees its committed rows.
            logger.bind(
                provider_type=assertion.provider_type, external_id=assertion.external_id
            ).info("Concurrent first login detected, resolving again")

        with self._database.session_scope() as db:
            return self._resolve(db, assertion, auto_provision)

    def _resolve(
        self, db: Session, assertion: IdentityAssertion, auto_provision: bool
    ) -> ResolutionResult:
        accounts = AccountRepository(db)
        identities = ExternalIdentityRepository(db)
        now = utc_now()

        identity = identities.get_by_provider_external_id(
            assertion.provider_type, assertion.external_id
        )
        if identity is not None:
            account = accounts.get(identity.user_id)
            if account is None or not account.is_active:
                return ResolutionResult.reject(REASON_ACCOUNT_UNAVAILABLE)

            identity.email = assertion.email or identity.email
            identity.display_name = assertion.display_name or identity.display_name
            identity.profile_image_url = assertion.profile_image_url or identity.profile_image_url
            identity.last_used_at = now
            identity = identities.update(identity)

            _apply_profile(account, assertion)
            account.last_login_at = now
            account = accounts.update(account)
            return ResolutionResult(accepted=True, account=account, identity=identity)

        if not assertion.email:
            return ResolutionResult.reject(REASON_MISSING_EMAIL)

        account = accounts.get_by_email(assertion.email)
        provisioned = False
        if account is None:
            if not auto_provision:
                return ResolutionResult.reject(REASON_NOT_PROVISIONED)
            account = accounts.create(
                Account(
                    email=assertion.email,
                    first_name=assertion.first_name,
                    last_name=assertion.last_name,
                    profile_image_url=assertion.profile_image_url,
                )
            )
            provisioned = True
            logger.info("Provisioned account {} from {} login", account.id, assertion.provider_type)

        if not account.is_active:
            return ResolutionResult.reject(REASON_ACCOUNT_UNAVAILABLE)

        if identities.get_by_user_and_provider(account.id, assertion.provider_type) is not None:
            return ResolutionResult.reject(REASON_IDENTITY_MISMATCH)

        identity = identities.create(
            ExternalIdentity(
                provider_type=assertion.provider_type,
                external_id=assertion.external_id,
                user_id=account.id,
                email=assertion.email,
                display_name=assertion.display_name,
                profile_image_url=assertion.profile_image_url,
                last_used_at=now,
            )
        )

        _apply_profile(account, assertion)
        account.account_status = AccountStatus.LINKED
        account.last_login_at = now
        account = accounts.update(account)

        return ResolutionResult(
            accepted=True,
            account=account,
            identity=identity,
            account_linked=not provisioned,
            account_provisioned=provisioned,
        )

    def load_account(self, provider_type: str, external_id: str) -> Account | None:
        """Rehydrate the account behind a session's identity, or None if it is gone or inactive."""
        with self._database.session_scope() as db:
            identity = ExternalIdentityRepository(db).get_by_provider_external_id(
                provider_type, external_id
            )
            if identity is None:
                return None
            account = AccountRepository(db).get(identity.user_id)
        if account is None or not account.is_active:
            return None
        return account
