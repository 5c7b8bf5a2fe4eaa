from dataclasses import dataclass

from src.gatehouse.core.services.account.resolution import AccountResolutionService
from src.gatehouse.core.services.audit import AuditService
from src.gatehouse.core.services.database.db_session import DbSessionService
from src.gatehouse.core.services.identity import ProviderRegistry, ProviderServices
from src.gatehouse.core.services.session.login_flow import LoginFlowService
from src.gatehouse.core.services.session.session_gate import SessionGate
from src.gatehouse.core.services.session.user_session import UserSessionService
from src.gatehouse.core.services.webservice import WebserviceAuthenticator
from src.gatehouse.core.storage import SessionStorage


@dataclass
class ApplicationDependencies:
    database_service: DbSessionService
    session_storage: SessionStorage
    audit_service: AuditService
    login_flow_service: LoginFlowService
    user_session_service: UserSessionService
    account_resolution_service: AccountResolutionService
    provider_services: ProviderServices
    provider_registry: ProviderRegistry
    session_gate: SessionGate
    webservice_authenticator: WebserviceAuthenticator
