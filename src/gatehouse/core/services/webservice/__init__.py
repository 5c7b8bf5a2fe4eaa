from src.gatehouse.core.services.webservice.authenticator import (
    WebserviceAuthenticator,
    WebserviceAuthResult,
    WsAuthCode,
    build_password_hasher,
)
from src.gatehouse.core.services.webservice.issuance import (
    ClientAccess,
    CredentialIssuanceService,
    IssuedCredential,
)

__all__ = [
    "ClientAccess",
    "CredentialIssuanceService",
    "IssuedCredential",
    "WebserviceAuthResult",
    "WebserviceAuthenticator",
    "WsAuthCode",
    "build_password_hasher",
]
