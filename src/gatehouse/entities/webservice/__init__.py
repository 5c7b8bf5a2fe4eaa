"""Webservice entities: bundles, clients, credentials and IP rules."""

from .entity import (
    BUNDLE_CODE_PATTERN,
    BundleStatus,
    ClientStatus,
    WsBundle,
    WsClient,
    WsClientCredential,
    WsClientIpRule,
)
from .repository import (
    WsBundleRepository,
    WsClientCredentialRepository,
    WsClientIpRuleRepository,
    WsClientRepository,
)
from .table import (
    WsBundleTable,
    WsClientCredentialTable,
    WsClientIpRuleTable,
    WsClientTable,
)

__all__ = [
    "BUNDLE_CODE_PATTERN",
    "BundleStatus",
    "ClientStatus",
    "WsBundle",
    "WsClient",
    "WsClientCredential",
    "WsClientIpRule",
    "WsBundleRepository",
    "WsClientRepository",
    "WsClientCredentialRepository",
    "WsClientIpRuleRepository",
    "WsBundleTable",
    "WsClientTable",
    "WsClientCredentialTable",
    "WsClientIpRuleTable",
]
