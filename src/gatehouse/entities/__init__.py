"""Entities organized by business concept.

Each entity package contains:
- entity.py: Domain model
- table.py: Database persistence model
- repository.py: Data access layer
"""

from .core.account import Account, AccountRepository, AccountStatus, AccountTable
from .core.external_identity import (
    ExternalIdentity,
    ExternalIdentityRepository,
    ExternalIdentityTable,
)

__all__ = [
    "Account",
    "AccountStatus",
    "AccountTable",
    "AccountRepository",
    "ExternalIdentity",
    "ExternalIdentityTable",
    "ExternalIdentityRepository",
]
