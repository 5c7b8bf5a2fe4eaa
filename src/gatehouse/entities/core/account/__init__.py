"""Account entity module.

- Account: Domain entity
- AccountTable: Database persistence model
- AccountRepository: Data access layer
"""

from .entity import Account, AccountStatus
from .repository import AccountRepository
from .table import AccountTable

__all__ = ["Account", "AccountStatus", "AccountTable", "AccountRepository"]
