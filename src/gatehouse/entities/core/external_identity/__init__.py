"""External identity entity module.

- ExternalIdentity: Domain entity linking a provider identity to an account
- ExternalIdentityTable: Database persistence model
- ExternalIdentityRepository: Data access layer
"""

from .entity import ExternalIdentity
from .repository import ExternalIdentityRepository
from .table import ExternalIdentityTable

__all__ = ["ExternalIdentity", "ExternalIdentityTable", "ExternalIdentityRepository"]
