"""Identity store: user accounts, the source of truth for name, email and role."""

from teamsync.identity.models import User, UserAccount, UserUpdate, UserWithCredential
from teamsync.identity.service import IdentityStore
from teamsync.membership.models import UserRole

__all__ = [
    "IdentityStore",
    "User",
    "UserAccount",
    "UserRole",
    "UserUpdate",
    "UserWithCredential",
]
