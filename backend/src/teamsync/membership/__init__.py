"""Membership consistency: the user/team relation embedded in both aggregates.

Import the engine from ``teamsync.membership.engine``; this package only
exposes the value types so the aggregate models can import them.
"""

from teamsync.membership.models import Membership, MemberProfile, UserRole

__all__ = ["MemberProfile", "Membership", "UserRole"]
