"""Team invitations.

The manager lives in ``teamsync.invitations.service``; it depends on the
membership engine, which itself reads invitation rows.
"""

from teamsync.invitations.models import Invitation, InvitationStatus, InvitationView

__all__ = ["Invitation", "InvitationStatus", "InvitationView"]
