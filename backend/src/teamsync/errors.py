"""Error taxonomy for the membership consistency layer.

Storage errors never leave a store or engine operation raw: they are
translated into one of the classes below. ``retryable`` tells the caller
whether the failure means "already in this state, or transient" (safe to
ignore or retry) or "structurally invalid" (will fail again unchanged).
"""

from typing import Any

from pydantic import BaseModel


class TeamSyncError(Exception):
    """Base class for all domain errors."""

    code = "teamsync_error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


class DuplicateEmail(TeamSyncError):
    """An active user already owns this email address."""

    code = "duplicate_email"

    def __init__(self, email: str):
        super().__init__(f"An active user with email {email} already exists", email=email)


class DuplicateInvitation(TeamSyncError):
    """A pending invitation already exists for this email and team."""

    code = "duplicate_invitation"
    retryable = True

    def __init__(self, email: str, team_id: int):
        super().__init__(
            f"A pending invitation for {email} to team {team_id} already exists",
            email=email,
            team_id=team_id,
        )


class InvitationNotFound(TeamSyncError):
    code = "invitation_not_found"

    def __init__(self, invitation_id: int):
        super().__init__(f"Invitation {invitation_id} not found", invitation_id=invitation_id)


class InvitationAlreadyResolved(TeamSyncError):
    """The invitation left the pending state and is terminal."""

    code = "invitation_already_resolved"
    retryable = True

    def __init__(self, invitation_id: int, status: str):
        super().__init__(
            f"Invitation {invitation_id} is already {status}",
            invitation_id=invitation_id,
            status=status,
        )


class InvitationExpired(InvitationAlreadyResolved):
    """The invitation is older than the TTL, swept or not."""

    code = "invitation_expired"

    def __init__(self, invitation_id: int):
        super().__init__(invitation_id, "expired")


class AlreadyMember(TeamSyncError):
    """The invitee already belongs to the team."""

    code = "already_member"
    retryable = True

    def __init__(self, email: str, team_id: int):
        super().__init__(f"{email} is already a member of team {team_id}", email=email, team_id=team_id)


class MembershipNotFound(TeamSyncError):
    code = "membership_not_found"

    def __init__(self, team_id: int, user_id: int):
        super().__init__(
            f"User {user_id} is not a member of team {team_id}",
            team_id=team_id,
            user_id=user_id,
        )


class TeamNotFound(TeamSyncError):
    code = "team_not_found"

    def __init__(self, team_id: int | None = None, **lookup: Any):
        if team_id is not None:
            lookup["team_id"] = team_id
        super().__init__(f"Team not found ({_describe(lookup)})", **lookup)


class UserNotFound(TeamSyncError):
    code = "user_not_found"

    def __init__(self, user_id: int | None = None, **lookup: Any):
        if user_id is not None:
            lookup["user_id"] = user_id
        super().__init__(f"User not found ({_describe(lookup)})", **lookup)


class TransactionAborted(TeamSyncError):
    """A multi-row operation failed and was fully rolled back."""

    code = "transaction_aborted"
    retryable = True

    def __init__(self, operation: str, reason: str, **details: Any):
        super().__init__(f"{operation} aborted and rolled back: {reason}", operation=operation, **details)


class ConstraintViolation(TeamSyncError):
    """A storage-level constraint rejected the write."""

    code = "constraint_violation"


class MembershipLimitExceeded(ConstraintViolation):
    code = "membership_limit_exceeded"


class BillingIdentifierConflict(ConstraintViolation):
    code = "billing_identifier_conflict"

    def __init__(self, team_id: int | None = None):
        super().__init__(
            "Billing customer or subscription id is already assigned to another team",
            team_id=team_id,
        )


def _describe(lookup: dict[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in lookup.items()) or "no key"


class ErrorResult(BaseModel):
    """Structured failure payload handed to the route layer."""

    code: str
    message: str
    retryable: bool
    details: dict[str, Any] = {}

    @classmethod
    def from_error(cls, error: TeamSyncError) -> "ErrorResult":
        return cls(
            code=error.code,
            message=error.message,
            retryable=error.retryable,
            details=error.details,
        )
