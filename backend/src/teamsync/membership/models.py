"""Membership value type, profile fan-out outbox and audit records."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from teamsync.storage.models import Base, utcnow


class UserRole(str, Enum):
    """Roles, used both platform-wide and per team."""
    MEMBER = "member"
    OWNER = "owner"
    ADMIN = "admin"


class Membership(BaseModel):
    """Relation "user X belongs to team Y with role R since T".

    The same value is materialised in ``UserAccount.team_memberships`` and
    in ``Team.team_members``. Only the membership engine writes either copy.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    team_id: int
    role: UserRole = UserRole.MEMBER
    joined_at: datetime = Field(default_factory=utcnow)

    # Denormalized display copies of the user, captured at write time
    user_name: str | None = Field(default=None, max_length=100)
    user_email: str | None = Field(default=None, max_length=255)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Membership":
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def agrees_with(self, other: "Membership") -> bool:
        """True when both copies describe the same relation."""
        return (
            self.user_id == other.user_id
            and self.team_id == other.team_id
            and self.role == other.role
        )


class MemberProfile(BaseModel):
    """Display values copied into membership entries."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    email: str | None = None


class SyncStatus(str, Enum):
    """Outbox task states."""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"  # Gave up after max attempts


class ProfileSyncTask(Base):
    """Outbox row: "propagate user X's display values to these teams".

    Written in the same transaction as the profile edit, drained after
    commit and retried until every listed team carries the current values.
    """

    __tablename__ = "profile_sync_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    team_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncStatus.PENDING.value, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<ProfileSyncTask(id={self.id}, user={self.user_id}, status={self.status})>"


class DiscrepancyKind(str, Enum):
    MISSING_ON_USER = "missing_on_user"
    MISSING_ON_TEAM = "missing_on_team"
    ROLE_MISMATCH = "role_mismatch"
    DANGLING_TEAM = "dangling_team"  # User entry points at a team that no longer exists
    DANGLING_USER = "dangling_user"  # Team entry points at a user that no longer exists


class MembershipDiscrepancy(BaseModel):
    """One asymmetric user/team pair found by the consistency audit."""

    team_id: int
    user_id: int
    kind: DiscrepancyKind
    team_role: UserRole | None = None
    user_role: UserRole | None = None
