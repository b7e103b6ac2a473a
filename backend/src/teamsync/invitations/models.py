"""Invitation database models."""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy import DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from teamsync.membership.models import UserRole
from teamsync.storage.models import Base, utcnow


class InvitationStatus(str, Enum):
    """Invitation states. Anything but PENDING is terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class Invitation(Base):
    """Pending or resolved invitation to join a team.

    Team name and inviter name/email are frozen at creation time.
    """
    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.MEMBER.value)
    invited_by: Mapped[int] = mapped_column(Integer, nullable=False)
    invited_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvitationStatus.PENDING.value
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Snapshots for display
    team_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invited_by_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invited_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        # One pending invitation per email per team
        Index(
            "uq_invitations_pending",
            "email",
            "team_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_invitations_email_status", "email", "status"),
        Index("ix_invitations_team_status", "team_id", "status", "invited_at"),
    )

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, team={self.team_id}, email={self.email}, status={self.status})>"

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING.value

    def is_stale(self, ttl: timedelta, now: datetime | None = None) -> bool:
        """True when the invitation is past its TTL, whether swept or not."""
        return self.invited_at <= (now or utcnow()) - ttl


# Pydantic models for callers

class InvitationView(BaseModel):
    """Invitation data returned to callers."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    team_id: int
    email: str
    role: UserRole
    invited_by: int
    invited_at: datetime
    status: InvitationStatus
    resolved_at: datetime | None = None
    team_name: str | None = None
    invited_by_name: str | None = None
    invited_by_email: str | None = None


class InvitationCreate(BaseModel):
    """Invitation request."""
    team_id: int
    email: EmailStr
    role: UserRole = UserRole.MEMBER
    invited_by: int
