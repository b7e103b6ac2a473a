"""Activity log database models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy import JSON, DateTime, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from teamsync.errors import ConstraintViolation
from teamsync.storage.models import Base, utcnow


class ActivityType(str, Enum):
    """Defined activity types. Free-text actions are accepted as well."""
    SIGN_UP = "SIGN_UP"
    SIGN_IN = "SIGN_IN"
    SIGN_OUT = "SIGN_OUT"
    UPDATE_PASSWORD = "UPDATE_PASSWORD"
    DELETE_ACCOUNT = "DELETE_ACCOUNT"
    UPDATE_ACCOUNT = "UPDATE_ACCOUNT"
    CREATE_TEAM = "CREATE_TEAM"
    REMOVE_TEAM_MEMBER = "REMOVE_TEAM_MEMBER"
    INVITE_TEAM_MEMBER = "INVITE_TEAM_MEMBER"
    ACCEPT_INVITATION = "ACCEPT_INVITATION"


class ActivityLog(Base):
    """Append-only audit record.

    Actor and team display values are copied in at write time. Rows are
    never updated; they are only deleted by the retention purge.
    """
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 fits

    # Snapshots
    user_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    team_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_activity_logs_user_time", "user_id", "timestamp"),
        Index("ix_activity_logs_team_time", "team_id", "timestamp"),
        Index("ix_activity_logs_action_time", "action", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, action={self.action}, user={self.user_id})>"


@event.listens_for(ActivityLog, "before_update")
def _reject_update(mapper, connection, target: ActivityLog) -> None:
    raise ConstraintViolation("Activity log rows are immutable", activity_id=target.id)


# Pydantic models for callers

class ActivityEntry(BaseModel):
    """Activity log row returned to callers."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    team_id: int | None = None
    user_id: int | None = None
    action: str
    timestamp: datetime
    ip_address: str | None = None
    user_name: str | None = None
    user_email: str | None = None
    team_name: str | None = None
    details: dict[str, Any] | None = None
