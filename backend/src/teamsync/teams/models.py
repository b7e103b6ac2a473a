"""Team aggregate database models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from teamsync.membership.models import Membership, UserRole
from teamsync.storage.models import Base, utcnow


class SubscriptionStatus(str, Enum):
    """Billing subscription states, as reported by the payment provider."""
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"


class Team(Base):
    """Team (tenant) account.

    Teams have:
    - A name, the source of truth for team display values
    - An embedded member list, the team's copy of the membership relation
    - Optional billing identifiers, each unique across teams
    """
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Embedded members (JSON array of Membership documents)
    team_members: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    # Billing (NULLs never collide, so the unique constraints only bind set values)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    stripe_product_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plan_name: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    subscription_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_teams_subscription_status", "subscription_status", "updated_at"),
        Index("ix_teams_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name}, members={len(self.team_members or [])})>"

    @property
    def members(self) -> list[Membership]:
        return [Membership.from_document(doc) for doc in self.team_members or []]


_SUBSCRIPTION_COLUMNS = {
    "customer_id": "stripe_customer_id",
    "subscription_id": "stripe_subscription_id",
    "product_id": "stripe_product_id",
    "plan_name": "plan_name",
    "status": "subscription_status",
}


# Pydantic models for callers

class TeamView(BaseModel):
    """Team data returned by reads and writes."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    team_members: list[Membership] = []
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    stripe_product_id: str | None = None
    plan_name: str | None = None
    subscription_status: SubscriptionStatus | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def member_count(self) -> int:
        return len(self.team_members)

    @property
    def owners(self) -> list[Membership]:
        return [member for member in self.team_members if member.role == UserRole.OWNER]

    def member(self, user_id: int) -> Membership | None:
        return next((m for m in self.team_members if m.user_id == user_id), None)


class SubscriptionUpdate(BaseModel):
    """Field-level billing update.

    Omitted fields are left untouched; fields passed as ``None`` (or an
    empty string) are cleared. A webhook can therefore clear exactly one
    field without knowing the others.
    """
    customer_id: str | None = Field(default=None, max_length=255)
    subscription_id: str | None = Field(default=None, max_length=255)
    product_id: str | None = Field(default=None, max_length=255)
    plan_name: str | None = Field(default=None, max_length=50)
    status: SubscriptionStatus | None = None

    def column_values(self) -> dict[str, str | None]:
        """Map explicitly set fields to column values."""
        values = {}
        for field, value in self.model_dump(exclude_unset=True).items():
            if isinstance(value, Enum):
                value = value.value
            values[_SUBSCRIPTION_COLUMNS[field]] = value or None
        return values
