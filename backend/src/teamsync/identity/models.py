"""Identity models for user accounts."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import JSON, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.elements import ColumnElement

from teamsync.membership.models import Membership, UserRole
from teamsync.storage.models import Base, utcnow


class UserAccount(Base):
    """User account, the single source of truth for name, email and role.

    ``team_memberships`` is this user's copy of the membership relation.
    It is written by the membership engine only.
    """

    __tablename__ = "user_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.MEMBER.value)

    # Embedded memberships (JSON array of Membership documents)
    team_memberships: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    # Soft delete (NULL = active)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # Email is unique among active users only
        Index(
            "uq_user_accounts_active_email",
            "email",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("ix_user_accounts_active_created", "deleted_at", "created_at"),
        Index("ix_user_accounts_role", "role", "deleted_at"),
    )

    def __repr__(self) -> str:
        return f"<UserAccount(id={self.id}, email={self.email}, role={self.role})>"

    @classmethod
    def active(cls) -> ColumnElement[bool]:
        """Filter clause selecting non-deleted users."""
        return cls.deleted_at.is_(None)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def memberships(self) -> list[Membership]:
        return [Membership.from_document(doc) for doc in self.team_memberships or []]


def normalize_email(email: str) -> str:
    return email.strip().lower()


# Pydantic models for callers

class User(BaseModel):
    """User as returned to generic callers. Never carries the credential."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str | None
    email: str
    role: UserRole
    team_memberships: list[Membership] = []
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def team_ids(self) -> list[int]:
        return [membership.team_id for membership in self.team_memberships]


class UserWithCredential(User):
    """User including the password hash, for credential verification only."""

    password_hash: str


class UserCreate(BaseModel):
    """User creation request."""
    email: EmailStr
    name: str | None = Field(default=None, max_length=100)
    role: UserRole = UserRole.MEMBER


class UserUpdate(BaseModel):
    """Partial user update.

    Only fields explicitly passed are applied. ``name=None`` clears the
    name; email and role cannot be cleared.
    """
    name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    role: UserRole | None = None

    @property
    def touches_profile(self) -> bool:
        """True when a denormalized display field is part of the update."""
        return bool(self.model_fields_set & {"name", "email"})
