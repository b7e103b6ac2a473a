"""Declarative base shared by every aggregate table."""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
