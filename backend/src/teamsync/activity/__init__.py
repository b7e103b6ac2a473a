"""Append-only activity log."""

from teamsync.activity.models import ActivityEntry, ActivityLog, ActivityType
from teamsync.activity.recorder import ActivityRecorder

__all__ = ["ActivityEntry", "ActivityLog", "ActivityRecorder", "ActivityType"]
