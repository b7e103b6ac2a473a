"""Activity log recorder.

Audit writes are advisory: ``record`` runs in its own transaction after the
business operation has committed, and a failed write is logged and dropped.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select

from teamsync.activity.models import ActivityEntry, ActivityLog, ActivityType
from teamsync.identity.models import UserAccount
from teamsync.logging_config import get_logger
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.storage.models import utcnow
from teamsync.teams.models import Team

logger = get_logger(__name__)


class ActivityRecorder:
    """Appends and reads activity log rows."""

    def __init__(self, database: Database | None = None, config: Settings | None = None):
        self.db = database or db
        self.settings = config or settings
        self.logger = get_logger(__name__)

    def record(
        self,
        action: ActivityType | str,
        team_id: int | None = None,
        user_id: int | None = None,
        ip_address: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityEntry | None:
        """Write one activity row. Never raises.

        The actor's name/email and the team name are looked up now and
        stored with the row, so later renames do not rewrite history.

        Args:
            action: Activity type, or free text
            team_id: Team the action is attributed to, if any
            user_id: Acting user, if any
            ip_address: Source address
            metadata: Free-form details

        Returns:
            The written entry, or None if the write failed
        """
        action = action.value if isinstance(action, ActivityType) else str(action)

        try:
            with self.db.session() as session:
                user_name = user_email = team_name = None
                if user_id is not None:
                    user = session.get(UserAccount, user_id)
                    if user is not None:
                        user_name, user_email = user.name, user.email
                if team_id is not None:
                    team = session.get(Team, team_id)
                    if team is not None:
                        team_name = team.name

                entry = ActivityLog(
                    team_id=team_id,
                    user_id=user_id,
                    action=action[:100],
                    timestamp=utcnow(),
                    ip_address=ip_address,
                    user_name=user_name,
                    user_email=user_email,
                    team_name=team_name,
                    details=metadata,
                )
                session.add(entry)
                session.flush()
                result = ActivityEntry.model_validate(entry)
        except Exception:
            self.logger.exception(
                "activity_log_write_failed",
                action=action,
                team_id=team_id,
                user_id=user_id,
            )
            return None

        self.logger.debug("activity_recorded", activity_id=result.id, action=action)
        return result

    # ==================== READS ====================

    def for_user(self, user_id: int, limit: int = 10) -> list[ActivityEntry]:
        """Most recent activity by a user."""
        return self._query(ActivityLog.user_id == user_id, limit=limit)

    def for_team(self, team_id: int, limit: int = 50) -> list[ActivityEntry]:
        """Most recent activity attributed to a team."""
        return self._query(ActivityLog.team_id == team_id, limit=limit)

    def recent(self, limit: int = 500) -> list[ActivityEntry]:
        """Most recent activity across all teams."""
        return self._query(limit=limit)

    # ==================== RETENTION ====================

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete rows older than the retention window.

        Returns:
            Number of rows deleted
        """
        cutoff = (now or utcnow()) - timedelta(days=self.settings.activity_log_retention_days)
        with self.db.session() as session:
            result = session.execute(delete(ActivityLog).where(ActivityLog.timestamp < cutoff))
            count = result.rowcount or 0
        self.logger.info("activity_logs_purged", count=count, cutoff=cutoff.isoformat())
        return count

    def _query(self, *criteria, limit: int) -> list[ActivityEntry]:
        with self.db.session() as session:
            rows = session.scalars(
                select(ActivityLog)
                .where(*criteria)
                .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
                .limit(limit)
            )
            return [ActivityEntry.model_validate(row) for row in rows]
