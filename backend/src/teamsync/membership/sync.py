"""Profile fan-out worker.

Drains ``ProfileSyncTask`` rows: copies a user's current name and email
into the membership entry each listed team holds for that user. Each team
row is written in its own short transaction. Delivery is at-least-once;
applying a task twice is harmless because values are re-read every time.
"""

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from teamsync.identity.service import IdentityStore
from teamsync.logging_config import get_logger
from teamsync.membership.models import ProfileSyncTask, SyncStatus
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.storage.models import utcnow
from teamsync.teams.service import TeamStore

logger = get_logger(__name__)


class DrainReport(BaseModel):
    """Outcome of one drain pass."""

    processed: int = 0
    failed: int = 0
    remaining: int = 0


class ProfileSyncWorker:
    """Applies pending profile fan-out tasks."""

    def __init__(
        self,
        database: Database | None = None,
        identity: IdentityStore | None = None,
        teams: TeamStore | None = None,
        config: Settings | None = None,
    ):
        self.db = database or db
        self.settings = config or settings
        self.identity = identity or IdentityStore(self.db, self.settings)
        self.teams = teams or TeamStore(self.db, self.settings)
        self.logger = get_logger(__name__)

    def process(self, task_id: int) -> bool:
        """Apply one task.

        Args:
            task_id: Outbox task ID

        Returns:
            True if the task is done (now or already), False if it failed
            and was left for a later retry
        """
        with self.db.session() as session:
            task = session.get(ProfileSyncTask, task_id)
            if task is None:
                return False
            if task.status != SyncStatus.PENDING.value:
                return task.status == SyncStatus.DONE.value
            user_id = task.user_id
            team_ids = list(task.team_ids)

        try:
            updated = sum(self._apply(user_id, team_id) for team_id in team_ids)
        except SQLAlchemyError as exc:
            self._record_failure(task_id, exc)
            return False

        with self.db.session() as session:
            task = session.get(ProfileSyncTask, task_id)
            task.status = SyncStatus.DONE.value
            task.attempts += 1
            task.last_error = None
            task.processed_at = utcnow()

        self.logger.info("profile_sync_done", task_id=task_id, user_id=user_id, teams_updated=updated)
        return True

    def drain(self, limit: int = 100) -> DrainReport:
        """Process pending tasks, oldest first."""
        with self.db.session() as session:
            task_ids = list(session.scalars(
                select(ProfileSyncTask.id)
                .where(ProfileSyncTask.status == SyncStatus.PENDING.value)
                .order_by(ProfileSyncTask.created_at, ProfileSyncTask.id)
                .limit(limit)
            ))

        report = DrainReport()
        for task_id in task_ids:
            if self.process(task_id):
                report.processed += 1
            else:
                report.failed += 1

        report.remaining = self.pending_count()
        self.logger.info("profile_sync_drained", **report.model_dump())
        return report

    def pending_count(self) -> int:
        with self.db.session() as session:
            return session.query(ProfileSyncTask).filter(
                ProfileSyncTask.status == SyncStatus.PENDING.value
            ).count()

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        reraise=True,
    )
    def _apply(self, user_id: int, team_id: int) -> bool:
        """Refresh one team's copy of the user's display values.

        Lock timeouts and dropped connections are retried in place before
        the task as a whole is marked as failed.
        """
        with self.db.session() as session:
            team = self.teams.lock_team(session, team_id)
            user = self.identity.lock_user(session, user_id, include_deleted=True)
            if team is None or user is None:
                return False

            members = team.members
            changed = False
            for index, member in enumerate(members):
                if member.user_id != user_id:
                    continue
                if member.user_name != user.name or member.user_email != user.email:
                    members[index] = member.model_copy(
                        update={"user_name": user.name, "user_email": user.email}
                    )
                    changed = True

            if changed:
                self.teams.write_members(session, team, members)
            return changed

    def _record_failure(self, task_id: int, exc: Exception) -> None:
        with self.db.session() as session:
            task = session.get(ProfileSyncTask, task_id)
            task.attempts += 1
            task.last_error = str(exc)[:2000]
            if task.attempts >= self.settings.profile_sync_max_attempts:
                task.status = SyncStatus.FAILED.value
            status = task.status
            attempts = task.attempts

        self.logger.warning(
            "profile_sync_failed",
            task_id=task_id,
            attempts=attempts,
            status=status,
            error=str(exc),
        )
