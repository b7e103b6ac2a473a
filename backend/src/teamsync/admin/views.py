"""Admin aggregation views.

Read-only projections over both aggregates. Each view reads the stores as
they are; stale display copies are shown as-is, never repaired here.
"""

from pydantic import BaseModel, computed_field
from sqlalchemy import func, select

from teamsync.activity.models import ActivityEntry
from teamsync.activity.recorder import ActivityRecorder
from teamsync.identity.models import User, UserAccount
from teamsync.logging_config import get_logger
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.teams.models import Team, TeamView

logger = get_logger(__name__)


class UserWithTeams(BaseModel):
    """An active user joined with the teams its membership list points at."""

    user: User
    teams: list[TeamView] = []


class TeamWithMemberCount(BaseModel):
    team: TeamView

    @computed_field
    @property
    def member_count(self) -> int:
        return self.team.member_count


class DashboardStats(BaseModel):
    total_users: int
    total_teams: int
    recent_users: list[User] = []
    recent_teams: list[TeamView] = []


class AdminViews:
    """Unfiltered, unpaginated projections for the admin surface."""

    def __init__(
        self,
        database: Database | None = None,
        recorder: ActivityRecorder | None = None,
        config: Settings | None = None,
    ):
        self.db = database or db
        self.settings = config or settings
        self.recorder = recorder or ActivityRecorder(self.db, self.settings)
        self.logger = get_logger(__name__)

    def list_users_with_teams(self) -> list[UserWithTeams]:
        """Active users, newest first, each with its teams.

        Teams that no longer exist are left out of a user's list.
        """
        with self.db.session() as session:
            users = [
                User.model_validate(user)
                for user in session.scalars(
                    select(UserAccount)
                    .where(UserAccount.active())
                    .order_by(UserAccount.created_at.desc(), UserAccount.id.desc())
                )
            ]
            team_ids = {team_id for user in users for team_id in user.team_ids}
            teams = {}
            if team_ids:
                teams = {
                    team.id: TeamView.model_validate(team)
                    for team in session.scalars(select(Team).where(Team.id.in_(team_ids)))
                }

        return [
            UserWithTeams(user=user, teams=[teams[tid] for tid in user.team_ids if tid in teams])
            for user in users
        ]

    def list_teams_with_member_counts(self) -> list[TeamWithMemberCount]:
        """All teams, newest first, with the size of their member list."""
        with self.db.session() as session:
            teams = session.scalars(select(Team).order_by(Team.created_at.desc(), Team.id.desc()))
            return [TeamWithMemberCount(team=TeamView.model_validate(team)) for team in teams]

    def dashboard_stats(self) -> DashboardStats:
        """Totals plus the most recently created users and teams."""
        limit = self.settings.recent_items_limit
        with self.db.session() as session:
            total_users = session.scalar(
                select(func.count()).select_from(UserAccount).where(UserAccount.active())
            )
            total_teams = session.scalar(select(func.count()).select_from(Team))
            recent_users = session.scalars(
                select(UserAccount)
                .where(UserAccount.active())
                .order_by(UserAccount.created_at.desc(), UserAccount.id.desc())
                .limit(limit)
            )
            recent_teams = session.scalars(
                select(Team).order_by(Team.created_at.desc(), Team.id.desc()).limit(limit)
            )
            return DashboardStats(
                total_users=total_users or 0,
                total_teams=total_teams or 0,
                recent_users=[User.model_validate(user) for user in recent_users],
                recent_teams=[TeamView.model_validate(team) for team in recent_teams],
            )

    def recent_activity(self, limit: int = 500) -> list[ActivityEntry]:
        return self.recorder.recent(limit=limit)
