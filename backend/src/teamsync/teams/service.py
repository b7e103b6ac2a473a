"""Team aggregate store."""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamsync.errors import BillingIdentifierConflict, MembershipLimitExceeded, TeamNotFound
from teamsync.logging_config import get_logger
from teamsync.membership.models import Membership
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.storage.models import utcnow
from teamsync.teams.models import SubscriptionUpdate, Team, TeamView

logger = get_logger(__name__)


class TeamStore:
    """Persistence for teams: names and billing state.

    Member lists are written only through ``write_members``, which the
    membership engine calls from inside its own transaction.
    """

    def __init__(self, database: Database | None = None, config: Settings | None = None):
        self.db = database or db
        self.settings = config or settings
        self.logger = get_logger(__name__)

    def create_team(
        self,
        name: str,
        customer_id: str | None = None,
        session: Session | None = None,
    ) -> TeamView:
        """Create a team with no members.

        Args:
            name: Team name
            customer_id: Optional billing customer id
            session: Enclosing transaction, if any

        Returns:
            Created team

        Raises:
            BillingIdentifierConflict: If the customer id belongs to another team
        """
        with self.db.scope(session) as s:
            team = Team(
                name=name.strip()[:100],
                stripe_customer_id=customer_id or None,
                team_members=[],
            )
            s.add(team)
            try:
                s.flush()
            except IntegrityError as exc:
                raise BillingIdentifierConflict() from exc

            self.logger.info("team_created", team_id=team.id)
            return TeamView.model_validate(team)

    def get_team(self, team_id: int, session: Session | None = None) -> TeamView | None:
        """Get team by ID."""
        with self.db.scope(session) as s:
            team = s.get(Team, team_id)
            return TeamView.model_validate(team) if team else None

    def get_teams(self, team_ids: list[int], session: Session | None = None) -> list[TeamView]:
        """Get several teams, in the order of ``team_ids``. Missing ids are skipped."""
        if not team_ids:
            return []
        with self.db.scope(session) as s:
            teams = {
                team.id: team
                for team in s.scalars(select(Team).where(Team.id.in_(team_ids)))
            }
            return [TeamView.model_validate(teams[tid]) for tid in team_ids if tid in teams]

    def list_teams(self) -> list[TeamView]:
        """List all teams, newest first."""
        with self.db.session() as session:
            teams = session.scalars(
                select(Team).order_by(Team.created_at.desc(), Team.id.desc())
            )
            return [TeamView.model_validate(team) for team in teams]

    def rename_team(self, team_id: int, name: str) -> TeamView:
        """Rename a team.

        Team names already frozen into invitations and activity log rows
        are historical snapshots and are not rewritten.

        Raises:
            TeamNotFound: If the team does not exist
        """
        with self.db.session() as session:
            team = session.get(Team, team_id)
            if not team:
                raise TeamNotFound(team_id)

            team.name = name.strip()[:100]
            team.updated_at = utcnow()
            session.flush()

            self.logger.info("team_renamed", team_id=team_id)
            return TeamView.model_validate(team)

    # ==================== BILLING ====================

    def update_team_subscription(self, team_id: int, update: SubscriptionUpdate) -> TeamView:
        """Apply a field-level billing update. Idempotent.

        Args:
            team_id: Team ID
            update: Fields to set; omitted fields are untouched, ``None`` clears

        Returns:
            Updated team

        Raises:
            TeamNotFound: If the team does not exist
            BillingIdentifierConflict: If a customer or subscription id is
                already held by another team
        """
        values = update.column_values()

        try:
            with self.db.session() as session:
                team = session.get(Team, team_id)
                if not team:
                    raise TeamNotFound(team_id)

                for column, value in values.items():
                    setattr(team, column, value)
                team.updated_at = utcnow()
                session.flush()
                result = TeamView.model_validate(team)
        except IntegrityError as exc:
            raise BillingIdentifierConflict(team_id) from exc

        self.logger.info(
            "team_subscription_updated",
            team_id=team_id,
            fields=sorted(values),
            status=result.subscription_status,
        )
        return result

    def find_team_by_customer_id(self, customer_id: str) -> TeamView | None:
        """Get team by billing customer id (unique index lookup, used by webhooks)."""
        with self.db.session() as session:
            team = session.query(Team).filter(Team.stripe_customer_id == customer_id).first()
            return TeamView.model_validate(team) if team else None

    def find_team_by_subscription_id(self, subscription_id: str) -> TeamView | None:
        """Get team by billing subscription id."""
        with self.db.session() as session:
            team = session.query(Team).filter(Team.stripe_subscription_id == subscription_id).first()
            return TeamView.model_validate(team) if team else None

    # ==================== ENGINE SUPPORT ====================

    def lock_team(self, session: Session, team_id: int) -> Team | None:
        """Load a team row for update inside the caller's transaction."""
        return session.query(Team).filter(Team.id == team_id).with_for_update().first()

    def write_members(self, session: Session, team: Team, members: list[Membership]) -> None:
        """Persist a new member list on the team row.

        Raises:
            MembershipLimitExceeded: If the list is over the per-team bound
        """
        if len(members) > self.settings.max_members_per_team:
            raise MembershipLimitExceeded(
                f"Team cannot have more than {self.settings.max_members_per_team} members",
                team_id=team.id,
            )
        team.team_members = [member.to_document() for member in members]
        team.updated_at = utcnow()
        session.flush()
