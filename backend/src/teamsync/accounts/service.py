"""Account flows called by the route layer.

Each flow runs its mutation first and writes the matching activity row
after commit, so a failed audit write never undoes the action.
"""

from pydantic import BaseModel

from teamsync.activity.models import ActivityType
from teamsync.activity.recorder import ActivityRecorder
from teamsync.errors import MembershipNotFound, TeamNotFound, UserNotFound
from teamsync.identity.models import User, UserUpdate
from teamsync.identity.service import IdentityStore
from teamsync.invitations.models import InvitationView
from teamsync.invitations.service import InvitationManager
from teamsync.logging_config import get_logger
from teamsync.membership.engine import MembershipEngine
from teamsync.membership.models import Membership, UserRole
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.teams.service import TeamStore

logger = get_logger(__name__)


class SignUpResult(BaseModel):
    user: User
    membership: Membership
    created_team: bool


class AccountService:
    """Sign-up, profile, deletion and team-admin flows."""

    def __init__(
        self,
        database: Database | None = None,
        engine: MembershipEngine | None = None,
        invitations: InvitationManager | None = None,
        recorder: ActivityRecorder | None = None,
        config: Settings | None = None,
    ):
        self.db = database or db
        self.settings = config or settings
        self.engine = engine or MembershipEngine(self.db, config=self.settings)
        self.identity: IdentityStore = self.engine.identity
        self.teams: TeamStore = self.engine.teams
        self.invitations = invitations or InvitationManager(self.db, self.engine, self.settings)
        self.recorder = recorder or ActivityRecorder(self.db, self.settings)
        self.logger = get_logger(__name__)

    def sign_up(
        self,
        email: str,
        password_hash: str,
        name: str | None = None,
        invitation_id: int | None = None,
        ip_address: str | None = None,
    ) -> SignUpResult:
        """Create an account and place it on a team.

        With an invitation, the invitation is accepted; otherwise a new team
        named after the email is created with the user as owner. The user,
        the team and both membership copies commit together.

        Args:
            email: Email address
            password_hash: Already-hashed credential
            name: Optional display name
            invitation_id: Pending invitation addressed to ``email``
            ip_address: Source address for the activity log

        Returns:
            The new user and its first membership

        Raises:
            DuplicateEmail: If an active user already has this email
            InvitationNotFound: If the invitation does not exist
            InvitationAlreadyResolved: If the invitation is not pending or has expired
            ConstraintViolation: If the invitation was issued to another email
        """
        with self.db.session() as session:
            user = self.identity.create_user(
                email, password_hash, name=name, role=UserRole.OWNER, session=session
            )
            if invitation_id is not None:
                membership = self.invitations.accept_invitation(invitation_id, user.id, session=session)
                created_team = False
            else:
                team = self.teams.create_team(f"{user.email}'s Team", session=session)
                membership = self.engine.add_member(team.id, user.id, UserRole.OWNER, session=session)
                created_team = True

        first_action = ActivityType.CREATE_TEAM if created_team else ActivityType.ACCEPT_INVITATION
        self.recorder.record(first_action, team_id=membership.team_id, user_id=user.id, ip_address=ip_address)
        self.recorder.record(ActivityType.SIGN_UP, team_id=membership.team_id, user_id=user.id, ip_address=ip_address)

        self.logger.info("user_signed_up", user_id=user.id, team_id=membership.team_id, created_team=created_team)
        return SignUpResult(
            user=self.identity.get_user_by_id(user.id),
            membership=membership,
            created_team=created_team,
        )

    def update_account(self, user_id: int, update: UserUpdate, ip_address: str | None = None) -> User:
        """Update profile fields and propagate display values to teams."""
        user = self.engine.update_member_profile(user_id, update)
        self.recorder.record(
            ActivityType.UPDATE_ACCOUNT,
            team_id=self.engine.primary_team_id(user_id),
            user_id=user_id,
            ip_address=ip_address,
        )
        return user

    def update_password(self, user_id: int, password_hash: str, ip_address: str | None = None) -> User:
        """Store a new, already-hashed credential.

        Raises:
            UserNotFound: If the user does not exist or is deleted
        """
        user = self.identity.update_credential(user_id, password_hash)
        self.recorder.record(
            ActivityType.UPDATE_PASSWORD,
            team_id=self.engine.primary_team_id(user_id),
            user_id=user_id,
            ip_address=ip_address,
        )
        return user

    def delete_account(self, user_id: int, ip_address: str | None = None) -> User:
        """Soft-delete a user and take it off every team.

        The activity row is written first, while the user is still active
        and attributable to a team. Every team row is locked, in ID order,
        before the user row, matching the engine's team-then-user order.

        Raises:
            UserNotFound: If the user does not exist or is already deleted
        """
        user = self.identity.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(user_id)

        self.recorder.record(
            ActivityType.DELETE_ACCOUNT,
            team_id=user.team_ids[0] if user.team_ids else None,
            user_id=user_id,
            ip_address=ip_address,
        )

        with self.db.session() as session:
            for team_id in sorted(user.team_ids):
                self.teams.lock_team(session, team_id)
            for team_id in user.team_ids:
                self.engine.remove_member(team_id, user_id, session=session)
            deleted = self.identity.soft_delete_user(user_id, session=session)

        self.logger.info("account_deleted", user_id=user_id, teams_left=len(user.team_ids))
        return deleted

    def invite_member(
        self,
        team_id: int,
        inviter_id: int,
        email: str,
        role: UserRole = UserRole.MEMBER,
        ip_address: str | None = None,
    ) -> InvitationView:
        """Invite an email to the inviter's team.

        Raises:
            MembershipNotFound: If the inviter is not on the team
        """
        self._require_member(team_id, inviter_id)
        invitation = self.invitations.create_invitation(team_id, email, role=role, invited_by=inviter_id)
        self.recorder.record(
            ActivityType.INVITE_TEAM_MEMBER,
            team_id=team_id,
            user_id=inviter_id,
            ip_address=ip_address,
            metadata={"invitation_id": invitation.id, "role": invitation.role.value},
        )
        return invitation

    def remove_team_member(
        self,
        team_id: int,
        actor_id: int,
        member_id: int,
        ip_address: str | None = None,
    ) -> bool:
        """Remove a member on behalf of another member of the same team.

        Raises:
            TeamNotFound: If the team does not exist
            MembershipNotFound: If the actor is not on the team
        """
        self._require_member(team_id, actor_id)
        removed = self.engine.remove_member(team_id, member_id)
        self.recorder.record(
            ActivityType.REMOVE_TEAM_MEMBER,
            team_id=team_id,
            user_id=actor_id,
            ip_address=ip_address,
            metadata={"member_id": member_id},
        )
        return removed

    def record_sign_in(self, user_id: int, ip_address: str | None = None) -> None:
        self._record_session_event(ActivityType.SIGN_IN, user_id, ip_address)

    def record_sign_out(self, user_id: int, ip_address: str | None = None) -> None:
        self._record_session_event(ActivityType.SIGN_OUT, user_id, ip_address)

    def _record_session_event(self, action: ActivityType, user_id: int, ip_address: str | None) -> None:
        self.recorder.record(
            action,
            team_id=self.engine.primary_team_id(user_id),
            user_id=user_id,
            ip_address=ip_address,
        )

    def _require_member(self, team_id: int, user_id: int) -> None:
        team = self.teams.get_team(team_id)
        if team is None:
            raise TeamNotFound(team_id)
        if team.member(user_id) is None:
            raise MembershipNotFound(team_id, user_id)
