"""Invitation lifecycle: pending -> accepted | declined | expired."""

from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from teamsync.errors import (
    AlreadyMember,
    ConstraintViolation,
    DuplicateInvitation,
    InvitationAlreadyResolved,
    InvitationExpired,
    InvitationNotFound,
    TeamNotFound,
    TeamSyncError,
    TransactionAborted,
    UserNotFound,
)
from teamsync.identity.models import UserAccount, normalize_email
from teamsync.invitations.models import (
    Invitation,
    InvitationCreate,
    InvitationStatus,
    InvitationView,
)
from teamsync.logging_config import get_logger
from teamsync.membership.engine import MembershipEngine
from teamsync.membership.models import Membership, UserRole
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.storage.models import utcnow
from teamsync.teams.models import Team

logger = get_logger(__name__)


class InvitationManager:
    """Issues invitations and resolves them into memberships.

    A non-pending invitation is terminal. A pending invitation past its TTL
    is treated as expired even if the sweep has not reached it yet.
    """

    def __init__(
        self,
        database: Database | None = None,
        engine: MembershipEngine | None = None,
        config: Settings | None = None,
    ):
        self.db = database or db
        self.settings = config or settings
        self.engine = engine or MembershipEngine(self.db, config=self.settings)
        self.logger = get_logger(__name__)

    @property
    def ttl(self) -> timedelta:
        return timedelta(days=self.settings.invitation_ttl_days)

    # ==================== CREATE ====================

    def create_invitation(
        self,
        team_id: int,
        email: str,
        role: UserRole = UserRole.MEMBER,
        invited_by: int | None = None,
        session: Session | None = None,
    ) -> InvitationView:
        """Invite an email address to a team.

        Team name and inviter name/email are copied onto the invitation and
        never updated afterwards.

        Args:
            team_id: Team ID
            email: Invitee email
            role: Role granted on acceptance
            invited_by: Inviting user ID
            session: Enclosing transaction, if any

        Returns:
            Created invitation

        Raises:
            TeamNotFound: If the team does not exist
            UserNotFound: If no inviter is given or the inviter is not an active user
            AlreadyMember: If a member of the team already has this email
            DuplicateInvitation: If a pending invitation exists for this email and team
        """
        if invited_by is None:
            raise UserNotFound(invited_by=None)
        payload = InvitationCreate(team_id=team_id, email=email, role=role, invited_by=invited_by)
        address = normalize_email(payload.email)

        with self.db.scope(session) as s:
            team = s.get(Team, team_id)
            if team is None:
                raise TeamNotFound(team_id)
            inviter = s.query(UserAccount).filter(
                UserAccount.id == payload.invited_by,
                UserAccount.active(),
            ).first()
            if inviter is None:
                raise UserNotFound(payload.invited_by)

            member_ids = [member.user_id for member in team.members]
            if member_ids and s.query(UserAccount).filter(
                UserAccount.id.in_(member_ids),
                UserAccount.email == address,
                UserAccount.active(),
            ).first():
                raise AlreadyMember(address, team_id)

            # A stale pending row would otherwise hold the unique slot
            self._expire_stale(s, email=address, team_id=team_id)

            invitation = Invitation(
                team_id=team_id,
                email=address,
                role=payload.role.value,
                invited_by=inviter.id,
                invited_at=utcnow(),
                status=InvitationStatus.PENDING.value,
                team_name=team.name,
                invited_by_name=inviter.name,
                invited_by_email=inviter.email,
            )
            s.add(invitation)
            try:
                s.flush()
            except IntegrityError as exc:
                raise DuplicateInvitation(address, team_id) from exc

            self.logger.info("invitation_created", invitation_id=invitation.id, team_id=team_id)
            return InvitationView.model_validate(invitation)

    # ==================== RESOLVE ====================

    def accept_invitation(
        self,
        invitation_id: int,
        user_id: int,
        session: Session | None = None,
    ) -> Membership:
        """Accept an invitation and add the user to the team.

        Validation, the membership write and the status change commit
        together. If the membership write fails the invitation stays pending.

        Args:
            invitation_id: Invitation ID
            user_id: Accepting user; their email must match the invitee

        Returns:
            The new membership

        Raises:
            InvitationNotFound: If the invitation does not exist
            InvitationAlreadyResolved: If it is no longer pending
            InvitationExpired: If it is pending but past the TTL
            UserNotFound: If the user does not exist or is deleted
            ConstraintViolation: If the user's email is not the invitee's
            TransactionAborted: If storage failed; nothing was applied
        """
        try:
            with self.db.scope(session) as s:
                invitation = self._lock_pending(s, invitation_id)

                user = s.query(UserAccount).filter(
                    UserAccount.id == user_id,
                    UserAccount.active(),
                ).first()
                if user is None:
                    raise UserNotFound(user_id)
                if user.email != invitation.email:
                    raise ConstraintViolation(
                        "Invitation was issued to a different email",
                        invitation_id=invitation_id,
                        user_id=user_id,
                    )

                membership = self.engine.add_member(
                    invitation.team_id,
                    user_id,
                    role=UserRole(invitation.role),
                    session=s,
                )
                self._resolve(s, invitation, InvitationStatus.ACCEPTED)
        except TeamSyncError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("invitation_accept_aborted", invitation_id=invitation_id, error=str(exc))
            raise TransactionAborted("accept_invitation", str(exc), invitation_id=invitation_id) from exc

        self.logger.info(
            "invitation_accepted",
            invitation_id=invitation_id,
            team_id=membership.team_id,
            user_id=user_id,
        )
        return membership

    def decline_invitation(self, invitation_id: int) -> InvitationView:
        """Decline a pending invitation.

        Raises:
            InvitationNotFound: If the invitation does not exist
            InvitationAlreadyResolved: If it is no longer pending
        """
        with self.db.session() as session:
            invitation = self._lock_pending(session, invitation_id)
            self._resolve(session, invitation, InvitationStatus.DECLINED)
            self.logger.info("invitation_declined", invitation_id=invitation_id)
            return InvitationView.model_validate(invitation)

    def expire_invitation(self, invitation_id: int) -> InvitationView:
        """Expire a pending invitation now, regardless of age."""
        with self.db.session() as session:
            invitation = self._lock(session, invitation_id)
            if not invitation.is_pending:
                raise InvitationAlreadyResolved(invitation_id, invitation.status)
            self._resolve(session, invitation, InvitationStatus.EXPIRED)
            self.logger.info("invitation_expired", invitation_id=invitation_id)
            return InvitationView.model_validate(invitation)

    def expire_stale_invitations(self, now: datetime | None = None) -> int:
        """Mark every pending invitation older than the TTL as expired.

        Returns:
            Number of invitations expired
        """
        with self.db.session() as session:
            count = self._expire_stale(session, now=now)
        self.logger.info("stale_invitations_expired", count=count)
        return count

    # ==================== READS ====================

    def get_invitation(self, invitation_id: int) -> InvitationView | None:
        with self.db.session() as session:
            invitation = session.get(Invitation, invitation_id)
            return InvitationView.model_validate(invitation) if invitation else None

    def get_pending_invitation(self, email: str, team_id: int) -> InvitationView | None:
        """Pending, unexpired invitation for this email and team, if any."""
        with self.db.session() as session:
            invitation = session.query(Invitation).filter(
                Invitation.email == normalize_email(email),
                Invitation.team_id == team_id,
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.invited_at > utcnow() - self.ttl,
            ).first()
            return InvitationView.model_validate(invitation) if invitation else None

    def pending_invitations_for_email(self, email: str) -> list[InvitationView]:
        """Unexpired pending invitations addressed to an email, newest first."""
        with self.db.session() as session:
            invitations = session.query(Invitation).filter(
                Invitation.email == normalize_email(email),
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.invited_at > utcnow() - self.ttl,
            ).order_by(Invitation.invited_at.desc(), Invitation.id.desc()).all()
            return [InvitationView.model_validate(invitation) for invitation in invitations]

    def team_invitations(self, team_id: int, status: InvitationStatus | None = None) -> list[InvitationView]:
        """All invitations of a team, newest first, optionally by status."""
        with self.db.session() as session:
            query = session.query(Invitation).filter(Invitation.team_id == team_id)
            if status is not None:
                query = query.filter(Invitation.status == InvitationStatus(status).value)
            invitations = query.order_by(Invitation.invited_at.desc(), Invitation.id.desc()).all()
            return [InvitationView.model_validate(invitation) for invitation in invitations]

    # ==================== HELPERS ====================

    def _lock(self, session: Session, invitation_id: int) -> Invitation:
        invitation = session.query(Invitation).filter(
            Invitation.id == invitation_id
        ).with_for_update().first()
        if invitation is None:
            raise InvitationNotFound(invitation_id)
        return invitation

    def _lock_pending(self, session: Session, invitation_id: int) -> Invitation:
        """Lock an invitation that is pending and within its TTL."""
        invitation = self._lock(session, invitation_id)
        if not invitation.is_pending:
            raise InvitationAlreadyResolved(invitation_id, invitation.status)
        if invitation.is_stale(self.ttl):
            raise InvitationExpired(invitation_id)
        return invitation

    def _resolve(self, session: Session, invitation: Invitation, status: InvitationStatus) -> None:
        invitation.status = status.value
        invitation.resolved_at = utcnow()
        session.flush()

    def _expire_stale(
        self,
        session: Session,
        email: str | None = None,
        team_id: int | None = None,
        now: datetime | None = None,
    ) -> int:
        query = session.query(Invitation).filter(
            Invitation.status == InvitationStatus.PENDING.value,
            Invitation.invited_at <= (now or utcnow()) - self.ttl,
        )
        if email is not None:
            query = query.filter(Invitation.email == email)
        if team_id is not None:
            query = query.filter(Invitation.team_id == team_id)
        return query.update(
            {"status": InvitationStatus.EXPIRED.value, "resolved_at": utcnow()},
            synchronize_session=False,
        )
