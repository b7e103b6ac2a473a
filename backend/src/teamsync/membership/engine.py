"""Membership consistency engine.

The membership relation is stored twice: in ``UserAccount.team_memberships``
(the user's teams) and in ``Team.team_members`` (the team's roster). This
engine is the only writer of either list. Every change that touches both
rows runs in one transaction; a failure on either side rolls back both.

Authority rules:
- The team side decides whether a membership exists (role updates).
- The user row decides the current display values (profile fan-out).
"""

from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamsync.errors import (
    MembershipNotFound,
    TeamNotFound,
    TeamSyncError,
    TransactionAborted,
    UserNotFound,
)
from teamsync.identity.models import User, UserAccount, UserUpdate
from teamsync.identity.service import IdentityStore
from teamsync.invitations.models import Invitation, InvitationStatus
from teamsync.logging_config import get_logger
from teamsync.membership.models import (
    DiscrepancyKind,
    MemberProfile,
    Membership,
    MembershipDiscrepancy,
    ProfileSyncTask,
    UserRole,
)
from teamsync.membership.sync import ProfileSyncWorker
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.storage.models import utcnow
from teamsync.teams.models import Team, TeamView
from teamsync.teams.service import TeamStore

logger = get_logger(__name__)


def _upsert(
    entries: list[Membership],
    membership: Membership,
    matches: Callable[[Membership], bool],
) -> list[Membership]:
    """Replace the first matching entry in place, drop any duplicates, or append."""
    result = []
    placed = False
    for entry in entries:
        if not matches(entry):
            result.append(entry)
        elif not placed:
            result.append(membership)
            placed = True
    if not placed:
        result.append(membership)
    return result


def _for_team(team_id: int) -> Callable[[Membership], bool]:
    return lambda entry: entry.team_id == team_id


def _for_user(user_id: int) -> Callable[[Membership], bool]:
    return lambda entry: entry.user_id == user_id


def _find(entries: list[Membership], matches: Callable[[Membership], bool]) -> Membership | None:
    return next((entry for entry in entries if matches(entry)), None)


class MembershipEngine:
    """Keeps the user-side and team-side membership copies in agreement."""

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
        self.sync = ProfileSyncWorker(self.db, self.identity, self.teams, self.settings)
        self.logger = get_logger(__name__)

    # ==================== MUTATIONS ====================

    def add_member(
        self,
        team_id: int,
        user_id: int,
        role: UserRole = UserRole.MEMBER,
        user_info: MemberProfile | None = None,
        session: Session | None = None,
    ) -> Membership:
        """Add a user to a team, or update the existing membership.

        Upsert on both sides: an existing entry gets the new role, a fresh
        joined time and the given display values. If only one side has an
        entry, the missing side is written rather than refusing the call.

        Args:
            team_id: Team ID
            user_id: User ID (must be active)
            role: Role on the team
            user_info: Display values to copy; defaults to the user's current
                name and email
            session: Enclosing transaction, if any

        Returns:
            The membership as written to both sides

        Raises:
            TeamNotFound: If the team does not exist
            UserNotFound: If the user does not exist or is deleted
            MembershipLimitExceeded: If either list would exceed its bound
            TransactionAborted: If storage failed; nothing was applied
        """
        role = UserRole(role)
        try:
            with self.db.scope(session) as s:
                team = self.teams.lock_team(s, team_id)
                if team is None:
                    raise TeamNotFound(team_id)
                user = self.identity.lock_user(s, user_id)
                if user is None:
                    raise UserNotFound(user_id)

                user_entry = _find(user.memberships, _for_team(team_id))
                team_entry = _find(team.members, _for_user(user_id))
                if (user_entry is None) != (team_entry is None):
                    self.logger.warning(
                        "membership_repaired",
                        team_id=team_id,
                        user_id=user_id,
                        missing_side="user" if user_entry is None else "team",
                    )

                info = user_info or MemberProfile()
                membership = Membership(
                    user_id=user_id,
                    team_id=team_id,
                    role=role,
                    joined_at=utcnow(),
                    user_name=info.name if info.name is not None else user.name,
                    user_email=info.email if info.email is not None else user.email,
                )
                self._apply_user_side(s, user, membership)
                self._apply_team_side(s, team, membership)
        except TeamSyncError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("member_add_aborted", team_id=team_id, user_id=user_id, error=str(exc))
            raise TransactionAborted("add_member", str(exc), team_id=team_id, user_id=user_id) from exc

        self.logger.info("member_added", team_id=team_id, user_id=user_id, role=role.value)
        return membership

    def remove_member(self, team_id: int, user_id: int, session: Session | None = None) -> bool:
        """Remove a membership from both sides. Idempotent.

        Succeeds when the entry is already gone on either or both sides,
        and when the team or user row itself is gone, so a retry after a
        partial failure always converges.

        Returns:
            True if an entry was removed from at least one side
        """
        try:
            with self.db.scope(session) as s:
                team = self.teams.lock_team(s, team_id)
                user = self.identity.lock_user(s, user_id, include_deleted=True)
                removed = False

                if user is not None:
                    kept = [m for m in user.memberships if m.team_id != team_id]
                    if len(kept) != len(user.team_memberships):
                        self.identity.write_memberships(s, user, kept)
                        removed = True

                if team is not None:
                    kept = [m for m in team.members if m.user_id != user_id]
                    if len(kept) != len(team.team_members):
                        self._write_team_members(s, team, kept)
                        removed = True
        except TeamSyncError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("member_remove_aborted", team_id=team_id, user_id=user_id, error=str(exc))
            raise TransactionAborted("remove_member", str(exc), team_id=team_id, user_id=user_id) from exc

        if removed:
            self.logger.info("member_removed", team_id=team_id, user_id=user_id)
        else:
            self.logger.debug("member_already_removed", team_id=team_id, user_id=user_id)
        return removed

    def update_member_role(
        self,
        team_id: int,
        user_id: int,
        role: UserRole,
        session: Session | None = None,
    ) -> Membership:
        """Change a member's role on both sides.

        The team roster decides whether the membership exists. If the user
        row lacks its copy, the copy is written from the team's entry.

        Raises:
            TeamNotFound: If the team does not exist
            MembershipNotFound: If the team roster has no entry for the user
            UserNotFound: If the user row is gone
            TransactionAborted: If storage failed; nothing was applied
        """
        role = UserRole(role)
        try:
            with self.db.scope(session) as s:
                team = self.teams.lock_team(s, team_id)
                if team is None:
                    raise TeamNotFound(team_id)
                team_entry = _find(team.members, _for_user(user_id))
                if team_entry is None:
                    raise MembershipNotFound(team_id, user_id)
                user = self.identity.lock_user(s, user_id, include_deleted=True)
                if user is None:
                    raise UserNotFound(user_id)

                user_entry = _find(user.memberships, _for_team(team_id))
                if user_entry is None:
                    self.logger.warning(
                        "membership_repaired",
                        team_id=team_id,
                        user_id=user_id,
                        missing_side="user",
                    )
                    user_entry = team_entry

                self._apply_user_side(s, user, user_entry.model_copy(update={"role": role}))
                membership = team_entry.model_copy(update={"role": role})
                self._apply_team_side(s, team, membership)
        except TeamSyncError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("member_role_update_aborted", team_id=team_id, user_id=user_id, error=str(exc))
            raise TransactionAborted("update_member_role", str(exc), team_id=team_id, user_id=user_id) from exc

        self.logger.info("member_role_updated", team_id=team_id, user_id=user_id, role=role.value)
        return membership

    def update_member_profile(self, user_id: int, update: UserUpdate) -> User:
        """Update a user's profile and fan the display values out to teams.

        The identity change and an outbox task naming every team the user
        belonged to *before* the edit commit together. The fan-out then
        runs after commit, one team row at a time; if it fails the task
        stays pending for ``ProfileSyncWorker.drain``. Team copies may be
        briefly stale but converge.

        Args:
            user_id: User ID
            update: Profile fields to change

        Returns:
            Updated user

        Raises:
            UserNotFound: If the user does not exist or is deleted
            DuplicateEmail: If the new email belongs to another active user
        """
        task_id = None
        try:
            with self.db.session() as s:
                user = self.identity.lock_user(s, user_id)
                if user is None:
                    raise UserNotFound(user_id)
                team_ids = [membership.team_id for membership in user.memberships]

                updated = self.identity.update_user(user_id, update, session=s)

                if update.touches_profile and team_ids:
                    task = ProfileSyncTask(user_id=user_id, team_ids=team_ids)
                    s.add(task)
                    s.flush()
                    task_id = task.id
        except TeamSyncError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("profile_update_aborted", user_id=user_id, error=str(exc))
            raise TransactionAborted("update_member_profile", str(exc), user_id=user_id) from exc

        if task_id is not None:
            try:
                self.sync.process(task_id)
            except SQLAlchemyError:
                self.logger.exception("profile_sync_deferred", user_id=user_id, task_id=task_id)

        return updated

    def delete_team(self, team_id: int) -> list[int]:
        """Hard-delete a team and every reference to it.

        In one transaction: the team is pulled from each member's list,
        its pending invitations are expired, and the row is deleted.
        Member rows are locked in user ID order.
        Activity log rows keep their snapshots.

        Returns:
            IDs of the users whose membership lists were updated

        Raises:
            TeamNotFound: If the team does not exist
        """
        try:
            with self.db.session() as s:
                team = self.teams.lock_team(s, team_id)
                if team is None:
                    raise TeamNotFound(team_id)

                touched = []
                for member in sorted(team.members, key=lambda m: m.user_id):
                    user = self.identity.lock_user(s, member.user_id, include_deleted=True)
                    if user is None:
                        continue
                    kept = [m for m in user.memberships if m.team_id != team_id]
                    if len(kept) != len(user.team_memberships):
                        self.identity.write_memberships(s, user, kept)
                        touched.append(user.id)

                expired = s.query(Invitation).filter(
                    Invitation.team_id == team_id,
                    Invitation.status == InvitationStatus.PENDING.value,
                ).update(
                    {"status": InvitationStatus.EXPIRED.value, "resolved_at": utcnow()},
                    synchronize_session=False,
                )

                s.delete(team)
                s.flush()
        except TeamSyncError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("team_delete_aborted", team_id=team_id, error=str(exc))
            raise TransactionAborted("delete_team", str(exc), team_id=team_id) from exc

        self.logger.info("team_deleted", team_id=team_id, members_updated=len(touched), invitations_expired=expired)
        return touched

    # ==================== READS ====================

    def get_membership(self, team_id: int, user_id: int) -> Membership | None:
        """Read a membership from the team roster."""
        team = self.teams.get_team(team_id)
        return team.member(user_id) if team else None

    def teams_for_user(self, user_id: int) -> list[TeamView]:
        """Teams an active user belongs to, in membership order."""
        with self.db.session() as s:
            user = s.query(UserAccount).filter(
                UserAccount.id == user_id,
                UserAccount.active(),
            ).first()
            if user is None:
                return []
            return self.teams.get_teams([m.team_id for m in user.memberships], session=s)

    def primary_team_id(self, user_id: int) -> int | None:
        """First team in the user's list; used to attribute activity."""
        user = self.identity.get_user_by_id(user_id)
        if user is None or not user.team_memberships:
            return None
        return user.team_memberships[0].team_id

    def check_consistency(self) -> list[MembershipDiscrepancy]:
        """Compare both copies of every membership. Read-only.

        Soft-deleted users are included: their entries stay until removed.
        """
        with self.db.session() as s:
            users = {user.id: user.memberships for user in s.scalars(select(UserAccount))}
            teams = {team.id: team.members for team in s.scalars(select(Team))}

        found = []
        for team_id, members in teams.items():
            for entry in members:
                if entry.user_id not in users:
                    found.append(MembershipDiscrepancy(
                        team_id=team_id, user_id=entry.user_id,
                        kind=DiscrepancyKind.DANGLING_USER, team_role=entry.role,
                    ))
                    continue
                mirror = _find(users[entry.user_id], _for_team(team_id))
                if mirror is None:
                    found.append(MembershipDiscrepancy(
                        team_id=team_id, user_id=entry.user_id,
                        kind=DiscrepancyKind.MISSING_ON_USER, team_role=entry.role,
                    ))
                elif not mirror.agrees_with(entry):
                    found.append(MembershipDiscrepancy(
                        team_id=team_id, user_id=entry.user_id,
                        kind=DiscrepancyKind.ROLE_MISMATCH,
                        team_role=entry.role, user_role=mirror.role,
                    ))

        for user_id, memberships in users.items():
            for entry in memberships:
                if entry.team_id not in teams:
                    found.append(MembershipDiscrepancy(
                        team_id=entry.team_id, user_id=user_id,
                        kind=DiscrepancyKind.DANGLING_TEAM, user_role=entry.role,
                    ))
                elif _find(teams[entry.team_id], _for_user(user_id)) is None:
                    found.append(MembershipDiscrepancy(
                        team_id=entry.team_id, user_id=user_id,
                        kind=DiscrepancyKind.MISSING_ON_TEAM, user_role=entry.role,
                    ))

        if found:
            self.logger.warning("membership_discrepancies_found", count=len(found))
        return found

    # ==================== SIDE WRITERS ====================

    def _apply_user_side(self, session: Session, user: UserAccount, membership: Membership) -> None:
        entries = _upsert(user.memberships, membership, _for_team(membership.team_id))
        self.identity.write_memberships(session, user, entries)

    def _apply_team_side(self, session: Session, team: Team, membership: Membership) -> None:
        entries = _upsert(team.members, membership, _for_user(membership.user_id))
        self._write_team_members(session, team, entries)

    def _write_team_members(self, session: Session, team: Team, members: list[Membership]) -> None:
        self.teams.write_members(session, team, members)
