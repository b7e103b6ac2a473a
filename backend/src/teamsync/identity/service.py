"""Identity store: owns user records."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamsync.errors import ConstraintViolation, DuplicateEmail, MembershipLimitExceeded, UserNotFound
from teamsync.identity.models import (
    User,
    UserAccount,
    UserCreate,
    UserUpdate,
    UserWithCredential,
    normalize_email,
)
from teamsync.logging_config import get_logger
from teamsync.membership.models import Membership, UserRole
from teamsync.settings import Settings, settings
from teamsync.storage.db import Database, db
from teamsync.storage.models import utcnow

logger = get_logger(__name__)


class IdentityStore:
    """Persistence for user accounts.

    Every write method takes an optional ``session`` so it can run as one
    step of a larger transaction. Name or email changes stay inside the
    user row: copies held by teams are propagated by the membership engine.
    """

    def __init__(self, database: Database | None = None, config: Settings | None = None):
        self.db = database or db
        self.settings = config or settings
        self.logger = get_logger(__name__)

    # ==================== READS ====================

    def get_user_by_id(self, user_id: int, session: Session | None = None) -> User | None:
        """Get an active user by ID."""
        with self.db.scope(session) as s:
            user = s.query(UserAccount).filter(
                UserAccount.id == user_id,
                UserAccount.active(),
            ).first()
            return User.model_validate(user) if user else None

    def get_user_by_email(
        self,
        email: str,
        include_credential: bool = False,
    ) -> User | UserWithCredential | None:
        """Get an active user by email.

        Args:
            email: Email address, matched case-insensitively
            include_credential: Return the password hash as well. Only the
                credential verification path should ask for it.

        Returns:
            User, or None if no active user has this email
        """
        with self.db.session() as session:
            user = session.query(UserAccount).filter(
                UserAccount.email == normalize_email(email),
                UserAccount.active(),
            ).first()

            if not user:
                return None
            if include_credential:
                return UserWithCredential.model_validate(user)
            return User.model_validate(user)

    def list_active_users(self) -> list[User]:
        """List active users, newest first."""
        with self.db.session() as session:
            users = session.query(UserAccount).filter(
                UserAccount.active()
            ).order_by(UserAccount.created_at.desc(), UserAccount.id.desc()).all()
            return [User.model_validate(user) for user in users]

    # ==================== WRITES ====================

    def create_user(
        self,
        email: str,
        password_hash: str,
        name: str | None = None,
        role: UserRole = UserRole.MEMBER,
        session: Session | None = None,
    ) -> User:
        """Create a user with an empty membership list.

        Uniqueness of the address is left to the partial unique index, so
        two concurrent sign-ups cannot both get through.

        Args:
            email: Email address (stored lowercase)
            password_hash: Already-hashed credential
            name: Optional display name
            role: Platform role
            session: Enclosing transaction, if any

        Returns:
            Created user

        Raises:
            DuplicateEmail: If an active user already has this email
        """
        payload = UserCreate(email=email, name=name, role=role)
        address = normalize_email(payload.email)

        with self.db.scope(session) as s:
            user = UserAccount(
                email=address,
                name=payload.name,
                password_hash=password_hash,
                role=payload.role.value,
                team_memberships=[],
            )
            s.add(user)
            try:
                s.flush()
            except IntegrityError as exc:
                raise DuplicateEmail(address) from exc

            self.logger.info("user_created", user_id=user.id, role=user.role)
            return User.model_validate(user)

    def update_user(self, user_id: int, update: UserUpdate, session: Session | None = None) -> User:
        """Apply a partial update to an active user.

        When name or email change, the user's own embedded membership copies
        are refreshed in the same row write. Team rows are not touched.

        Args:
            user_id: User ID
            update: Fields to change; unset fields are left alone
            session: Enclosing transaction, if any

        Returns:
            Updated user

        Raises:
            UserNotFound: If the user does not exist or is deleted
            DuplicateEmail: If the new email belongs to another active user
            ConstraintViolation: If the update clears email or role
        """
        changes = update.model_dump(exclude_unset=True)
        for field in ("email", "role"):
            if field in changes and changes[field] is None:
                raise ConstraintViolation(f"{field} cannot be cleared", user_id=user_id, field=field)

        with self.db.scope(session) as s:
            user = self.lock_user(s, user_id)
            if user is None:
                raise UserNotFound(user_id)

            if "name" in changes:
                user.name = changes["name"]
            if "email" in changes:
                user.email = normalize_email(changes["email"])
            if "role" in changes:
                user.role = UserRole(changes["role"]).value

            if update.touches_profile:
                refreshed = [
                    membership.model_copy(update={"user_name": user.name, "user_email": user.email})
                    for membership in user.memberships
                ]
                user.team_memberships = [membership.to_document() for membership in refreshed]

            user.updated_at = utcnow()
            try:
                s.flush()
            except IntegrityError as exc:
                raise DuplicateEmail(user.email) from exc

            self.logger.info("user_updated", user_id=user_id, fields=sorted(changes))
            return User.model_validate(user)

    def update_credential(self, user_id: int, password_hash: str, session: Session | None = None) -> User:
        """Replace the stored credential of an active user.

        Args:
            user_id: User ID
            password_hash: Already-hashed credential
            session: Enclosing transaction, if any

        Raises:
            UserNotFound: If the user does not exist or is deleted
        """
        with self.db.scope(session) as s:
            user = self.lock_user(s, user_id)
            if user is None:
                raise UserNotFound(user_id)

            user.password_hash = password_hash
            user.updated_at = utcnow()
            s.flush()

            self.logger.info("user_credential_updated", user_id=user_id)
            return User.model_validate(user)

    def soft_delete_user(self, user_id: int, session: Session | None = None) -> User:
        """Mark a user deleted. Idempotent.

        Membership entries are left in place; removing them is a separate,
        explicit step through the membership engine.

        Raises:
            UserNotFound: If no such user row exists
        """
        with self.db.scope(session) as s:
            user = self.lock_user(s, user_id, include_deleted=True)
            if user is None:
                raise UserNotFound(user_id)

            if user.deleted_at is None:
                user.deleted_at = utcnow()
                user.updated_at = user.deleted_at
                s.flush()
                self.logger.info("user_soft_deleted", user_id=user_id)

            return User.model_validate(user)

    def restore_user(self, user_id: int, session: Session | None = None) -> User:
        """Clear the soft-delete marker.

        Raises:
            UserNotFound: If no such user row exists
            DuplicateEmail: If the address was re-registered meanwhile
        """
        with self.db.scope(session) as s:
            user = self.lock_user(s, user_id, include_deleted=True)
            if user is None:
                raise UserNotFound(user_id)

            if user.deleted_at is not None:
                user.deleted_at = None
                user.updated_at = utcnow()
                try:
                    s.flush()
                except IntegrityError as exc:
                    raise DuplicateEmail(user.email) from exc
                self.logger.info("user_restored", user_id=user_id)

            return User.model_validate(user)

    # ==================== ENGINE SUPPORT ====================

    def lock_user(
        self,
        session: Session,
        user_id: int,
        include_deleted: bool = False,
    ) -> UserAccount | None:
        """Load a user row for update inside the caller's transaction."""
        query = session.query(UserAccount).filter(UserAccount.id == user_id)
        if not include_deleted:
            query = query.filter(UserAccount.active())
        return query.with_for_update().first()

    def write_memberships(
        self,
        session: Session,
        user: UserAccount,
        memberships: list[Membership],
    ) -> None:
        """Persist a new membership list on the user row.

        Raises:
            MembershipLimitExceeded: If the list is over the per-user bound
        """
        if len(memberships) > self.settings.max_teams_per_user:
            raise MembershipLimitExceeded(
                f"User cannot be a member of more than {self.settings.max_teams_per_user} teams",
                user_id=user.id,
            )
        user.team_memberships = [membership.to_document() for membership in memberships]
        user.updated_at = utcnow()
        session.flush()
