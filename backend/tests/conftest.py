"""Shared fixtures: one SQLite file database per test."""

import pytest

from teamsync.accounts.service import AccountService
from teamsync.activity.recorder import ActivityRecorder
from teamsync.admin.views import AdminViews
from teamsync.identity.service import IdentityStore
from teamsync.invitations.service import InvitationManager
from teamsync.membership.engine import MembershipEngine
from teamsync.settings import Settings
from teamsync.storage.db import Database
from teamsync.teams.service import TeamStore


@pytest.fixture()
def config() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture()
def database(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'teamsync.db'}")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture()
def identity(database, config) -> IdentityStore:
    return IdentityStore(database, config)


@pytest.fixture()
def teams(database, config) -> TeamStore:
    return TeamStore(database, config)


@pytest.fixture()
def engine(database, identity, teams, config) -> MembershipEngine:
    return MembershipEngine(database, identity, teams, config)


@pytest.fixture()
def invitations(database, engine, config) -> InvitationManager:
    return InvitationManager(database, engine, config)


@pytest.fixture()
def recorder(database, config) -> ActivityRecorder:
    return ActivityRecorder(database, config)


@pytest.fixture()
def admin(database, recorder, config) -> AdminViews:
    return AdminViews(database, recorder, config)


@pytest.fixture()
def accounts(database, engine, invitations, recorder, config) -> AccountService:
    return AccountService(database, engine, invitations, recorder, config)


@pytest.fixture()
def make_user(identity):
    """Factory creating active users with a dummy credential."""

    def _make(email: str, name: str | None = None, **kwargs):
        return identity.create_user(email, "hashed-secret", name=name, **kwargs)

    return _make
