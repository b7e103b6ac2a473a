"""Tests for the admin aggregation views."""

from teamsync.activity.models import ActivityType
from teamsync.admin.views import AdminViews
from teamsync.membership.models import UserRole
from teamsync.settings import Settings


def test_list_users_with_teams(admin, engine, identity, teams, make_user):
    ann = make_user("a@x.com")
    bob = make_user("b@x.com")
    gone = make_user("c@x.com")
    acme = teams.create_team("Acme")
    engine.add_member(acme.id, ann.id, UserRole.OWNER)
    identity.soft_delete_user(gone.id)

    rows = admin.list_users_with_teams()

    assert [row.user.id for row in rows] == [bob.id, ann.id]
    assert [team.name for team in rows[1].teams] == ["Acme"]
    assert rows[0].teams == []


def test_users_view_skips_deleted_teams(admin, engine, teams, make_user):
    ann = make_user("a@x.com")
    acme = teams.create_team("Acme")
    engine.add_member(acme.id, ann.id)
    engine.delete_team(acme.id)

    assert admin.list_users_with_teams()[0].teams == []


def test_list_teams_with_member_counts(admin, engine, teams, make_user):
    ann = make_user("a@x.com")
    bob = make_user("b@x.com")
    acme = teams.create_team("Acme")
    empty = teams.create_team("Empty")
    engine.add_member(acme.id, ann.id)
    engine.add_member(acme.id, bob.id)

    rows = admin.list_teams_with_member_counts()

    assert [(row.team.id, row.member_count) for row in rows] == [(empty.id, 0), (acme.id, 2)]
    assert rows[1].model_dump()["member_count"] == 2


def test_dashboard_stats(database, recorder, teams, identity, make_user):
    admin = AdminViews(database, recorder, Settings(_env_file=None, recent_items_limit=2))
    users = [make_user(f"user{i}@x.com") for i in range(3)]
    identity.soft_delete_user(users[0].id)
    for name in ("One", "Two", "Three"):
        teams.create_team(name)

    stats = admin.dashboard_stats()

    assert stats.total_users == 2
    assert stats.total_teams == 3
    assert [user.id for user in stats.recent_users] == [users[2].id, users[1].id]
    assert [team.name for team in stats.recent_teams] == ["Three", "Two"]


def test_recent_activity(admin, recorder):
    recorder.record(ActivityType.SIGN_UP)
    recorder.record(ActivityType.SIGN_IN)

    assert [entry.action for entry in admin.recent_activity()] == ["SIGN_IN", "SIGN_UP"]
    assert len(admin.recent_activity(limit=1)) == 1
