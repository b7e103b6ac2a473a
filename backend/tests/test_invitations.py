"""Tests for the invitation lifecycle."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from teamsync.errors import (
    AlreadyMember,
    ConstraintViolation,
    DuplicateInvitation,
    InvitationAlreadyResolved,
    InvitationExpired,
    InvitationNotFound,
    TeamNotFound,
    TransactionAborted,
    UserNotFound,
)
from teamsync.invitations.models import Invitation, InvitationStatus
from teamsync.membership.models import UserRole
from teamsync.storage.models import utcnow


@pytest.fixture()
def acme(engine, teams, make_user):
    owner = make_user("owner@x.com", name="Olivia")
    team = teams.create_team("Acme")
    engine.add_member(team.id, owner.id, UserRole.OWNER)
    return team, owner


def _age(database, invitation_id, days):
    with database.session() as session:
        session.get(Invitation, invitation_id).invited_at = utcnow() - timedelta(days=days)


def test_create_invitation_snapshots_team_and_inviter(invitations, acme):
    team, owner = acme

    invitation = invitations.create_invitation(team.id, "B@x.com", UserRole.MEMBER, owner.id)

    assert invitation.email == "b@x.com"
    assert invitation.status == InvitationStatus.PENDING
    assert invitation.team_name == "Acme"
    assert invitation.invited_by_name == "Olivia"
    assert invitation.invited_by_email == "owner@x.com"


def test_snapshot_is_not_rewritten_by_rename(invitations, teams, acme):
    team, owner = acme
    invitation = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)

    teams.rename_team(team.id, "Acme Corp")

    assert invitations.get_invitation(invitation.id).team_name == "Acme"


def test_invitation_scenario(invitations, identity, teams, acme, make_user):
    team, owner = acme
    invitation = invitations.create_invitation(team.id, "b@x.com", UserRole.MEMBER, owner.id)

    with pytest.raises(DuplicateInvitation) as exc_info:
        invitations.create_invitation(team.id, "b@x.com", UserRole.MEMBER, owner.id)
    assert exc_info.value.retryable

    invitee = make_user("b@x.com")
    membership = invitations.accept_invitation(invitation.id, invitee.id)

    assert membership.role == UserRole.MEMBER
    assert invitations.get_invitation(invitation.id).status == InvitationStatus.ACCEPTED
    assert teams.get_team(team.id).member(invitee.id).role == UserRole.MEMBER
    assert identity.get_user_by_id(invitee.id).team_ids == [team.id]

    with pytest.raises(InvitationAlreadyResolved):
        invitations.accept_invitation(invitation.id, invitee.id)


def test_invite_existing_member(invitations, acme):
    team, owner = acme

    with pytest.raises(AlreadyMember):
        invitations.create_invitation(team.id, "owner@x.com", invited_by=owner.id)


def test_invite_to_unknown_team(invitations, acme):
    _, owner = acme

    with pytest.raises(TeamNotFound):
        invitations.create_invitation(404, "b@x.com", invited_by=owner.id)


def test_invitation_requires_an_inviter(invitations, acme):
    team, _ = acme

    with pytest.raises(UserNotFound) as exc_info:
        invitations.create_invitation(team.id, "b@x.com")

    assert exc_info.value.details == {"invited_by": None}
    assert invitations.team_invitations(team.id) == []


def test_declined_invitation_is_terminal(invitations, acme, make_user):
    team, owner = acme
    invitation = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    invitee = make_user("b@x.com")

    declined = invitations.decline_invitation(invitation.id)

    assert declined.status == InvitationStatus.DECLINED
    assert declined.resolved_at is not None
    with pytest.raises(InvitationAlreadyResolved):
        invitations.accept_invitation(invitation.id, invitee.id)
    with pytest.raises(InvitationAlreadyResolved):
        invitations.decline_invitation(invitation.id)
    with pytest.raises(InvitationAlreadyResolved):
        invitations.expire_invitation(invitation.id)


def test_new_invitation_allowed_after_resolution(invitations, acme):
    team, owner = acme
    first = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    invitations.decline_invitation(first.id)

    second = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)

    assert second.id != first.id
    assert invitations.get_pending_invitation("b@x.com", team.id).id == second.id


def test_unswept_stale_invitation_cannot_be_accepted(invitations, database, teams, acme, make_user):
    team, owner = acme
    invitation = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    invitee = make_user("b@x.com")
    _age(database, invitation.id, days=8)

    with pytest.raises(InvitationExpired) as exc_info:
        invitations.accept_invitation(invitation.id, invitee.id)

    assert isinstance(exc_info.value, InvitationAlreadyResolved)
    assert teams.get_team(team.id).member(invitee.id) is None
    assert invitations.get_pending_invitation("b@x.com", team.id) is None


def test_stale_invitation_does_not_block_a_new_one(invitations, database, acme):
    team, owner = acme
    stale = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    _age(database, stale.id, days=8)

    fresh = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)

    assert invitations.get_invitation(stale.id).status == InvitationStatus.EXPIRED
    assert fresh.status == InvitationStatus.PENDING


def test_expire_stale_invitations_sweep(invitations, database, acme):
    team, owner = acme
    stale = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    fresh = invitations.create_invitation(team.id, "c@x.com", invited_by=owner.id)
    _age(database, stale.id, days=7)

    assert invitations.expire_stale_invitations() == 1
    assert invitations.get_invitation(stale.id).status == InvitationStatus.EXPIRED
    assert invitations.get_invitation(fresh.id).status == InvitationStatus.PENDING


def test_accept_with_other_email_is_rejected(invitations, acme, make_user):
    team, owner = acme
    invitation = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    stranger = make_user("c@x.com")

    with pytest.raises(ConstraintViolation):
        invitations.accept_invitation(invitation.id, stranger.id)

    assert invitations.get_invitation(invitation.id).status == InvitationStatus.PENDING


def test_accept_unknown_invitation(invitations, make_user):
    user = make_user("b@x.com")

    with pytest.raises(InvitationNotFound):
        invitations.accept_invitation(404, user.id)


def test_failed_membership_write_leaves_invitation_pending(
    invitations, engine, identity, acme, make_user, monkeypatch
):
    team, owner = acme
    invitation = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    invitee = make_user("b@x.com")

    def fail(*args, **kwargs):
        raise OperationalError("UPDATE teams", {}, Exception("disk I/O error"))

    monkeypatch.setattr(engine, "_apply_team_side", fail)

    with pytest.raises(TransactionAborted):
        invitations.accept_invitation(invitation.id, invitee.id)

    assert invitations.get_invitation(invitation.id).status == InvitationStatus.PENDING
    assert identity.get_user_by_id(invitee.id).team_memberships == []

    monkeypatch.undo()
    invitations.accept_invitation(invitation.id, invitee.id)
    assert invitations.get_invitation(invitation.id).status == InvitationStatus.ACCEPTED


def test_invitation_listings(invitations, engine, teams, acme, make_user):
    team, owner = acme
    other = teams.create_team("Other")
    engine.add_member(other.id, owner.id, UserRole.OWNER)
    first = invitations.create_invitation(team.id, "b@x.com", invited_by=owner.id)
    second = invitations.create_invitation(other.id, "b@x.com", invited_by=owner.id)
    invitations.create_invitation(team.id, "c@x.com", invited_by=owner.id)
    invitations.decline_invitation(first.id)

    pending = invitations.pending_invitations_for_email("B@x.com")
    assert [inv.id for inv in pending] == [second.id]

    assert len(invitations.team_invitations(team.id)) == 2
    declined = invitations.team_invitations(team.id, status=InvitationStatus.DECLINED)
    assert [inv.id for inv in declined] == [first.id]
