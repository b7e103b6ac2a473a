"""Tests for the team aggregate store."""

import pytest

from teamsync.errors import BillingIdentifierConflict, TeamNotFound
from teamsync.teams.models import SubscriptionStatus, SubscriptionUpdate


def test_create_team_has_no_members_or_billing(teams):
    team = teams.create_team("Acme")

    assert team.name == "Acme"
    assert team.team_members == []
    assert team.stripe_customer_id is None
    assert team.subscription_status is None


def test_subscription_update_sets_fields(teams):
    team = teams.create_team("Acme")

    updated = teams.update_team_subscription(team.id, SubscriptionUpdate(
        customer_id="cus_1",
        subscription_id="sub_1",
        product_id="prod_1",
        plan_name="Pro",
        status=SubscriptionStatus.ACTIVE,
    ))

    assert updated.stripe_customer_id == "cus_1"
    assert updated.stripe_subscription_id == "sub_1"
    assert updated.plan_name == "Pro"
    assert updated.subscription_status == SubscriptionStatus.ACTIVE


def test_subscription_update_null_clears_and_omitted_keeps(teams):
    team = teams.create_team("Acme")
    teams.update_team_subscription(team.id, SubscriptionUpdate(
        subscription_id="sub_1", plan_name="Pro", status="active",
    ))

    updated = teams.update_team_subscription(team.id, SubscriptionUpdate(
        subscription_id=None, status=SubscriptionStatus.CANCELED,
    ))

    assert updated.stripe_subscription_id is None
    assert updated.subscription_status == SubscriptionStatus.CANCELED
    assert updated.plan_name == "Pro"


def test_subscription_update_is_idempotent(teams):
    team = teams.create_team("Acme")
    update = SubscriptionUpdate(customer_id="cus_1", plan_name="Pro")

    first = teams.update_team_subscription(team.id, update)
    second = teams.update_team_subscription(team.id, update)

    assert first.stripe_customer_id == second.stripe_customer_id == "cus_1"
    assert second.plan_name == "Pro"


def test_billing_identifiers_are_unique(teams):
    acme = teams.create_team("Acme", customer_id="cus_1")
    other = teams.create_team("Other")

    with pytest.raises(BillingIdentifierConflict):
        teams.update_team_subscription(other.id, SubscriptionUpdate(customer_id="cus_1"))
    with pytest.raises(BillingIdentifierConflict):
        teams.create_team("Third", customer_id="cus_1")

    assert teams.find_team_by_customer_id("cus_1").id == acme.id
    assert teams.get_team(other.id).stripe_customer_id is None


def test_many_teams_without_billing_ids(teams):
    teams.create_team("One")
    teams.create_team("Two")

    assert len(teams.list_teams()) == 2


def test_find_team_by_subscription_id(teams):
    team = teams.create_team("Acme")
    teams.update_team_subscription(team.id, SubscriptionUpdate(subscription_id="sub_9"))

    assert teams.find_team_by_subscription_id("sub_9").id == team.id
    assert teams.find_team_by_subscription_id("sub_missing") is None


def test_update_subscription_unknown_team(teams):
    with pytest.raises(TeamNotFound):
        teams.update_team_subscription(404, SubscriptionUpdate(plan_name="Pro"))


def test_rename_team(teams):
    team = teams.create_team("Acme")

    assert teams.rename_team(team.id, "  Acme Corp ").name == "Acme Corp"
    with pytest.raises(TeamNotFound):
        teams.rename_team(404, "Nope")


def test_get_teams_keeps_requested_order(teams):
    first = teams.create_team("One")
    second = teams.create_team("Two")

    assert [team.id for team in teams.get_teams([second.id, 999, first.id])] == [second.id, first.id]
