"""Team aggregate: names, billing state and the team-side member list."""

from teamsync.teams.models import SubscriptionStatus, SubscriptionUpdate, Team, TeamView
from teamsync.teams.service import TeamStore

__all__ = ["SubscriptionStatus", "SubscriptionUpdate", "Team", "TeamStore", "TeamView"]
