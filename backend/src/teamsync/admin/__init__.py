"""Read-only admin projections."""

from teamsync.admin.views import AdminViews, DashboardStats, TeamWithMemberCount, UserWithTeams

__all__ = ["AdminViews", "DashboardStats", "TeamWithMemberCount", "UserWithTeams"]
