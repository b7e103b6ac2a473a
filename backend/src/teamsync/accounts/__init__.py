"""Account flows composed from the stores, the membership engine and the activity log."""

from teamsync.accounts.service import AccountService, SignUpResult

__all__ = ["AccountService", "SignUpResult"]
