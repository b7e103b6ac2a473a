"""Tests for the error payload and log redaction."""

from teamsync.errors import (
    DuplicateEmail,
    ErrorResult,
    InvitationAlreadyResolved,
    InvitationExpired,
    MembershipLimitExceeded,
    TeamNotFound,
    TransactionAborted,
)
from teamsync.logging_config import _redact_credentials


def test_error_result_carries_code_and_retry_hint():
    result = ErrorResult.from_error(TransactionAborted("add_member", "deadlock", team_id=1, user_id=2))

    assert result.code == "transaction_aborted"
    assert result.retryable
    assert result.details == {"operation": "add_member", "team_id": 1, "user_id": 2}
    assert "rolled back" in result.message


def test_structural_errors_are_not_retryable():
    assert not ErrorResult.from_error(DuplicateEmail("a@x.com")).retryable
    assert not ErrorResult.from_error(MembershipLimitExceeded("too many", team_id=1)).retryable


def test_expired_is_a_resolved_invitation():
    error = InvitationExpired(7)

    assert isinstance(error, InvitationAlreadyResolved)
    assert error.code == "invitation_expired"
    assert error.details == {"invitation_id": 7, "status": "expired"}


def test_not_found_describes_lookup_key():
    assert "customer_id=cus_1" in TeamNotFound(customer_id="cus_1").message


def test_credentials_are_masked_in_log_events():
    event = _redact_credentials(None, "info", {"event": "user_created", "password_hash": "x", "user_id": 1})

    assert event == {"event": "user_created", "password_hash": "***", "user_id": 1}
