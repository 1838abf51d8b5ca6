"""Tests for the monotonic review request status transitions."""
import logging
from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from sms_webhooks.state_machine import (
    CurrentState,
    RequestStatus,
    TransitionRule,
    coerce_status,
    resolve_transition,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
EARLIER = NOW - timedelta(minutes=5)

INBOUND = ["queued", "accepted", "sending", "sent", "delivered", "undelivered", "failed", "bounced"]
PROTECTED = {"DELIVERED", "CLICKED", "COMPLETED"}


def _apply(state: CurrentState, status: str, **kwargs) -> CurrentState:
    t = resolve_transition(state, status, now=NOW, **kwargs)
    return CurrentState(
        status=t.status,
        sent_at=t.sent_at,
        delivered_at=t.delivered_at,
        error_message=t.error_message,
        sms_error_code=t.sms_error_code,
    )


def test_pending_to_sent_stamps_sent_at():
    t = resolve_transition(CurrentState(status="PENDING"), "sent", now=NOW)

    assert t.status == "SENT"
    assert t.sent_at == NOW
    assert t.rule is TransitionRule.SENT
    assert t.changed is True


@pytest.mark.parametrize("status", ["queued", "accepted", "sending", "sent"])
def test_informational_statuses_advance_pending(status):
    t = resolve_transition(CurrentState(status="PENDING"), status, now=NOW)
    assert t.status == "SENT"


def test_sent_does_not_reset_sent_at():
    t = resolve_transition(CurrentState(status="PENDING", sent_at=EARLIER), "queued", now=NOW)
    assert t.status == "SENT"
    assert t.sent_at == EARLIER

    again = resolve_transition(CurrentState(status="SENT", sent_at=EARLIER), "sent", now=NOW)
    assert again.status == "SENT"
    assert again.sent_at == EARLIER
    assert again.changed is False


def test_sent_to_delivered():
    t = resolve_transition(CurrentState(status="SENT", sent_at=EARLIER), "delivered", now=NOW)

    assert t.status == "DELIVERED"
    assert t.delivered_at == NOW
    assert t.sent_at == EARLIER


@pytest.mark.parametrize("current", ["CLICKED", "COMPLETED"])
def test_delivered_never_overrides_engagement(current):
    t = resolve_transition(CurrentState(status=current), "delivered", now=NOW)
    assert t.status == current
    assert t.changed is False
    assert t.sms_status == "delivered"


def test_late_failure_keeps_delivered_but_records_audit_fields():
    state = CurrentState(status="DELIVERED", sent_at=EARLIER, delivered_at=EARLIER)

    t = resolve_transition(state, "failed", now=NOW, error_code="30003", error_text="Unreachable handset")

    assert t.status == "DELIVERED"
    assert t.sms_status == "failed"
    assert t.sms_error_code == "30003"
    assert t.error_message is None
    assert t.changed is False


@pytest.mark.parametrize("current", ["PENDING", "SENT"])
@pytest.mark.parametrize("status", ["failed", "undelivered"])
def test_failure_from_pending_or_sent(current, status):
    t = resolve_transition(
        CurrentState(status=current), status, now=NOW, error_code="30005", error_text="Unknown destination"
    )

    assert t.status == "FAILED"
    assert t.error_message == "SMS failed: Unknown destination"
    assert t.sms_error_code == "30005"


def test_failure_without_error_text_keeps_previous_message():
    t = resolve_transition(CurrentState(status="SENT", error_message="older"), "failed", now=NOW)
    assert t.status == "FAILED"
    assert t.error_message == "older"


def test_unrecognized_status_is_audited_only():
    t = resolve_transition(CurrentState(status="PENDING"), "bounced", now=NOW)

    assert t.status == "PENDING"
    assert t.sms_status == "bounced"
    assert t.rule is TransitionRule.IGNORED
    assert t.sent_at is None


def test_missing_error_code_keeps_previous_code():
    t = resolve_transition(CurrentState(status="SENT", sms_error_code="30003"), "delivered", now=NOW)
    assert t.sms_error_code == "30003"


def test_unknown_stored_status_is_left_alone():
    t = resolve_transition(CurrentState(status="OPENED"), "delivered", now=NOW)
    assert t.status == "OPENED"
    assert t.sms_status == "delivered"


def test_missing_stored_status_counts_as_pending():
    assert coerce_status(None) is RequestStatus.PENDING
    assert coerce_status("") is RequestStatus.PENDING
    assert coerce_status("sent") is RequestStatus.SENT
    assert coerce_status("OPENED") is None

    t = resolve_transition(CurrentState(status=None), "sent", now=NOW)
    assert t.status == "SENT"


def test_allowed_rules_restrict_transitions():
    only_delivered = frozenset({TransitionRule.DELIVERED})

    failed = resolve_transition(CurrentState(status="SENT"), "failed", now=NOW, allowed_rules=only_delivered)
    assert failed.status == "SENT"
    assert failed.sms_status == "failed"
    assert failed.rule is TransitionRule.IGNORED

    delivered = resolve_transition(CurrentState(status="SENT"), "delivered", now=NOW, allowed_rules=only_delivered)
    assert delivered.status == "DELIVERED"


def test_queued_sent_queued_stays_sent():
    state = CurrentState(status="PENDING")
    for status in ("queued", "sent", "queued"):
        state = _apply(state, status)
    assert state.status == "SENT"


@pytest.mark.parametrize("start", ["PENDING", "SENT", "DELIVERED", "FAILED", "CLICKED", "COMPLETED"])
@pytest.mark.parametrize("status", INBOUND)
def test_applying_same_callback_twice_is_idempotent(start, status):
    state = CurrentState(status=start)
    once = _apply(state, status, error_code="30003", error_text="boom")
    twice = _apply(once, status, error_code="30003", error_text="boom")
    assert once == twice


def test_status_never_regresses_from_success():
    for sequence in product(INBOUND, repeat=3):
        for start in PROTECTED:
            state = CurrentState(status=start)
            for status in sequence:
                before = state.status
                state = _apply(state, status, error_text="late failure")
                if before in PROTECTED:
                    assert state.status in PROTECTED, (start, sequence)
                if before in {"CLICKED", "COMPLETED"}:
                    assert state.status == before


def test_ignored_and_unrecognized_statuses_are_logged_apart(caplog):
    with caplog.at_level(logging.DEBUG, logger="sms_webhooks.state_machine"):
        resolve_transition(
            CurrentState(status="PENDING"), "sent", now=NOW, allowed_rules=frozenset({TransitionRule.DELIVERED})
        )
        resolve_transition(CurrentState(status="PENDING"), "read", now=NOW)

    messages = [record.getMessage() for record in caplog.records]
    assert "Ignored SMS status 'sent' for PENDING" in messages
    assert "Unrecognized SMS status 'read'" in messages
