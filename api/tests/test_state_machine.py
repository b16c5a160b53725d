from datetime import datetime, timedelta, timezone

import pytest

from erp_matcher.errors import InvalidTransition
from erp_matcher.models import Match
from erp_matcher.services.state_machine import status_changes, transition_status


def test_partner_actions_from_open_statuses():
    assert transition_status("suggested", "accept") == "accepted"
    assert transition_status("sent", "accept") == "accepted"
    assert transition_status("suggested", "reject") == "rejected"
    assert transition_status("sent", "reject") == "rejected"


def test_repeated_actions_are_noops():
    assert transition_status("accepted", "accept") == "accepted"
    assert transition_status("rejected", "reject") == "rejected"
    assert transition_status("sent", "send") == "sent"
    assert transition_status("converted", "convert") == "converted"


def test_send_and_convert():
    assert transition_status("suggested", "send") == "sent"
    assert transition_status("accepted", "convert") == "converted"


@pytest.mark.parametrize(
    "current,action",
    [
        ("rejected", "accept"),
        ("accepted", "reject"),
        ("converted", "accept"),
        ("converted", "reject"),
        ("suggested", "convert"),
        ("rejected", "convert"),
        ("accepted", "send"),
    ],
)
def test_invalid_transitions_raise(current, action):
    with pytest.raises(InvalidTransition) as exc:
        transition_status(current, action, "m-1")
    assert exc.value.current == current
    assert exc.value.action == action


def test_unknown_action_is_a_programming_error():
    with pytest.raises(ValueError):
        transition_status("suggested", "like")


def test_status_changes_sets_responded_at_once():
    now = datetime.now(timezone.utc)
    match = Match(brief_id="b", client_id="c", partner_id="p")

    accepted = status_changes(match, "accepted", now)
    assert accepted == {"status": "accepted", "partner_responded": True, "partner_accepted": True, "responded_at": now}

    rejected = status_changes(match, "rejected", now)
    assert rejected["partner_accepted"] is False
    assert rejected["partner_responded"] is True

    assert status_changes(match, "sent", now) == {"status": "sent"}

    match.status = "accepted"
    match.responded_at = now - timedelta(days=1)
    assert "responded_at" not in status_changes(match, "converted", now)
