from datetime import datetime
from typing import Any

from ..errors import InvalidTransition
from ..models import Match

OPEN_STATUSES = {"suggested", "sent"}

# action -> (allowed source statuses, target status)
_TRANSITIONS: dict[str, tuple[set[str], str]] = {
    "send": ({"suggested"}, "sent"),
    "accept": (OPEN_STATUSES, "accepted"),
    "reject": (OPEN_STATUSES, "rejected"),
    "convert": ({"accepted"}, "converted"),
}


def transition_status(current: str, action: str, match_id: str = "") -> str:
    if action not in _TRANSITIONS:
        raise ValueError(f"Unknown match action: {action}")
    sources, target = _TRANSITIONS[action]
    if current == target:
        return current
    if current not in sources:
        raise InvalidTransition(match_id, current, action)
    return target


def status_changes(match: Match, new_status: str, now: datetime) -> dict[str, Any]:
    """Field updates that accompany a move of ``match`` into ``new_status``."""
    changes: dict[str, Any] = {"status": new_status}
    if new_status in {"accepted", "rejected"}:
        changes["partner_responded"] = True
        changes["partner_accepted"] = new_status == "accepted"
    if new_status not in OPEN_STATUSES and match.responded_at is None:
        changes["responded_at"] = now
    return changes
