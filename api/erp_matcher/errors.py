from __future__ import annotations


class MatcherError(Exception):
    """Base class for errors raised by the matching core."""


class MatchNotFound(MatcherError):
    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


class InvalidTransition(MatcherError):
    """A status change that the match state machine does not allow."""

    def __init__(self, match_id: str, current: str, action: str) -> None:
        super().__init__(f"Cannot {action} match {match_id} in status '{current}'")
        self.match_id = match_id
        self.current = current
        self.action = action


class ConcurrentModification(MatcherError):
    """Optimistic status update lost the race; the caller must reload."""

    def __init__(self, match_id: str, expected: str, actual: str | None = None) -> None:
        super().__init__(f"Match {match_id} is no longer '{expected}' (now '{actual or 'unknown'}')")
        self.match_id = match_id
        self.expected = expected
        self.actual = actual


class PersistenceUnavailable(MatcherError):
    """Key-value or match storage could not be reached."""


class MalformedSnapshot(MatcherError):
    """A persisted gamification snapshot could not be parsed."""
