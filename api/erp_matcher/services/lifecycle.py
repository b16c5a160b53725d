from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from ..errors import MatchNotFound
from ..models import LifecycleEvent, Match, Project
from .scoring import Scorer, WeightedScorer
from .state_machine import OPEN_STATUSES, status_changes, transition_status

logger = logging.getLogger(__name__)

Listener = Callable[[LifecycleEvent], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchLifecycleEngine:
    """Owns status transitions of ``Match`` records.

    Client fields (``client_liked``, ``client_saved``) and partner/status fields
    are written through separate store primitives, so a client session and a
    partner session can act on the same match independently. Status writes are
    conditional on the status that was read; a lost race surfaces as
    ``ConcurrentModification`` and is never retried here.
    """

    def __init__(
        self,
        store,
        scorer: Scorer | None = None,
        project_store=None,
        listeners: list[Listener] | None = None,
        auto_reply: Callable[[Match], bool] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.scorer = scorer or WeightedScorer()
        self.project_store = project_store
        self.listeners: list[Listener] = list(listeners or [])
        self.auto_reply = auto_reply
        self.clock = clock

    def subscribe(self, listener: Listener) -> None:
        self.listeners.append(listener)

    def _emit(self, match: Match, from_status: str, actor: str, action: str, at: datetime) -> None:
        event = LifecycleEvent(
            match_id=match.id,
            from_status=from_status,
            to_status=match.status,
            actor=actor,
            action=action,
            timestamp=at,
        )
        failure: Exception | None = None
        for listener in self.listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.error("[MATCH] listener %r failed on %s match_id=%s: %s", listener, action, match.id, exc)
                failure = failure or exc
        if failure is not None:
            raise failure

    def get(self, match_id: str) -> Match:
        match = self.store.get(match_id)
        if match is None:
            raise MatchNotFound(match_id)
        return match

    def create_match(self, brief: dict[str, Any], partner: dict[str, Any], client_id: str | None = None) -> Match:
        brief_id = str(brief.get("id") or "")
        client_id = str(client_id or brief.get("client_id") or "")
        partner_id = str(partner.get("id") or "")
        if not brief_id or not client_id or not partner_id:
            raise ValueError("brief id, client id and partner id are required")

        existing = self.store.find(brief_id, client_id, partner_id)
        if existing:
            return existing

        result = self.scorer.score(brief, partner)
        match = Match(
            brief_id=brief_id,
            client_id=client_id,
            partner_id=partner_id,
            score=max(0, min(100, int(result.score))),
            score_breakdown=dict(result.breakdown),
            reasons=list(result.reasons),
            created_at=self.clock(),
        )
        stored = self.store.insert(match)
        if stored.id != match.id:
            return stored
        match = stored
        logger.info("[MATCH] created match_id=%s brief_id=%s partner_id=%s score=%s", match.id, brief_id, partner_id, match.score)
        return match

    def _apply(
        self,
        match_id: str,
        action: str,
        actor: str,
        on_change: Callable[[Match], None] | None = None,
    ) -> tuple[Match, bool]:
        """Run one status action; the flag is False when the match was already in the target status."""
        match = self.get(match_id)
        new_status = transition_status(match.status, action, match_id)
        if new_status == match.status:
            return match, False

        now = self.clock()
        updated = self.store.compare_and_set(match_id, match.status, status_changes(match, new_status, now))
        logger.info("[MATCH] %s match_id=%s %s -> %s actor=%s", action, match_id, match.status, new_status, actor)
        if on_change is not None:
            on_change(updated)
        self._emit(updated, match.status, actor, action, now)
        return updated, True

    def _transition(self, match_id: str, action: str, actor: str) -> Match:
        return self._apply(match_id, action, actor)[0]

    def send(self, match_id: str) -> Match:
        return self._transition(match_id, "send", "system")

    def accept(self, match_id: str) -> Match:
        return self._transition(match_id, "accept", "partner")

    def reject(self, match_id: str) -> Match:
        return self._transition(match_id, "reject", "partner")

    def respond(self, match_id: str, accepted: bool) -> Match:
        return self.accept(match_id) if accepted else self.reject(match_id)

    def convert(self, match_id: str, contract_value: int | None = None) -> tuple[Match, Project | None]:
        created: list[Project] = []

        def _create_project(match: Match) -> None:
            if self.project_store is None:
                return
            project = Project(
                match_id=match.id,
                client_id=match.client_id,
                partner_id=match.partner_id,
                contract_value=contract_value,
                created_at=self.clock(),
            )
            created.append(self.project_store.create(project))

        # the project is created only by the call whose status write moved the match
        updated, _ = self._apply(match_id, "convert", "system", on_change=_create_project)
        return updated, created[0] if created else None

    def like(self, match_id: str, liked: bool) -> Match:
        match = self.get(match_id)
        if match.client_liked != liked:
            now = self.clock()
            match = self.store.update_client_fields(match_id, {"client_liked": liked})
            self._emit(match, match.status, "client", "like" if liked else "pass", now)

        if liked and self.auto_reply is not None and match.status in OPEN_STATUSES:
            if self.auto_reply(match):
                match = self.accept(match_id)
        return match

    def save(self, match_id: str, saved: bool) -> Match:
        match = self.get(match_id)
        if match.client_saved == saved:
            return match
        now = self.clock()
        match = self.store.update_client_fields(match_id, {"client_saved": saved})
        self._emit(match, match.status, "client", "save" if saved else "unsave", now)
        return match

    def list_for_client(self, client_id: str) -> list[Match]:
        return self.store.list_by_client(client_id)

    def list_for_partner(self, partner_id: str) -> list[Match]:
        return self.store.list_by_partner(partner_id)
