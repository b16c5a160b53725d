from __future__ import annotations

import logging
import threading
from typing import Callable

from ..models import LifecycleEvent, Match
from .gamification import AchievementNotice, GamificationEngine, storage_key_for

logger = logging.getLogger(__name__)

SWIPE_ACTIONS = {"like", "pass", "accept", "reject"}


class GamificationRecorder:
    """Lifecycle listener that turns client swipes and partner responses into gamification events.

    Counting is driven by the match as stored, not by the event stream: each
    match yields at most one client swipe (the first like/pass), one partner
    swipe (the accept/reject) and, once mutual, one match for each side. What
    has been counted is kept in the actor's snapshot under the match id and
    written together with the counters, so ``reconcile`` can be repeated
    safely after a failed write.
    """

    def __init__(self, match_store, kv_store, engine_factory: Callable[[str], GamificationEngine] | None = None) -> None:
        self.match_store = match_store
        self.kv_store = kv_store
        self._engine_factory = engine_factory or (lambda key: GamificationEngine(self.kv_store, key))
        self._lock = threading.Lock()
        self.notices: dict[str, list[AchievementNotice]] = {}

    def engine_for(self, role: str, actor_id: str) -> GamificationEngine:
        engine = self._engine_factory(storage_key_for(role, actor_id))
        engine.initialize()
        return engine

    def __call__(self, event: LifecycleEvent) -> None:
        if event.action not in SWIPE_ACTIONS:
            return
        match = self.match_store.get(event.match_id)
        if match is not None:
            self.reconcile(match)

    def reconcile(self, match: Match) -> None:
        due: list[tuple[str, str, str, bool]] = []
        if match.client_liked is not None:
            due.append(("client", match.client_id, "swipe", match.client_liked))
        if match.partner_responded:
            due.append(("partner", match.partner_id, "swipe", match.partner_accepted))
        if match.is_mutual:
            due.append(("client", match.client_id, "match", True))
            due.append(("partner", match.partner_id, "match", True))
        if not due:
            return

        with self._lock:
            engines: dict[str, GamificationEngine] = {}
            touched: dict[str, GamificationEngine] = {}
            for role, actor_id, kind, liked in due:
                key = storage_key_for(role, actor_id)
                if key not in engines:
                    engines[key] = self.engine_for(role, actor_id)
                engine = engines[key]
                if engine.stats.has_counted(match.id, kind):
                    continue
                if kind == "swipe":
                    engine.record_swipe(liked, match_id=match.id)
                else:
                    engine.record_match(match_id=match.id)
                touched[key] = engine

            for key, engine in touched.items():
                notices = engine.evaluate()
                if notices:
                    self.notices.setdefault(key, []).extend(notices)
                    logger.debug("[GAMIFICATION] queued %s notices for key=%s", len(notices), key)

    def pop_notices(self, storage_key: str) -> list[AchievementNotice]:
        with self._lock:
            return self.notices.pop(storage_key, [])
