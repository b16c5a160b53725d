"""Per-actor gamification statistics.

Stats are derived state: two events mutate the counters (``record_swipe`` and
``record_match``), and ``evaluate`` re-checks the achievement catalog against
them. The engine owns no global state; it talks to an injected key-value
store under one actor-scoped key and writes a full snapshot after every
mutation.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..config import ACHIEVEMENT_DISPLAY_SECONDS, CLIENT_GAMIFICATION_KEY, PARTNER_GAMIFICATION_KEY
from ..errors import MalformedSnapshot, PersistenceUnavailable
from .achievements import DEFAULT_ACHIEVEMENTS, Achievement, validate_catalog
from .rules import rule_is_met

logger = logging.getLogger(__name__)

ROLE_KEYS = {"client": CLIENT_GAMIFICATION_KEY, "partner": PARTNER_GAMIFICATION_KEY}

# snapshot key -> attribute
_COUNTER_KEYS = {
    "totalSwipes": "total_swipes",
    "totalLikes": "total_likes",
    "totalMatches": "total_matches",
    "currentStreak": "current_streak",
}


def storage_key_for(role: str, actor_id: str | None = None) -> str:
    if role not in ROLE_KEYS:
        raise ValueError(f"Unknown role: {role}")
    base = ROLE_KEYS[role]
    return f"{base}:{actor_id}" if actor_id else base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AchievementState:
    unlocked: bool = False
    unlocked_at: datetime | None = None


@dataclass
class GamificationStats:
    total_swipes: int = 0
    total_likes: int = 0
    total_matches: int = 0
    current_streak: int = 0
    total_points: int = 0
    achievements: dict[str, AchievementState] = field(default_factory=dict)
    # match id -> lifecycle kinds ("swipe", "match") already counted for this actor
    counted: dict[str, set[str]] = field(default_factory=dict)

    def counters(self) -> dict[str, int]:
        return {
            "total_swipes": self.total_swipes,
            "total_likes": self.total_likes,
            "total_matches": self.total_matches,
            "current_streak": self.current_streak,
        }

    def copy(self) -> "GamificationStats":
        return dataclasses.replace(
            self,
            achievements={k: dataclasses.replace(v) for k, v in self.achievements.items()},
            counted={k: set(v) for k, v in self.counted.items()},
        )

    def unlocked_ids(self) -> set[str]:
        return {k for k, v in self.achievements.items() if v.unlocked}

    def has_counted(self, match_id: str, kind: str) -> bool:
        return kind in self.counted.get(match_id, ())


@dataclass(frozen=True)
class AchievementNotice:
    achievement: Achievement
    unlocked_at: datetime
    display_until: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.achievement.to_dict(),
            "unlocked_at": self.unlocked_at.isoformat(),
            "display_until": self.display_until.isoformat(),
        }


def default_stats(catalog=DEFAULT_ACHIEVEMENTS) -> GamificationStats:
    return GamificationStats(achievements={a.id: AchievementState() for a in catalog})


def record_swipe(stats: GamificationStats, liked: bool) -> GamificationStats:
    out = stats.copy()
    out.total_swipes += 1
    if liked:
        out.total_likes += 1
    return out


def record_match(stats: GamificationStats) -> GamificationStats:
    out = stats.copy()
    out.total_matches += 1
    out.current_streak += 1
    return out


def points_for(stats: GamificationStats, catalog=DEFAULT_ACHIEVEMENTS) -> int:
    unlocked = stats.unlocked_ids()
    return sum(a.points for a in catalog if a.id in unlocked)


def evaluate(
    stats: GamificationStats,
    catalog=DEFAULT_ACHIEVEMENTS,
    now: datetime | None = None,
) -> tuple[GamificationStats, list[Achievement]]:
    """Unlock every achievement whose rule now holds.

    Already unlocked achievements are left untouched, so ``unlocked_at`` is
    set once. Returns the updated stats and the achievements unlocked by this
    call, in catalog order.
    """
    now = now or _utcnow()
    out = stats.copy()
    counters = out.counters()
    newly: list[Achievement] = []
    for achievement in catalog:
        state = out.achievements.setdefault(achievement.id, AchievementState())
        if state.unlocked:
            continue
        if rule_is_met(achievement.rule, counters):
            state.unlocked = True
            state.unlocked_at = now
            newly.append(achievement)
    out.total_points = points_for(out, catalog)
    return out, newly


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def serialize_stats(stats: GamificationStats, catalog=DEFAULT_ACHIEVEMENTS) -> bytes:
    payload: dict[str, Any] = {key: getattr(stats, attr) for key, attr in _COUNTER_KEYS.items()}
    payload["totalPoints"] = stats.total_points
    achievements = []
    for a in catalog:
        state = stats.achievements.get(a.id) or AchievementState()
        entry: dict[str, Any] = {"id": a.id, "points": a.points, "unlocked": state.unlocked}
        if state.unlocked_at is not None:
            entry["unlockedAt"] = _ms(state.unlocked_at)
        achievements.append(entry)
    payload["achievements"] = achievements
    if stats.counted:
        payload["countedMatches"] = {k: sorted(v) for k, v in stats.counted.items()}
    return json.dumps(payload, sort_keys=True).encode("utf-8")


def _parse_counter(raw: dict[str, Any], key: str) -> int:
    value = raw.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedSnapshot(f"{key} must be a non-negative integer, got {value!r}")
    return value


def _parse_unlocked_at(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedSnapshot(f"unlockedAt must be a timestamp, got {value!r}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise MalformedSnapshot(f"unlockedAt must be finite, got {value!r}")
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedSnapshot(f"unlockedAt is out of range: {value!r}") from exc
    try:
        dt = datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise MalformedSnapshot(f"unlockedAt is not a timestamp: {value!r}") from exc
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


COUNTED_KINDS = {"swipe", "match"}


def _parse_counted(value: Any) -> dict[str, set[str]]:
    if not isinstance(value, dict):
        raise MalformedSnapshot("countedMatches must be an object")
    out: dict[str, set[str]] = {}
    for match_id, kinds in value.items():
        if not isinstance(kinds, list) or not all(isinstance(k, str) and k in COUNTED_KINDS for k in kinds):
            raise MalformedSnapshot(f"countedMatches entry for {match_id} is invalid: {kinds!r}")
        out[match_id] = set(kinds)
    return out


def parse_snapshot(data: bytes, catalog=DEFAULT_ACHIEVEMENTS) -> GamificationStats:
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedSnapshot(f"snapshot is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise MalformedSnapshot("snapshot must be a JSON object")

    stats = default_stats(catalog)
    for key, attr in _COUNTER_KEYS.items():
        setattr(stats, attr, _parse_counter(raw, key))

    entries = raw.get("achievements", [])
    if isinstance(entries, dict):
        entries = [{"id": k, **v} if isinstance(v, dict) else None for k, v in entries.items()]
    if not isinstance(entries, list):
        raise MalformedSnapshot("achievements must be a list or an object")
    for entry in entries:
        if not isinstance(entry, dict):
            raise MalformedSnapshot("achievement entries must be objects")
        achievement_id = entry.get("id")
        if achievement_id not in stats.achievements:
            continue
        unlocked = entry.get("unlocked", False)
        if not isinstance(unlocked, bool):
            raise MalformedSnapshot(f"unlocked must be a boolean for {achievement_id}")
        if unlocked:
            stats.achievements[achievement_id] = AchievementState(True, _parse_unlocked_at(entry.get("unlockedAt")))

    stats.counted = _parse_counted(raw.get("countedMatches", {}))
    stats.total_points = points_for(stats, catalog)
    return stats


class GamificationEngine:
    def __init__(
        self,
        store,
        storage_key: str,
        catalog=DEFAULT_ACHIEVEMENTS,
        clock: Callable[[], datetime] = _utcnow,
        display_seconds: int = ACHIEVEMENT_DISPLAY_SECONDS,
    ) -> None:
        validate_catalog(catalog)
        self.store = store
        self.storage_key = storage_key
        self.catalog = tuple(catalog)
        self.clock = clock
        self.display_seconds = display_seconds
        self._stats: GamificationStats | None = None

    @property
    def stats(self) -> GamificationStats:
        if self._stats is None:
            self.initialize()
        return self._stats

    def initialize(self) -> GamificationStats:
        """Load the persisted snapshot, falling back to defaults on any read problem."""
        try:
            data = self.store.get(self.storage_key)
        except PersistenceUnavailable as exc:
            logger.warning("[GAMIFICATION] snapshot read failed key=%s: %s; using defaults", self.storage_key, exc)
            data = None

        if data is None:
            self._stats = default_stats(self.catalog)
            return self._stats

        try:
            self._stats = parse_snapshot(data, self.catalog)
        except MalformedSnapshot as exc:
            logger.warning("[GAMIFICATION] malformed snapshot key=%s: %s; using defaults", self.storage_key, exc)
            self._stats = default_stats(self.catalog)
        return self._stats

    def _commit(self, new_stats: GamificationStats) -> GamificationStats:
        # Raises PersistenceUnavailable; in-memory stats only move forward after the write lands.
        self.store.set(self.storage_key, serialize_stats(new_stats, self.catalog))
        self._stats = new_stats
        return new_stats

    def _mark(self, stats: GamificationStats, match_id: str | None, kind: str) -> GamificationStats:
        if match_id is not None:
            stats.counted.setdefault(match_id, set()).add(kind)
        return stats

    def record_swipe(self, liked: bool, match_id: str | None = None) -> GamificationStats:
        """Count a swipe; with ``match_id`` it is counted at most once per match."""
        if match_id is not None and self.stats.has_counted(match_id, "swipe"):
            return self.stats
        return self._commit(self._mark(record_swipe(self.stats, liked), match_id, "swipe"))

    def record_match(self, match_id: str | None = None) -> GamificationStats:
        if match_id is not None and self.stats.has_counted(match_id, "match"):
            return self.stats
        return self._commit(self._mark(record_match(self.stats), match_id, "match"))

    def evaluate(self) -> list[AchievementNotice]:
        now = self.clock()
        updated, newly = evaluate(self.stats, self.catalog, now)
        self._commit(updated)
        if newly:
            logger.info(
                "[GAMIFICATION] unlocked key=%s achievements=%s total_points=%s",
                self.storage_key,
                [a.id for a in newly],
                updated.total_points,
            )
        until = now + timedelta(seconds=self.display_seconds)
        return [AchievementNotice(a, now, until) for a in newly]

    def snapshot(self) -> dict[str, Any]:
        stats = self.stats
        return {
            "storage_key": self.storage_key,
            "total_swipes": stats.total_swipes,
            "total_likes": stats.total_likes,
            "total_matches": stats.total_matches,
            "current_streak": stats.current_streak,
            "total_points": stats.total_points,
            "achievements": [
                {
                    **a.to_dict(),
                    "unlocked": stats.achievements[a.id].unlocked,
                    "unlocked_at": stats.achievements[a.id].unlocked_at.isoformat()
                    if stats.achievements[a.id].unlocked_at
                    else None,
                }
                for a in self.catalog
            ],
        }
