import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from erp_matcher.errors import PersistenceUnavailable
from erp_matcher.services.achievements import DEFAULT_ACHIEVEMENTS, Achievement, validate_catalog
from erp_matcher.services.gamification import (
    GamificationEngine,
    default_stats,
    evaluate,
    parse_snapshot,
    points_for,
    record_match,
    record_swipe,
    serialize_stats,
    storage_key_for,
)
from erp_matcher.services.kv_store import InMemoryKeyValueStore
from erp_matcher.services.rules import ThresholdRule, evaluate_threshold, rule_is_met

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FlakyStore(InMemoryKeyValueStore):
    def __init__(self, fail_get=False, fail_set=False):
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set

    def get(self, key):
        if self.fail_get:
            raise PersistenceUnavailable("read timeout")
        return super().get(key)

    def set(self, key, value):
        if self.fail_set:
            raise PersistenceUnavailable("write timeout")
        super().set(key, value)


def _engine(store=None, key="clientGamification"):
    return GamificationEngine(store or InMemoryKeyValueStore(), key, clock=lambda: NOW)


def test_default_catalog_is_reproduced_exactly():
    table = [(a.id, a.rule.counter, a.rule.operator, a.rule.threshold, a.points) for a in DEFAULT_ACHIEVEMENTS]
    assert table == [
        ("first_swipe", "total_swipes", "gte", 1, 10),
        ("swipe_master", "total_swipes", "gte", 10, 50),
        ("heart_breaker", "total_likes", "gte", 5, 30),
        ("matchmaker", "total_matches", "gte", 1, 100),
        ("on_fire", "current_streak", "gte", 5, 75),
    ]


def test_threshold_interpreter():
    assert evaluate_threshold("gte", 3, 3) is True
    assert evaluate_threshold("gt", 3, 3) is False
    assert evaluate_threshold("lte", 1, 3) is False
    assert evaluate_threshold("gte", None, 0) is False
    assert rule_is_met(ThresholdRule("total_likes", 2), {"total_likes": 2}) is True


def test_catalog_rejects_non_monotone_rules():
    bad = Achievement("x", "X", "", "star", 5, ThresholdRule("total_swipes", 3, operator="lte"))
    with pytest.raises(ValueError):
        validate_catalog([bad])
    dup = [DEFAULT_ACHIEVEMENTS[0], DEFAULT_ACHIEVEMENTS[0]]
    with pytest.raises(ValueError):
        validate_catalog(dup)


def test_record_swipe_counts_likes():
    stats = default_stats()
    stats = record_swipe(stats, True)
    stats = record_swipe(stats, False)
    assert stats.total_swipes == 2
    assert stats.total_likes == 1


def test_record_swipe_does_not_evaluate():
    stats = record_swipe(default_stats(), True)
    assert stats.unlocked_ids() == set()
    assert stats.total_points == 0


def test_first_swipe_unlocks_only_first_step():
    stats, newly = evaluate(record_swipe(default_stats(), True), now=NOW)
    assert [a.id for a in newly] == ["first_swipe"]
    assert stats.unlocked_ids() == {"first_swipe"}
    assert stats.total_points == 10
    assert stats.achievements["first_swipe"].unlocked_at == NOW


def test_ten_swipes_unlock_swipe_master():
    stats = default_stats()
    for i in range(10):
        stats = record_swipe(stats, i % 3 == 0)
    stats, newly = evaluate(stats, now=NOW)
    assert {a.id for a in newly} == {"first_swipe", "swipe_master"}
    assert stats.total_points == 60


def test_first_match_unlocks_matchmaker():
    stats, newly = evaluate(record_match(default_stats()), now=NOW)
    assert [a.id for a in newly] == ["matchmaker"]
    assert stats.total_points == 100
    assert stats.current_streak == 1


def test_evaluate_is_idempotent_and_never_relocks():
    stats, _ = evaluate(record_swipe(default_stats(), True), now=NOW)
    later = NOW + timedelta(hours=1)
    again, newly = evaluate(stats, now=later)
    assert newly == []
    assert again.achievements["first_swipe"].unlocked_at == NOW
    assert again.total_points == 10


def test_unlocks_are_monotone_over_event_sequence():
    stats = default_stats()
    previous: set[str] = set()
    events = ["like", "pass", "match", "like", "like", "match", "like", "like", "match", "pass", "match", "match", "like"]
    for step, event in enumerate(events):
        if event == "match":
            stats = record_match(stats)
        else:
            stats = record_swipe(stats, event == "like")
        stats, _ = evaluate(stats, now=NOW + timedelta(seconds=step))
        unlocked = stats.unlocked_ids()
        assert previous <= unlocked
        assert stats.total_points == sum(a.points for a in DEFAULT_ACHIEVEMENTS if a.id in unlocked)
        previous = unlocked
    assert previous == {"first_swipe", "heart_breaker", "matchmaker", "on_fire"}
    assert stats.total_points == 10 + 30 + 100 + 75


def test_snapshot_round_trip_keeps_unlock_times():
    stats, _ = evaluate(record_match(record_swipe(default_stats(), True)), now=NOW)
    restored = parse_snapshot(serialize_stats(stats))
    assert restored.counters() == stats.counters()
    assert restored.unlocked_ids() == {"first_swipe", "matchmaker"}
    assert restored.achievements["matchmaker"].unlocked_at == NOW
    assert restored.total_points == 110


def test_parses_snapshot_written_by_the_web_client():
    legacy = {
        "totalSwipes": 3,
        "totalLikes": 2,
        "totalMatches": 0,
        "currentStreak": 0,
        "totalPoints": 999,
        "achievements": [
            {"id": "first_swipe", "name": "First Step", "icon": "star", "points": 10, "unlocked": True, "unlockedAt": 1767225600000},
            {"id": "swipe_master", "name": "Swipe Master", "icon": "zap", "points": 50, "unlocked": False},
            {"id": "retired_badge", "unlocked": True},
        ],
    }
    stats = parse_snapshot(json.dumps(legacy).encode())
    assert stats.total_swipes == 3
    assert stats.unlocked_ids() == {"first_swipe"}
    assert stats.achievements["first_swipe"].unlocked_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert stats.total_points == 10


@pytest.mark.parametrize(
    "payload",
    [
        b"{not json",
        b"\xff\xfe",
        b"[1, 2, 3]",
        b'{"totalSwipes": -3}',
        b'{"totalSwipes": "7"}',
        b'{"totalLikes": true}',
        b'{"achievements": "first_swipe"}',
        b'{"achievements": [{"id": "first_swipe", "unlocked": "yes"}]}',
        b'{"achievements": [{"id": "first_swipe", "unlocked": true, "unlockedAt": 1e20}]}',
        b'{"achievements": [{"id": "first_swipe", "unlocked": true, "unlockedAt": NaN}]}',
        b'{"achievements": [{"id": "first_swipe", "unlocked": true, "unlockedAt": -Infinity}]}',
        b'{"countedMatches": ["m1"]}',
        b'{"countedMatches": {"m1": ["swipe", "hug"]}}',
    ],
)
def test_initialize_falls_back_on_malformed_snapshot(payload, caplog):
    store = InMemoryKeyValueStore({"clientGamification": payload})
    engine = _engine(store)
    with caplog.at_level(logging.WARNING):
        stats = engine.initialize()
    assert stats.counters() == {"total_swipes": 0, "total_likes": 0, "total_matches": 0, "current_streak": 0}
    assert stats.unlocked_ids() == set()
    assert stats.total_points == 0
    assert "malformed snapshot" in caplog.text


def test_initialize_without_snapshot_uses_defaults():
    engine = _engine()
    stats = engine.initialize()
    assert stats.total_swipes == 0
    assert set(stats.achievements) == {a.id for a in DEFAULT_ACHIEVEMENTS}


def test_initialize_survives_unreadable_store(caplog):
    engine = _engine(FlakyStore(fail_get=True))
    with caplog.at_level(logging.WARNING):
        stats = engine.initialize()
    assert stats.total_swipes == 0
    assert "snapshot read failed" in caplog.text


def test_every_mutation_writes_a_snapshot():
    store = InMemoryKeyValueStore()
    engine = _engine(store, key="partnerGamification:p1")
    engine.initialize()
    assert store.get("partnerGamification:p1") is None

    engine.record_swipe(True)
    assert json.loads(store.get("partnerGamification:p1"))["totalSwipes"] == 1

    engine.record_match()
    assert json.loads(store.get("partnerGamification:p1"))["totalMatches"] == 1

    notices = engine.evaluate()
    saved = json.loads(store.get("partnerGamification:p1"))
    assert saved["totalPoints"] == 110
    assert {n.achievement.id for n in notices} == {"first_swipe", "matchmaker"}
    assert all(n.display_until == NOW + timedelta(seconds=5) for n in notices)

    reloaded = _engine(store, key="partnerGamification:p1")
    assert reloaded.initialize().total_points == 110


def test_write_failure_is_surfaced_and_state_kept():
    store = FlakyStore()
    engine = _engine(store)
    engine.record_swipe(True)
    store.fail_set = True
    with pytest.raises(PersistenceUnavailable):
        engine.record_swipe(True)
    assert engine.stats.total_swipes == 1
    with pytest.raises(PersistenceUnavailable):
        engine.evaluate()
    assert engine.stats.unlocked_ids() == set()


def test_points_for_counts_only_unlocked():
    stats, _ = evaluate(record_swipe(default_stats(), True), now=NOW)
    assert points_for(stats) == 10


def test_storage_keys():
    assert storage_key_for("partner") == "partnerGamification"
    assert storage_key_for("client", "c-9") == "clientGamification:c-9"
    with pytest.raises(ValueError):
        storage_key_for("admin")


def test_per_match_counting_survives_reload():
    store = InMemoryKeyValueStore()
    engine = _engine(store, key="clientGamification:c1")
    engine.record_swipe(True, match_id="m1")
    engine.record_swipe(False, match_id="m1")
    engine.record_match(match_id="m1")
    engine.record_match(match_id="m1")
    assert engine.stats.counters() == {"total_swipes": 1, "total_likes": 1, "total_matches": 1, "current_streak": 1}

    reloaded = _engine(store, key="clientGamification:c1")
    reloaded.record_match(match_id="m1")
    reloaded.record_match(match_id="m2")
    assert reloaded.stats.total_matches == 2
    assert reloaded.stats.has_counted("m1", "swipe")
    assert not reloaded.stats.has_counted("m2", "swipe")
    assert json.loads(store.get("clientGamification:c1"))["countedMatches"] == {"m1": ["match", "swipe"], "m2": ["match"]}
