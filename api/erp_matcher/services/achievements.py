from dataclasses import dataclass
from typing import Any

from .rules import ThresholdRule, validate_rule


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str
    points: int
    rule: ThresholdRule

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "points": self.points,
            "rule": self.rule.to_dict(),
        }


DEFAULT_ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement(
        id="first_swipe",
        name="First Step",
        description="Complete your first swipe",
        icon="star",
        points=10,
        rule=ThresholdRule(counter="total_swipes", threshold=1),
    ),
    Achievement(
        id="swipe_master",
        name="Swipe Master",
        description="Complete 10 swipes",
        icon="zap",
        points=50,
        rule=ThresholdRule(counter="total_swipes", threshold=10),
    ),
    Achievement(
        id="heart_breaker",
        name="Heart Breaker",
        description="Like 5 profiles",
        icon="heart",
        points=30,
        rule=ThresholdRule(counter="total_likes", threshold=5),
    ),
    Achievement(
        id="matchmaker",
        name="Matchmaker",
        description="Get your first match",
        icon="trophy",
        points=100,
        rule=ThresholdRule(counter="total_matches", threshold=1),
    ),
    Achievement(
        id="on_fire",
        name="On Fire",
        description="Maintain a 5-match streak",
        icon="zap",
        points=75,
        rule=ThresholdRule(counter="current_streak", threshold=5),
    ),
)


def validate_catalog(catalog: tuple[Achievement, ...] | list[Achievement]) -> None:
    seen: set[str] = set()
    for achievement in catalog:
        if achievement.id in seen:
            raise ValueError(f"Duplicate achievement id: {achievement.id}")
        if achievement.points < 0:
            raise ValueError(f"Achievement {achievement.id} has negative points")
        validate_rule(achievement.rule)
        seen.add(achievement.id)


validate_catalog(DEFAULT_ACHIEVEMENTS)
