from dataclasses import dataclass
from typing import Any

COUNTERS = ("total_swipes", "total_likes", "total_matches", "current_streak")

# Only operators that stay true once true while counters grow.
MONOTONE_OPERATORS = {"gte", "gt"}


@dataclass(frozen=True)
class ThresholdRule:
    counter: str
    threshold: int
    operator: str = "gte"
    type: str = "threshold"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "counter": self.counter, "operator": self.operator, "threshold": self.threshold}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ThresholdRule":
        return cls(
            counter=str(raw["counter"]),
            threshold=int(raw["threshold"]),
            operator=str(raw.get("operator") or "gte"),
            type=str(raw.get("type") or "threshold"),
        )


def evaluate_threshold(operator: str, actual: Any, threshold: int) -> bool:
    if not isinstance(actual, int):
        return False
    if operator == "gte":
        return actual >= threshold
    if operator == "gt":
        return actual > threshold
    return False


def validate_rule(rule: ThresholdRule) -> None:
    if rule.type != "threshold":
        raise ValueError(f"Unsupported rule type: {rule.type}")
    if rule.counter not in COUNTERS:
        raise ValueError(f"Unknown counter: {rule.counter}")
    if rule.operator not in MONOTONE_OPERATORS:
        raise ValueError(f"Operator must be one of {sorted(MONOTONE_OPERATORS)}, got {rule.operator}")


def rule_is_met(rule: ThresholdRule, counters: dict[str, int]) -> bool:
    if rule.type != "threshold":
        return False
    return evaluate_threshold(rule.operator, counters.get(rule.counter), rule.threshold)
