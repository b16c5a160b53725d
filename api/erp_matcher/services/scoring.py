from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ..config import DEFAULT_SCORING_CONFIG

HOURS_PER_MONTH = 160


@dataclass
class ScoreResult:
    score: int
    breakdown: dict[str, float] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)


class Scorer(Protocol):
    def score(self, brief: dict[str, Any], partner: dict[str, Any]) -> ScoreResult: ...


def _to_float(value: Any, default: float | None = None) -> float | None:
    try:
        if value is None or value == "":
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _norm(value: Any) -> str:
    return str(value or "").strip().lower()


def _modules(brief: dict[str, Any]) -> list[str]:
    raw = brief.get("modules")
    if raw is None:
        raw = brief.get("odoo_modules")
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    out: list[str] = []
    for item in raw:
        m = _norm(item)
        if m and m not in out:
            out.append(m)
    return out


def module_fit(brief: dict[str, Any], partner: dict[str, Any]) -> tuple[float, list[str]]:
    wanted = _modules(brief)
    if not wanted:
        return 0.5, []
    services = [_norm(s) for s in (partner.get("services") or [])]
    covered = [m for m in wanted if any(m in s for s in services)]
    return len(covered) / len(wanted), covered


def industry_experience(brief: dict[str, Any], partner: dict[str, Any]) -> float:
    b = _norm(brief.get("industry"))
    p = _norm(partner.get("industry"))
    if not b or not p:
        return 0.5
    if b == p or b in p or p in b:
        return 1.0
    return 0.3


def budget_fit(brief: dict[str, Any], partner: dict[str, Any]) -> float:
    budget = _to_float(brief.get("budget"))
    rate = _to_float(partner.get("hourly_rate_min"))
    if budget is None or rate is None or rate <= 0:
        return 0.5
    # One consultant-month at the partner's lowest rate is the floor of a viable engagement.
    floor = rate * HOURS_PER_MONTH
    return round(min(1.0, max(0.0, budget / floor)), 4)


def rating_signal(partner: dict[str, Any]) -> float:
    rating = _to_float(partner.get("rating"), 3.0)
    return round(min(5.0, max(0.0, rating)) / 5.0, 4)


class WeightedScorer:
    """Default scoring collaborator: weighted blend of four 0..1 sub-scores."""

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = {**DEFAULT_SCORING_CONFIG, **(config or {})}

    def score(self, brief: dict[str, Any], partner: dict[str, Any]) -> ScoreResult:
        cfg = self.config
        fit, covered = module_fit(brief, partner)
        breakdown = {
            "module_fit": round(fit, 4),
            "industry_exp": industry_experience(brief, partner),
            "budget_fit": budget_fit(brief, partner),
            "partner_rating": rating_signal(partner),
        }
        weights = {
            "module_fit": float(cfg["MODULE_FIT_W"]),
            "industry_exp": float(cfg["INDUSTRY_W"]),
            "budget_fit": float(cfg["BUDGET_W"]),
            "partner_rating": float(cfg["RATING_W"]),
        }
        total_w = sum(weights.values()) or 1.0
        raw = sum(breakdown[k] * weights[k] for k in breakdown) / total_w
        score = int(round(min(1.0, max(0.0, raw)) * 100))
        return ScoreResult(score=score, breakdown=breakdown, reasons=self._reasons(brief, partner, breakdown, covered))

    def _reasons(
        self,
        brief: dict[str, Any],
        partner: dict[str, Any],
        breakdown: dict[str, float],
        covered: list[str],
    ) -> list[str]:
        candidates: list[tuple[float, str]] = []
        if covered:
            candidates.append((breakdown["module_fit"], "Covers your requested modules: " + ", ".join(m.title() for m in covered)))
        if breakdown["industry_exp"] >= 1.0:
            candidates.append((breakdown["industry_exp"], f"Experienced in {partner.get('industry')}"))
        if breakdown["budget_fit"] >= 1.0:
            candidates.append((breakdown["budget_fit"], "Rates fit within your budget"))
        rating = _to_float(partner.get("rating"))
        if rating is not None and rating >= 4:
            candidates.append((breakdown["partner_rating"], f"Rated {int(rating)}/5 by past clients"))
        candidates.sort(key=lambda c: c[0], reverse=True)
        return [text for _, text in candidates[: int(self.config["MAX_REASONS"])]]


def _string_hash32(value: str) -> int:
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 2**31:
        h -= 2**32
    return h


def partner_likes_back(client_id: str, partner_id: str, rating: Any) -> bool:
    """Deterministic stand-in for a partner reply, used in demo mode.

    Higher-rated partners are more selective: 5 stars reply to 20% of clients,
    4 stars to 40%, everyone else to 60%.
    """
    bucket = abs(_string_hash32(f"{client_id}-{partner_id}")) % 100
    threshold = 60
    if rating == 5:
        threshold = 20
    elif rating == 4:
        threshold = 40
    return bucket < threshold


def demo_auto_reply(match) -> bool:
    rating = round(float(match.score_breakdown.get("partner_rating", 0.6)) * 5)
    return partner_likes_back(match.client_id, match.partner_id, rating)
