from erp_matcher.models import Match
from erp_matcher.services.scoring import (
    WeightedScorer,
    budget_fit,
    demo_auto_reply,
    industry_experience,
    module_fit,
    partner_likes_back,
)

BRIEF = {"id": "b1", "industry": "Retail", "budget": 40000, "modules": ["Inventory", "Sales", "HR"]}
PARTNER = {
    "id": "p1",
    "industry": "Retail",
    "services": ["Point of Sale", "Inventory Management", "Sales Automation"],
    "rating": 5,
    "hourly_rate_min": 125,
}


def test_module_fit_counts_covered_modules():
    fit, covered = module_fit(BRIEF, PARTNER)
    assert covered == ["inventory", "sales"]
    assert round(fit, 4) == 0.6667


def test_module_fit_accepts_comma_separated_modules():
    fit, covered = module_fit({"odoo_modules": "Inventory, Inventory, CRM"}, PARTNER)
    assert covered == ["inventory"]
    assert fit == 0.5


def test_neutral_defaults_when_data_missing():
    assert module_fit({}, PARTNER) == (0.5, [])
    assert industry_experience({}, PARTNER) == 0.5
    assert budget_fit({"budget": None}, PARTNER) == 0.5


def test_industry_and_budget():
    assert industry_experience(BRIEF, PARTNER) == 1.0
    assert industry_experience({"industry": "Finance"}, PARTNER) == 0.3
    assert budget_fit({"budget": 40000}, PARTNER) == 1.0
    assert budget_fit({"budget": 10000}, PARTNER) == 0.5


def test_weighted_score_is_bounded_with_reasons():
    result = WeightedScorer().score(BRIEF, PARTNER)
    assert 0 <= result.score <= 100
    assert set(result.breakdown) == {"module_fit", "industry_exp", "budget_fit", "partner_rating"}
    assert result.reasons == ["Experienced in Retail", "Rates fit within your budget", "Rated 5/5 by past clients"]


def test_weights_are_configurable():
    only_industry = WeightedScorer({"MODULE_FIT_W": 0, "INDUSTRY_W": 1, "BUDGET_W": 0, "RATING_W": 0})
    assert only_industry.score(BRIEF, PARTNER).score == 100
    assert only_industry.score({**BRIEF, "industry": "Finance"}, PARTNER).score == 30


def test_partner_likes_back_is_deterministic_and_rating_sensitive():
    # hash("c-p") lands in bucket 46
    assert partner_likes_back("c", "p", 3) is True
    assert partner_likes_back("c", "p", None) is True
    assert partner_likes_back("c", "p", 4) is False
    assert partner_likes_back("c", "p", 5) is False
    assert partner_likes_back("c", "p", 3) == partner_likes_back("c", "p", 3)


def test_demo_auto_reply_reads_rating_from_breakdown():
    match = Match(brief_id="b", client_id="c", partner_id="p", score_breakdown={"partner_rating": 0.6})
    assert demo_auto_reply(match) is True
    match.score_breakdown["partner_rating"] = 1.0
    assert demo_auto_reply(match) is False
