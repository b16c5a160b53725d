import json
import os
from pathlib import Path
from typing import Any

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/erp_matcher")
_default_migrations = Path(__file__).resolve().parents[1] / "migrations"
MIGRATIONS_DIR = Path(os.getenv("MIGRATIONS_DIR", str(_default_migrations)))

ACHIEVEMENT_DISPLAY_SECONDS = int(os.getenv("ACHIEVEMENT_DISPLAY_SECONDS", "5"))
CLIENT_GAMIFICATION_KEY = os.getenv("CLIENT_GAMIFICATION_KEY", "clientGamification")
PARTNER_GAMIFICATION_KEY = os.getenv("PARTNER_GAMIFICATION_KEY", "partnerGamification")

DEFAULT_SCORING_CONFIG: dict[str, Any] = {
    "MODULE_FIT_W": float(os.getenv("MODULE_FIT_W", "0.40")),
    "INDUSTRY_W": float(os.getenv("INDUSTRY_W", "0.25")),
    "BUDGET_W": float(os.getenv("BUDGET_W", "0.20")),
    "RATING_W": float(os.getenv("RATING_W", "0.15")),
    "MAX_REASONS": int(os.getenv("MAX_REASONS", "3")),
}

if os.getenv("SCORING_CONFIG_JSON"):
    try:
        DEFAULT_SCORING_CONFIG.update(json.loads(os.getenv("SCORING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        pass

DEMO_AUTO_REPLY = os.getenv("DEMO_AUTO_REPLY", "false").lower() == "true"
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"

RL_MATCH_RESPOND_LIMIT = int(os.getenv("RL_MATCH_RESPOND_LIMIT", "100"))
RL_MATCH_SWIPE_LIMIT = int(os.getenv("RL_MATCH_SWIPE_LIMIT", "200"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))
