from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import ROLES, Services, get_actor, get_services
from ..schemas import GamificationResponse, SwipeRequest
from ..services.gamification import GamificationEngine, storage_key_for
from ..services.rate_limit import rate_limit_dependency

router = APIRouter()

RL_GAMIFICATION_SWIPE = rate_limit_dependency("gamification_swipe")


def _engine(role: str, actor: dict[str, Any], services: Services) -> GamificationEngine:
    if role not in ROLES:
        raise HTTPException(status_code=404, detail="Unknown role")
    if actor.get("role") and actor["role"] != role:
        raise HTTPException(status_code=403, detail="Forbidden")
    engine = GamificationEngine(services.kv_store, storage_key_for(role, actor.get("id")))
    engine.initialize()
    return engine


@router.get("/gamification/{role}", response_model=GamificationResponse)
def get_stats(role: str, actor: dict[str, Any] = Depends(get_actor), services: Services = Depends(get_services)) -> dict[str, Any]:
    engine = _engine(role, actor, services)
    notices = services.recorder.pop_notices(engine.storage_key)
    return {"stats": engine.snapshot(), "new_achievements": [n.to_dict() for n in notices]}


@router.post("/gamification/{role}/swipe", response_model=GamificationResponse)
def record_swipe(
    role: str,
    payload: SwipeRequest,
    actor: dict[str, Any] = Depends(get_actor),
    services: Services = Depends(get_services),
    _: None = RL_GAMIFICATION_SWIPE,
) -> dict[str, Any]:
    engine = _engine(role, actor, services)
    engine.record_swipe(payload.liked)
    notices = engine.evaluate()
    return {"stats": engine.snapshot(), "new_achievements": [n.to_dict() for n in notices]}


@router.post("/gamification/{role}/match", response_model=GamificationResponse)
def record_match(role: str, actor: dict[str, Any] = Depends(get_actor), services: Services = Depends(get_services)) -> dict[str, Any]:
    engine = _engine(role, actor, services)
    engine.record_match()
    notices = engine.evaluate()
    return {"stats": engine.snapshot(), "new_achievements": [n.to_dict() for n in notices]}
