from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import Services, get_actor, get_services, require_party
from ..schemas import ConvertRequest, CreateMatchRequest, LikeRequest, SaveRequest
from ..services.rate_limit import rate_limit_dependency

router = APIRouter()

RL_MATCH_RESPOND = rate_limit_dependency("match_respond")
RL_MATCH_SWIPE = rate_limit_dependency("match_swipe")


@router.post("/matches", status_code=201)
def create_match(payload: CreateMatchRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    brief = payload.brief.model_dump()
    client_id = payload.client_id or brief.get("client_id")
    if not client_id:
        raise HTTPException(status_code=400, detail="client_id is required")
    match = services.lifecycle.create_match(brief, payload.partner.model_dump(), client_id=client_id)
    return {"match": match.to_dict()}


@router.get("/matches/client/{client_id}")
def list_client_matches(client_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"matches": [m.to_dict() for m in services.lifecycle.list_for_client(client_id)]}


@router.get("/matches/partner/{partner_id}")
def list_partner_matches(partner_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"matches": [m.to_dict() for m in services.lifecycle.list_for_partner(partner_id)]}


@router.get("/matches/{match_id}")
def get_match(match_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"match": services.lifecycle.get(match_id).to_dict()}


@router.post("/matches/{match_id}/send")
def send_match(match_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"match": services.lifecycle.send(match_id).to_dict()}


def _respond(match_id: str, accepted: bool, actor: dict[str, Any], services: Services) -> dict[str, Any]:
    require_party(services.lifecycle.get(match_id), actor, "partner")
    match = services.lifecycle.respond(match_id, accepted)
    # a repeated response is a no-op for the lifecycle; settle any stats a failed write left behind
    services.recorder.reconcile(match)
    return {"match": match.to_dict(), "matched": match.is_mutual}


@router.post("/matches/{match_id}/accept")
def accept_match(
    match_id: str,
    actor: dict[str, Any] = Depends(get_actor),
    services: Services = Depends(get_services),
    _: None = RL_MATCH_RESPOND,
) -> dict[str, Any]:
    return _respond(match_id, True, actor, services)


@router.post("/matches/{match_id}/reject")
def reject_match(
    match_id: str,
    actor: dict[str, Any] = Depends(get_actor),
    services: Services = Depends(get_services),
    _: None = RL_MATCH_RESPOND,
) -> dict[str, Any]:
    return _respond(match_id, False, actor, services)


@router.post("/matches/{match_id}/like")
def like_match(
    match_id: str,
    payload: LikeRequest,
    actor: dict[str, Any] = Depends(get_actor),
    services: Services = Depends(get_services),
    _: None = RL_MATCH_SWIPE,
) -> dict[str, Any]:
    require_party(services.lifecycle.get(match_id), actor, "client")
    match = services.lifecycle.like(match_id, payload.liked)
    services.recorder.reconcile(match)
    return {"match": match.to_dict(), "matched": match.is_mutual}


@router.post("/matches/{match_id}/save")
def save_match(
    match_id: str,
    payload: SaveRequest,
    actor: dict[str, Any] = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    require_party(services.lifecycle.get(match_id), actor, "client")
    return {"match": services.lifecycle.save(match_id, payload.saved).to_dict()}


@router.post("/matches/{match_id}/convert")
def convert_match(match_id: str, payload: ConvertRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    match, project = services.lifecycle.convert(match_id, contract_value=payload.contract_value)
    return {"match": match.to_dict(), "project": project.to_dict() if project else None}
