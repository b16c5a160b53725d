from typing import Any

from fastapi import APIRouter, Depends

from ..deps import Services, get_services
from ..services.metrics import partner_metrics

router = APIRouter()


@router.get("/analytics/partner/{partner_id}")
def get_partner_analytics(partner_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return partner_metrics(services.match_store, services.project_store, partner_id)
