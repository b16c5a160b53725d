from __future__ import annotations

from typing import Any


def partner_metrics(match_store, project_store, partner_id: str) -> dict[str, Any]:
    matches = match_store.list_by_partner(partner_id)
    projects = project_store.list_by_partner(partner_id)

    def ratio(num: int, den: int) -> float:
        if den <= 0:
            return 0.0
        return round(num / den, 4)

    matches_sent = len(matches)
    matches_accepted = sum(1 for m in matches if m.status == "accepted")
    conversions = sum(1 for m in matches if m.status == "converted")
    return {
        "partner_id": partner_id,
        "matches_sent": matches_sent,
        "matches_accepted": matches_accepted,
        "conversions": conversions,
        "total_project_value": sum(p.contract_value or 0 for p in projects),
        "kpis": {
            "accept_rate": ratio(matches_accepted + conversions, matches_sent),
            "conversion_rate": ratio(conversions, max(1, matches_accepted + conversions)),
        },
    }
