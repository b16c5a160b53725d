import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

MATCH_STATUSES = ("suggested", "sent", "accepted", "rejected", "converted")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Match:
    brief_id: str
    client_id: str
    partner_id: str
    score: int = 0
    score_breakdown: dict[str, float] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)
    status: str = "suggested"
    client_liked: bool | None = None
    client_saved: bool = False
    partner_responded: bool = False
    partner_accepted: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now_utc)
    responded_at: datetime | None = None

    @property
    def is_mutual(self) -> bool:
        return self.client_liked is True and self.partner_accepted

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["created_at"] = self.created_at.isoformat()
        out["responded_at"] = self.responded_at.isoformat() if self.responded_at else None
        out["matched"] = self.is_mutual
        return out


@dataclass
class Project:
    match_id: str
    client_id: str
    partner_id: str
    status: str = "matched"
    contract_value: int | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now_utc)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["created_at"] = self.created_at.isoformat()
        return out


@dataclass(frozen=True)
class LifecycleEvent:
    match_id: str
    from_status: str
    to_status: str
    actor: str
    action: str
    timestamp: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "from": self.from_status,
            "to": self.to_status,
            "actor": self.actor,
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
        }
