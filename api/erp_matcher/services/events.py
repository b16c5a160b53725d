import json
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceUnavailable
from ..models import LifecycleEvent


def log_match_event(
    db,
    match_id: str,
    actor: str,
    event_type: str,
    payload: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> None:
    payload = payload or {}
    created_at = created_at or datetime.now(timezone.utc)
    db.execute(
        text(
            """
            INSERT INTO match_event (id, match_id, actor, event_type, payload, created_at)
            VALUES (:id, :match_id, :actor, :event_type, :payload, :created_at)
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "match_id": match_id,
            "actor": actor,
            "event_type": event_type,
            "payload": json.dumps(payload),
            "created_at": created_at.isoformat(),
        },
    )


def list_match_events(db, match_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, match_id, actor, event_type, payload, created_at
            FROM match_event
            WHERE match_id = :match_id
            ORDER BY created_at, id
            """
        ),
        {"match_id": match_id},
    ).mappings().all()
    out = []
    for r in rows:
        payload = r["payload"]
        out.append({**dict(r), "payload": payload if isinstance(payload, dict) else json.loads(payload or "{}")})
    return out


class SqlEventSink:
    """Lifecycle listener that appends every event to ``match_event``."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def __call__(self, event: LifecycleEvent) -> None:
        try:
            with self._session_factory() as db:
                log_match_event(
                    db,
                    match_id=event.match_id,
                    actor=event.actor,
                    event_type=f"match_{event.action}",
                    payload=event.to_payload(),
                    created_at=event.timestamp,
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
