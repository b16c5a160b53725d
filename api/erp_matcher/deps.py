from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Header, HTTPException

from .config import DEMO_AUTO_REPLY
from .models import Match
from .services.events import SqlEventSink
from .services.gamification_bridge import GamificationRecorder
from .services.kv_store import InMemoryKeyValueStore, SqlKeyValueStore
from .services.lifecycle import MatchLifecycleEngine
from .services.match_store import InMemoryMatchStore, SqlMatchStore
from .services.projects import InMemoryProjectStore, SqlProjectStore
from .services.scoring import demo_auto_reply

ROLES = {"client", "partner"}


@dataclass
class Services:
    lifecycle: MatchLifecycleEngine
    match_store: Any
    project_store: Any
    kv_store: Any
    recorder: GamificationRecorder


def build_services(match_store, project_store, kv_store, event_sink=None, auto_reply: bool = DEMO_AUTO_REPLY) -> Services:
    recorder = GamificationRecorder(match_store, kv_store)
    listeners = [event_sink] if event_sink is not None else []
    listeners.append(recorder)
    lifecycle = MatchLifecycleEngine(
        match_store,
        project_store=project_store,
        listeners=listeners,
        auto_reply=demo_auto_reply if auto_reply else None,
    )
    return Services(
        lifecycle=lifecycle,
        match_store=match_store,
        project_store=project_store,
        kv_store=kv_store,
        recorder=recorder,
    )


def build_in_memory_services(auto_reply: bool = False) -> Services:
    return build_services(InMemoryMatchStore(), InMemoryProjectStore(), InMemoryKeyValueStore(), auto_reply=auto_reply)


def build_sql_services(session_factory) -> Services:
    return build_services(
        SqlMatchStore(session_factory),
        SqlProjectStore(session_factory),
        SqlKeyValueStore(session_factory),
        event_sink=SqlEventSink(session_factory),
    )


_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        from .database import SessionLocal

        _services = build_sql_services(SessionLocal)
    return _services


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> dict[str, Any]:
    actor_id = (x_actor_id or "").strip() or None
    role = (x_actor_role or "").strip().lower() or None
    if role is not None and role not in ROLES:
        raise HTTPException(status_code=400, detail="X-Actor-Role must be one of: client, partner")
    return {"id": actor_id, "role": role}


def require_party(match: Match, actor: dict[str, Any], role: str) -> None:
    if actor.get("role") and actor["role"] != role:
        raise HTTPException(status_code=403, detail=f"Only the {role} can do this")
    expected_id = match.partner_id if role == "partner" else match.client_id
    if actor.get("id") and actor["id"] != expected_id:
        raise HTTPException(status_code=403, detail="Forbidden")
