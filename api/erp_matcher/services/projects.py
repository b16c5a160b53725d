from __future__ import annotations

import dataclasses
import threading
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceUnavailable
from ..models import Project
from .match_store import _as_datetime


class InMemoryProjectStore:
    def __init__(self) -> None:
        self._rows: dict[str, Project] = {}
        self._lock = threading.Lock()

    def create(self, project: Project) -> Project:
        with self._lock:
            self._rows[project.id] = dataclasses.replace(project)
        return dataclasses.replace(project)

    def list_by_partner(self, partner_id: str) -> list[Project]:
        with self._lock:
            rows = [dataclasses.replace(p) for p in self._rows.values() if p.partner_id == partner_id]
        return sorted(rows, key=lambda p: p.created_at)


def _row_to_project(row: dict[str, Any]) -> Project:
    value = row.get("contract_value")
    return Project(
        id=str(row["id"]),
        match_id=str(row["match_id"]),
        client_id=str(row["client_id"]),
        partner_id=str(row["partner_id"]),
        status=str(row.get("status") or "matched"),
        contract_value=int(value) if value is not None else None,
        created_at=_as_datetime(row["created_at"]),
    )


class SqlProjectStore:
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def create(self, project: Project) -> Project:
        try:
            with self._session_factory() as db:
                db.execute(
                    text(
                        """
                        INSERT INTO projects (id, match_id, client_id, partner_id, status, contract_value, created_at)
                        VALUES (:id, :match_id, :client_id, :partner_id, :status, :contract_value, :created_at)
                        """
                    ),
                    {
                        "id": project.id,
                        "match_id": project.match_id,
                        "client_id": project.client_id,
                        "partner_id": project.partner_id,
                        "status": project.status,
                        "contract_value": project.contract_value,
                        "created_at": project.created_at.isoformat(),
                    },
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
        return project

    def list_by_partner(self, partner_id: str) -> list[Project]:
        try:
            with self._session_factory() as db:
                rows = db.execute(
                    text(
                        """
                        SELECT id, match_id, client_id, partner_id, status, contract_value, created_at
                        FROM projects
                        WHERE partner_id = :partner_id
                        ORDER BY created_at
                        """
                    ),
                    {"partner_id": partner_id},
                ).mappings().all()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
        return [_row_to_project(dict(r)) for r in rows]
