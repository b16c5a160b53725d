from __future__ import annotations

import dataclasses
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ConcurrentModification, MatchNotFound, PersistenceUnavailable
from ..models import Match

logger = logging.getLogger(__name__)

STATUS_FIELDS = {"status", "partner_responded", "partner_accepted", "responded_at"}
CLIENT_FIELDS = {"client_liked", "client_saved"}


class MatchStore(Protocol):
    def get(self, match_id: str) -> Match | None: ...

    def find(self, brief_id: str, client_id: str, partner_id: str) -> Match | None: ...

    def insert(self, match: Match) -> Match: ...

    def compare_and_set(self, match_id: str, expected_status: str, changes: dict[str, Any]) -> Match: ...

    def update_client_fields(self, match_id: str, changes: dict[str, Any]) -> Match: ...

    def list_by_client(self, client_id: str) -> list[Match]: ...

    def list_by_partner(self, partner_id: str) -> list[Match]: ...


def _check_fields(changes: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Fields not writable here: {sorted(unknown)}")


class InMemoryMatchStore:
    def __init__(self) -> None:
        self._rows: dict[str, Match] = {}
        self._lock = threading.Lock()

    def get(self, match_id: str) -> Match | None:
        with self._lock:
            row = self._rows.get(match_id)
            return dataclasses.replace(row) if row else None

    def find(self, brief_id: str, client_id: str, partner_id: str) -> Match | None:
        with self._lock:
            for row in self._rows.values():
                if row.brief_id == brief_id and row.client_id == client_id and row.partner_id == partner_id:
                    return dataclasses.replace(row)
        return None

    def insert(self, match: Match) -> Match:
        """Store a new match; an existing row for the same brief/client/partner wins."""
        with self._lock:
            for row in self._rows.values():
                if (row.brief_id, row.client_id, row.partner_id) == (match.brief_id, match.client_id, match.partner_id):
                    return dataclasses.replace(row)
            self._rows[match.id] = dataclasses.replace(match)
        return dataclasses.replace(match)

    def compare_and_set(self, match_id: str, expected_status: str, changes: dict[str, Any]) -> Match:
        _check_fields(changes, STATUS_FIELDS)
        with self._lock:
            row = self._rows.get(match_id)
            if row is None:
                raise MatchNotFound(match_id)
            if row.status != expected_status:
                raise ConcurrentModification(match_id, expected_status, row.status)
            updated = dataclasses.replace(row, **changes)
            self._rows[match_id] = updated
            return dataclasses.replace(updated)

    def update_client_fields(self, match_id: str, changes: dict[str, Any]) -> Match:
        _check_fields(changes, CLIENT_FIELDS)
        with self._lock:
            row = self._rows.get(match_id)
            if row is None:
                raise MatchNotFound(match_id)
            updated = dataclasses.replace(row, **changes)
            self._rows[match_id] = updated
            return dataclasses.replace(updated)

    def list_by_client(self, client_id: str) -> list[Match]:
        with self._lock:
            rows = [dataclasses.replace(r) for r in self._rows.values() if r.client_id == client_id]
        return sorted(rows, key=lambda r: r.created_at)

    def list_by_partner(self, partner_id: str) -> list[Match]:
        with self._lock:
            rows = [dataclasses.replace(r) for r in self._rows.values() if r.partner_id == partner_id]
        return sorted(rows, key=lambda r: r.created_at)


def _as_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def _row_to_match(row: dict[str, Any]) -> Match:
    liked = row.get("client_liked")
    return Match(
        id=str(row["id"]),
        brief_id=str(row["brief_id"]),
        client_id=str(row["client_id"]),
        partner_id=str(row["partner_id"]),
        score=int(row.get("score") or 0),
        score_breakdown=_as_json(row.get("score_breakdown"), {}),
        reasons=_as_json(row.get("reasons"), []),
        status=str(row["status"]),
        client_liked=None if liked is None else bool(liked),
        client_saved=bool(row.get("client_saved")),
        partner_responded=bool(row.get("partner_responded")),
        partner_accepted=bool(row.get("partner_accepted")),
        created_at=_as_datetime(row["created_at"]),
        responded_at=_as_datetime(row.get("responded_at")),
    )


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


_SELECT = """
    SELECT id, brief_id, client_id, partner_id, score, score_breakdown, reasons, status,
           client_liked, client_saved, partner_responded, partner_accepted, created_at, responded_at
    FROM matches
"""


class SqlMatchStore:
    """Match store over the ``matches`` table; status writes are guarded by the expected status."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def _fetch_one(self, db, where: str, params: dict[str, Any]) -> Match | None:
        row = db.execute(text(f"{_SELECT} WHERE {where}"), params).mappings().first()
        return _row_to_match(dict(row)) if row else None

    def _fetch_all(self, where: str, params: dict[str, Any]) -> list[Match]:
        try:
            with self._session_factory() as db:
                rows = db.execute(text(f"{_SELECT} WHERE {where} ORDER BY created_at"), params).mappings().all()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
        return [_row_to_match(dict(r)) for r in rows]

    def get(self, match_id: str) -> Match | None:
        try:
            with self._session_factory() as db:
                return self._fetch_one(db, "id = :id", {"id": match_id})
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc

    def find(self, brief_id: str, client_id: str, partner_id: str) -> Match | None:
        try:
            with self._session_factory() as db:
                return self._fetch_one(
                    db,
                    "brief_id = :brief_id AND client_id = :client_id AND partner_id = :partner_id",
                    {"brief_id": brief_id, "client_id": client_id, "partner_id": partner_id},
                )
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc

    def insert(self, match: Match) -> Match:
        try:
            with self._session_factory() as db:
                db.execute(
                    text(
                        """
                        INSERT INTO matches (
                          id, brief_id, client_id, partner_id, score, score_breakdown, reasons, status,
                          client_liked, client_saved, partner_responded, partner_accepted, created_at, responded_at
                        )
                        VALUES (
                          :id, :brief_id, :client_id, :partner_id, :score, :score_breakdown, :reasons, :status,
                          :client_liked, :client_saved, :partner_responded, :partner_accepted, :created_at, :responded_at
                        )
                        """
                    ),
                    {
                        "id": match.id,
                        "brief_id": match.brief_id,
                        "client_id": match.client_id,
                        "partner_id": match.partner_id,
                        "score": match.score,
                        "score_breakdown": json.dumps(match.score_breakdown),
                        "reasons": json.dumps(match.reasons),
                        "status": match.status,
                        "client_liked": match.client_liked,
                        "client_saved": match.client_saved,
                        "partner_responded": match.partner_responded,
                        "partner_accepted": match.partner_accepted,
                        "created_at": _db_value(match.created_at),
                        "responded_at": _db_value(match.responded_at),
                    },
                )
                db.commit()
        except IntegrityError as exc:
            existing = self.find(match.brief_id, match.client_id, match.partner_id)
            if existing is None:
                raise PersistenceUnavailable(str(exc)) from exc
            logger.info("[MATCH] insert lost to existing match_id=%s", existing.id)
            return existing
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
        return match

    def _update(self, match_id: str, changes: dict[str, Any], expected_status: str | None) -> Match:
        assignments = ", ".join(f"{col} = :{col}" for col in sorted(changes))
        where = "id = :id" if expected_status is None else "id = :id AND status = :expected_status"
        params = {col: _db_value(value) for col, value in changes.items()}
        params["id"] = match_id
        params["expected_status"] = expected_status
        try:
            with self._session_factory() as db:
                result = db.execute(text(f"UPDATE matches SET {assignments} WHERE {where}"), params)
                if result.rowcount == 0:
                    current = self._fetch_one(db, "id = :id", {"id": match_id})
                    db.rollback()
                    if current is None:
                        raise MatchNotFound(match_id)
                    logger.warning(
                        "[MATCH] conditional update lost match_id=%s expected=%s actual=%s",
                        match_id,
                        expected_status,
                        current.status,
                    )
                    raise ConcurrentModification(match_id, str(expected_status), current.status)
                updated = self._fetch_one(db, "id = :id", {"id": match_id})
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
        return updated

    def compare_and_set(self, match_id: str, expected_status: str, changes: dict[str, Any]) -> Match:
        _check_fields(changes, STATUS_FIELDS)
        return self._update(match_id, changes, expected_status)

    def update_client_fields(self, match_id: str, changes: dict[str, Any]) -> Match:
        _check_fields(changes, CLIENT_FIELDS)
        return self._update(match_id, changes, None)

    def list_by_client(self, client_id: str) -> list[Match]:
        return self._fetch_all("client_id = :client_id", {"client_id": client_id})

    def list_by_partner(self, partner_id: str) -> list[Match]:
        return self._fetch_all("partner_id = :partner_id", {"partner_id": partner_id})
