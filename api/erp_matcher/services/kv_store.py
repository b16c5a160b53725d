from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceUnavailable


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)


class SqlKeyValueStore:
    """Snapshots in ``gamification_snapshot``; last write wins."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> bytes | None:
        try:
            with self._session_factory() as db:
                row = db.execute(
                    text("SELECT payload FROM gamification_snapshot WHERE storage_key = :key"),
                    {"key": key},
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
        if not row or row["payload"] is None:
            return None
        payload = row["payload"]
        return payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)

    def set(self, key: str, value: bytes) -> None:
        try:
            with self._session_factory() as db:
                db.execute(
                    text(
                        """
                        INSERT INTO gamification_snapshot (storage_key, payload, updated_at)
                        VALUES (:key, :payload, :updated_at)
                        ON CONFLICT (storage_key)
                        DO UPDATE SET payload = EXCLUDED.payload, updated_at = EXCLUDED.updated_at
                        """
                    ),
                    {
                        "key": key,
                        "payload": value.decode("utf-8"),
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc
