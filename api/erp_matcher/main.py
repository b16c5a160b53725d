import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import DEV_MODE, MIGRATIONS_DIR
from .database import SessionLocal
from .errors import ConcurrentModification, InvalidTransition, MatchNotFound, PersistenceUnavailable
from .routes import include_modular_routers

logger = logging.getLogger(__name__)

app = FastAPI(title="ERP Matcher API")
include_modular_routers(app)

ALLOWED_ORIGINS = [
    "http://localhost:5000",
    "http://127.0.0.1:5000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MatchNotFound)
def _match_not_found(_: Request, exc: MatchNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidTransition)
def _invalid_transition(_: Request, exc: InvalidTransition) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "status": exc.current, "action": exc.action},
    )


@app.exception_handler(ConcurrentModification)
def _concurrent_modification(_: Request, exc: ConcurrentModification) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "conflict": True, "status": exc.actual},
    )


@app.exception_handler(PersistenceUnavailable)
def _persistence_unavailable(_: Request, exc: PersistenceUnavailable) -> JSONResponse:
    logger.error("[STORAGE] unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable, please retry"})


def split_sql_statements(sql: str) -> list[str]:
    return [stmt.strip() for stmt in sql.split(";") if stmt.strip()]


def run_migrations(session_factory=SessionLocal, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    files = sorted(f.name for f in migrations_dir.iterdir() if f.is_file() and f.suffix == ".sql")
    with session_factory() as db:
        for fname in files:
            for statement in split_sql_statements((migrations_dir / fname).read_text(encoding="utf-8")):
                db.execute(text(statement))
        db.commit()
    if DEV_MODE:
        logger.warning("[DB][DEV] applied migrations: %s", files)
    return files


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    run_migrations()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
