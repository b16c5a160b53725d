from fastapi import FastAPI

from .analytics import router as analytics_router
from .gamification import router as gamification_router
from .match import router as match_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(match_router, tags=["matches"])
    app.include_router(gamification_router, tags=["gamification"])
    app.include_router(analytics_router, tags=["analytics"])


__all__ = ["include_modular_routers"]
