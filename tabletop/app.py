from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import Settings
from .logging_config import get_logger
from .routers import health as health_router
from .routers import uploads as uploads_router
from .routers import websockets as ws_router
from .state import ServerState

logger = get_logger(__name__)


# Uploaded assets never change once written, so clients may cache them.
class CachedStaticFiles(StaticFiles):
    async def get_response(self, path: str, scope):  # type: ignore[override]
        response = await super().get_response(path, scope)
        response.headers["Cache-Control"] = "public, max-age=3600"
        return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build a FastAPI app with its own room registry and connection hub."""
    settings = settings or Settings.from_env()

    if not settings.dm_password:
        logger.warning("DM_PASSWORD is not set. DM login will not work until you set it in the environment.")

    app = FastAPI(title="Tabletop Session Server")
    app.state.settings = settings
    app.state.tabletop = ServerState.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # -----------------------------
    # Routers
    # -----------------------------

    app.include_router(health_router.router)
    app.include_router(uploads_router.router)
    app.include_router(ws_router.router)

    # -----------------------------
    # Static file mounting
    # -----------------------------

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", CachedStaticFiles(directory=str(upload_dir)), name="uploads")

    logger.info("CORS origin: %s", settings.client_origin)
    return app


__all__ = ["create_app"]
