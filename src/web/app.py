"""FastAPI application entry point for the remote history service."""

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from web.deps import get_config
from web.remote_store import RemoteHistoryStore
from web.routes import history

logger = structlog.get_logger()


def create_app(db_path: Optional[Path] = None) -> FastAPI:
    """Build the app; ``db_path`` defaults to ``paths.remote_db`` from config."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("web.startup", db=str(app.state.remote_store.db_path))
        yield
        logger.info("web.shutdown")

    app = FastAPI(title="moodsync", version="0.1.0", lifespan=lifespan)
    app.state.remote_store = RemoteHistoryStore(db_path or get_config().paths.remote_db)

    # CORS: allow frontend origin
    frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[frontend_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(history.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
