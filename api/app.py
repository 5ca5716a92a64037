from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_config, get_reader, get_session
from api.routes.auth import router as auth_router
from api.routes.catalog import router as catalog_router
from api.routes.reading import router as reading_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Restore the reader's auth session on startup and drop its listeners on shutdown."""
    reader = await get_reader()
    logger.info("Reader ready: %d sutras, identity=%s", len(reader.catalog.texts), reader.store.namespace)
    yield
    get_session().close()


def create_app() -> FastAPI:
    config = get_config()
    app = FastAPI(
        title="Sutra Reader API",
        version="0.1.0",
        description="Reading progress, annotations and captcha-gated sign-in for the sutra reading page",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    for router in (auth_router, catalog_router, reading_router):
        app.include_router(router)

    @app.get("/healthz")
    def health() -> dict:
        return {"status": "ok", "locale": config.locale}

    return app


app = create_app()
