"""
FastAPI application entry point for the memories backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from memories.config import get_settings
from memories.dependencies import get_places_store
from memories.errors import register_error_handlers
from memories.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The backup object decides whether any places exist.
    places = app.dependency_overrides.get(get_places_store, get_places_store)()
    restored = places.restore()
    logger.info("Serving with %d places", restored)
    yield


def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    app = FastAPI(title="Memories Backend", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("memories.app:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
