"""FastAPI server for SAP FI -> Monday.com sync.

    uvicorn api.server:app --port 8000

Environment:
- SYNC_CORS_ORIGINS: comma-separated allowed origins (default "*")
- SYNC_API_HOST / SYNC_API_PORT: bind address when run as a module
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, sync
from core import __version__
from core.observability import configure_logging, get_logger
from sync.config import load_environment


logger = get_logger(__name__)


def _cors_origins() -> List[str]:
    raw = os.getenv("SYNC_CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    load_environment()
    logger.info(
        "Board sync API started",
        extra_fields={"version": __version__, "config_path": os.getenv("SYNC_CONFIG_PATH", "<bundled>")},
    )
    yield
    logger.info("Board sync API stopped")


def create_app() -> FastAPI:
    """Build the app: health probes at the root, sync endpoints under /sync."""
    app = FastAPI(
        title="Board Sync API",
        description="Reconciles SAP FI project/WBS financial records onto Monday.com board items",
        version=__version__,
        lifespan=lifespan,
    )

    origins = _cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(sync.router, prefix="/sync", tags=["Sync"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(
        "api.server:app",
        host=os.getenv("SYNC_API_HOST", "127.0.0.1"),
        port=int(os.getenv("SYNC_API_PORT", "8000")),
    )
