"""FastAPI application entry point for the ProntoPlus API."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prontoplus.app.config import get_settings
from prontoplus.app.errors import install_error_handlers
from prontoplus.infra.database import init_db
from prontoplus.services.webhook_inbox import inbox_retry_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database, start the inbox retry sweep."""
    await init_db()

    settings = get_settings()
    if not settings.telnyx_webhook_secret:
        logger.warning("TELNYX_WEBHOOK_SECRET not set: webhook signatures are not verified")

    retry_task = asyncio.create_task(inbox_retry_loop())
    yield
    retry_task.cancel()
    with suppress(asyncio.CancelledError):
        await retry_task


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="ProntoPlus API",
    lifespan=lifespan,
    debug=settings.debug,
)

install_error_handlers(app)

# CORS middleware; debug mode allows any origin
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from prontoplus.app.routes.calls import router as calls_router
from prontoplus.app.routes.health import router as health_router
from prontoplus.app.routes.telnyx_webhook import router as telnyx_webhook_router

app.include_router(telnyx_webhook_router)
app.include_router(calls_router)
app.include_router(health_router)


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "prontoplus.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
