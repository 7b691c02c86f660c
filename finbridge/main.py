from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finbridge.api.dependencies import close_plaid_client
from finbridge.api.router import router as api_router
from finbridge.core.config import get_settings
from finbridge.core.errors import register_exception_handlers
from finbridge.core.logging import configure_logging, request_id_middleware

logger = structlog.get_logger()

settings = get_settings()
configure_logging(settings.ENV, settings.DEBUG)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info(
        "app.starting",
        env=settings.ENV,
        plaid_env=settings.PLAID_ENV,
        products=settings.products,
        country_codes=settings.country_codes,
    )
    if not (settings.PLAID_CLIENT_ID and settings.PLAID_SECRET):
        logger.warning("app.plaid_credentials_missing")

    yield

    logger.info("app.stopping")
    await close_plaid_client()
    logger.info("app.stopped")


app = FastAPI(title="finbridge", version="0.1.0", lifespan=lifespan)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)
app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}


@app.get("/healthz")
def healthz():
    return {"status": "healthy", "env": settings.ENV, "plaid_env": settings.PLAID_ENV}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.APP_PORT)
