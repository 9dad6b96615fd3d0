"""Storefront Checkout API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map StorefrontError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - One StorefrontSession per process, built in the lifespan and stored on app.state

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Session lives on app.state rather than a module global, so tests can
      install their own wired session
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.error_handlers import register_error_handlers
from storefront.api.routes import cart, gateway, health, purchases, session
from storefront.config import get_settings
from storefront.infrastructure.observability import setup_logging
from storefront.services.storefront_session import StorefrontSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    app.state.storefront = StorefrontSession.from_settings(settings)
    logger.info("Storefront API started")
    yield
    logger.info("Storefront API shutting down")
    await app.state.storefront.aclose()


app = FastAPI(
    title="Storefront Checkout API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(session.router)
app.include_router(cart.router)
app.include_router(purchases.router)
app.include_router(gateway.router)

register_error_handlers(app)
