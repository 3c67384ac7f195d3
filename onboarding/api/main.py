"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures middleware, exception handlers, and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from psycopg_pool import AsyncConnectionPool

from onboarding import __version__
from onboarding.adapters.mail.console import ConsoleEmailSender
from onboarding.adapters.mail.sendgrid import SendGridEmailSender
from onboarding.adapters.repository.postgres import run_migrations
from onboarding.api.errors import register_exception_handlers
from onboarding.api.routes import router
from onboarding.config.settings import Settings, get_settings
from onboarding.domain.ports import EmailSender

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "onboarding",
        "description": "Client signup, email verification, login and password management",
    },
]


def build_email_sender(settings: Settings, http_client: httpx.AsyncClient) -> EmailSender:
    """Select the mail adapter configured for this process."""
    if settings.email_backend == "sendgrid":
        return SendGridEmailSender(
            http_client,
            api_key=settings.sendgrid_api_key.get_secret_value(),
            sender=settings.mail_from,
            verify_url=f"{settings.backend_url}/verify",
            api_url=settings.sendgrid_api_url,
            ttl_seconds=settings.code_ttl_seconds,
        )
    return ConsoleEmailSender()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool and HTTP client on startup
    - Runs migrations on startup
    - Closes both on shutdown
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = AsyncConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=False,
    )
    await pool.open()

    # Run migrations
    logger.info("Running database migrations...")
    await run_migrations(pool)

    http_client = httpx.AsyncClient(timeout=settings.mail_timeout_seconds)

    # Store shared resources in app state for dependency injection
    app.state.pool = pool
    app.state.email_sender = build_email_sender(settings, http_client)

    logger.info("Application startup complete (mail backend: %s)", settings.email_backend)

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await http_client.aclose()
    await pool.close()
    logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(
        title="onboarding",
        description="Account onboarding API - stage a signup, verify the email, then commit it",
        version=__version__,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)
    application.include_router(router)
    return application


app = create_app()


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Serves as the liveness target for external monitors.
    """
    pool = request.app.state.pool
    async with pool.connection() as conn:
        await conn.execute("SELECT 1")

    return {"status": "healthy"}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("onboarding.api.main:app", host="0.0.0.0", port=settings.port)
