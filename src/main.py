"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.health import SERVICE_NAME
from src.api.health import router as health_router
from src.api.v1.router import router as v1_router
from src.core.config import Settings, get_settings
from src.core.database import close_database, init_database
from src.core.exceptions import setup_exception_handlers
from src.core.logging import setup_logging, setup_request_logging

logger = logging.getLogger(SERVICE_NAME)

OPENAPI_TAGS = [
    {"name": "actors", "description": "Patients, doctors, responders and administrators"},
    {"name": "verification", "description": "Doctor credential submission and review"},
    {"name": "access-requests", "description": "Doctor requests and patient consent"},
    {"name": "records", "description": "Medical records, grants and emergency reads"},
    {"name": "audit", "description": "Append-only audit trail"},
    {"name": "usage", "description": "Advisory analysis allowance"},
    {"name": "admin", "description": "Administrator dashboard"},
    {"name": "health", "description": "Liveness and readiness"},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:  # noqa: ARG001
    """Open the database pool on startup and close it on shutdown."""
    settings = get_settings()
    init_database(settings)
    logger.info(
        "Application started",
        extra={
            "env": settings.app_env,
            "consent_default_duration_days": settings.consent_default_duration_days,
            "emergency_token_expire_hours": settings.emergency_token_expire_hours,
        },
    )
    yield
    logger.info("Application shutting down")
    await close_database()


def _add_cors(app: FastAPI, settings: Settings) -> None:
    # Browsers reject credentialed requests against a wildcard origin
    origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Emergency-Token"],
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="MedAccess API",
        description=(
            "Consent and access control for patient medical records: doctor verification, "
            "access requests, record permissions, emergency access and an audit trail"
        ),
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=lifespan,
    )

    # Request logging wraps CORS so preflight requests are logged too
    setup_request_logging(app)
    _add_cors(app, settings)
    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(v1_router)
    return app


app = create_app()


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
        log_level=settings.app_log_level.lower(),
    )


if __name__ == "__main__":
    run()
