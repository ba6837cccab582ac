"""FastAPI application factory.

API layer boundary:
- Resolves the caller, validates inputs, calls the experiment service
- Maps domain errors to HTTP status codes
- Forbidden: statistics, direct SQL
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Generator

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from abfunnel.config import get_settings
from abfunnel.core.errors import ExperimentError
from abfunnel.db.repo import DbSession
from abfunnel.db.session import get_session, init_db
from abfunnel.providers.anthropic_provider import AnthropicSuggestionProvider
from abfunnel.providers.base import SuggestionProviderBase

logger = logging.getLogger(__name__)

# Domain error code -> HTTP status
ERROR_STATUS = {
    "VALIDATION": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "SUGGESTION": 502,
}


def get_db_session(request: Request) -> Generator[DbSession, None, None]:
    """Dependency to get database session.

    Yields:
        Database session that is automatically closed after request.
    """
    session = get_session(request.app.state.db_path)
    try:
        yield session
    finally:
        session.close()


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Dependency resolving the caller.

    Authentication happens upstream; the gateway forwards the user id.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def get_suggestion_provider() -> SuggestionProviderBase:
    """Dependency providing the copy-suggestion provider."""
    settings = get_settings()
    return AnthropicSuggestionProvider(
        model=settings.suggest_model,
        max_tokens=settings.suggest_max_tokens,
    )


async def _experiment_error_handler(request: Request, exc: ExperimentError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.code, 500),
        content={"error": exc.code, "message": exc.message},
    )


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=ERROR_STATUS["VALIDATION"],
        content={"error": "VALIDATION", "message": "; ".join(problems)},
    )


async def _database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Database error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return JSONResponse(
        status_code=500,
        content={"error": "DATABASE", "message": "Database operation failed"},
    )


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        db_path: Optional path to database file. Defaults to ABFUNNEL_DB_PATH.

    Returns:
        Configured FastAPI application.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_db(app.state.db_path)
        yield

    app = FastAPI(
        title="abfunnel API",
        description="A/B experiments for funnel pages",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.db_path = db_path or settings.db_path

    # Add CORS middleware for UI access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ExperimentError, _experiment_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, _database_error_handler)

    # Include routes
    from abfunnel.api.routes import checks, experiments

    app.include_router(experiments.router, prefix="/api")
    app.include_router(checks.router, prefix="/api")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


# Default app instance
app = create_app()
