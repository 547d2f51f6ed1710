"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from allowance_engine import __version__
from allowance_engine.api.errors import error_response
from allowance_engine.api.routes import allowances_router, health_router
from allowance_engine.database import dispose_db, init_db
from allowance_engine.exceptions import AllowanceEngineError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Allowance Engine API",
        description="Intern allowance claims and wallet synchronization",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AllowanceEngineError)
    async def engine_error_handler(request: Request, exc: AllowanceEngineError) -> JSONResponse:
        """Translate typed engine failures."""
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(exc.code, str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response("internal", None)

    app.include_router(health_router)
    app.include_router(allowances_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
