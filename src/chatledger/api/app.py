"""
chatledger FastAPI Application.

Serves the sync wire surface (version, delta, snapshot, event, subscribe)
plus read access to sessions, checkpoints and search.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chatledger import __version__
from chatledger.api.routes import search, sessions, sync
from chatledger.db.store import Store
from chatledger.exceptions import (
    ChatLedgerError,
    IdentityConflictError,
    IntegrityViolation,
    NotFoundError,
    StaleCursorError,
    TransactionError,
)
from chatledger.logging_config import setup_logging

logger = logging.getLogger(__name__)


def status_for(error: ChatLedgerError) -> int:
    """HTTP status for a domain error."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (IntegrityViolation, IdentityConflictError)):
        return 409
    if isinstance(error, StaleCursorError):
        return 410
    if isinstance(error, TransactionError) and error.retryable:
        return 503
    if isinstance(error, TransactionError):
        return 500
    return 400


async def chatledger_error_handler(
    request: Request, exc: ChatLedgerError
) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(store: Optional[Store] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        store: Store to serve; when omitted, the lifespan opens the
               configured database and creates one store for the process
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(context="api")

        if getattr(app.state, "store", None) is None:
            from chatledger.db.connection import get_engine, init_db

            engine = get_engine()
            init_db(engine)
            app.state.store = Store(engine)
            logger.info(f"Store opened at {engine.url!r}")

        logger.info(
            f"Application startup complete "
            f"(sync version {app.state.store.sync.current_version()})"
        )

        yield

        logger.info("Application shutdown initiated...")
        app.state.store.sync.subscribers.close_all()
        logger.info("Application shutdown complete")

    app = FastAPI(
        lifespan=lifespan,
        title="chatledger API",
        description="Canonical chat session store with versioned sync",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.store = store
    app.add_exception_handler(ChatLedgerError, chatledger_error_handler)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint - API health check."""
        return {
            "status": "ok",
            "message": "chatledger API is running",
            "version": __version__,
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        from chatledger.db.connection import check_connection

        current = app.state.store
        db_status = (
            "healthy"
            if current is not None and check_connection(current.engine)
            else "unhealthy"
        )
        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "database": db_status,
        }

    app.include_router(sync.router, prefix="/sync", tags=["sync"])
    app.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
    app.include_router(search.router, prefix="/search", tags=["search"])
    return app


app = create_app()
