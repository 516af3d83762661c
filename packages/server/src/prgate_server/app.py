"""FastAPI application: GitHub webhook ingestion plus a small review API.

The API process only admits reviews; workers started with ``prgate worker``
execute them against the same database file.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from prgate_core.errors import (
    AlreadyInProgress,
    CredentialInvalid,
    DiffFetchError,
    NotRetryable,
    PullRequestNotFound,
    RepositoryNotFound,
)
from prgate_core.services import Services, build_services
from prgate_server import webhook
from prgate_server.routes import health, reviews

logger = logging.getLogger(__name__)


async def _already_in_progress(request: Request, exc: AlreadyInProgress):
    return JSONResponse(status_code=409, content={"detail": str(exc), "review_id": exc.review_id})


async def _not_retryable(request: Request, exc: NotRetryable):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _not_found(request: Request, exc: Exception):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _credential_invalid(request: Request, exc: CredentialInvalid):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def _upstream_error(request: Request, exc: DiffFetchError):
    logger.warning("GitHub request failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


def create_app(config: dict, services: Optional[Services] = None) -> FastAPI:
    """Build the app. Pass ``services`` to reuse an existing pipeline (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or build_services(config, with_analyzer=False)
        logger.info("prgate API ready (store: %s)", config.get("store_path"))
        yield
        if owned:
            app.state.services.close()

    app = FastAPI(
        title="prgate",
        description="Queues AI code reviews for GitHub pull requests.",
        lifespan=lifespan,
    )
    app.state.config = config
    if services is not None:
        app.state.services = services

    app.include_router(health.router)
    app.include_router(webhook.router)
    app.include_router(reviews.router)

    app.add_exception_handler(AlreadyInProgress, _already_in_progress)
    app.add_exception_handler(NotRetryable, _not_retryable)
    app.add_exception_handler(RepositoryNotFound, _not_found)
    app.add_exception_handler(PullRequestNotFound, _not_found)
    app.add_exception_handler(CredentialInvalid, _credential_invalid)
    app.add_exception_handler(DiffFetchError, _upstream_error)
    return app
