"""FastAPI surface: admin job listing, public sources/listings and opt-out submission."""

from __future__ import annotations

import time

from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError
from ..logging_conf import configure_logging
from ..runtime import Runtime
from .auth import Authorizer, StaticTokenAuthorizer

MAX_JOB_LIMIT = 200
INTERNAL_ERROR_DETAIL = "internal server error"


class OptOutSubmission(BaseModel):
    listing_id: str = Field(min_length=1)
    email: str | None = None
    reason: str | None = Field(default=None, max_length=2000)


def create_app(runtime: Runtime, authorizer: Authorizer | None = None) -> FastAPI:
    """Build the HTTP app around an already wired runtime."""

    logger = configure_logging().bind(component="http")
    authorizer = authorizer or StaticTokenAuthorizer(runtime.global_config.admin_tokens)
    default_limit = min(runtime.global_config.job_list_limit, MAX_JOB_LIMIT)

    app = FastAPI(title="estate-ingest")
    app.state.runtime = runtime
    app.state.authorizer = authorizer

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        started_at = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started_at) * 1000.0, 2),
        )
        return response

    # ------------------------------------------------------------------
    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(AuthorizationError)
    async def _unauthorized(_: Request, exc: AuthorizationError) -> JSONResponse:
        if exc.authenticated:
            return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "forbidden"})
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "authentication required"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(InvalidStateError)
    @app.exception_handler(ConflictError)
    async def _conflict(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "http_unhandled_error",
            method=request.method,
            path=request.url.path,
            error=repr(exc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": INTERNAL_ERROR_DETAIL},
        )

    # ------------------------------------------------------------------
    @app.get("/admin/jobs")
    def list_jobs(
        request: Request,
        limit: int | None = Query(default=None, ge=1),
        source: str | None = None,
    ) -> list[dict]:
        authorizer.require_admin(request.headers)
        effective = min(limit or default_limit, MAX_JOB_LIMIT)
        jobs = runtime.orchestrator.recent_jobs(limit=effective, source_name=source)
        return [job.as_dict() for job in jobs]

    @app.get("/sources")
    def list_sources() -> list[dict]:
        return [
            {
                "name": stats["name"],
                "source_type": stats["source_type"],
                "total_listings": stats["total_listings"],
                "last_fetch": stats["last_fetch"],
            }
            for stats in runtime.registry.source_stats()
            if stats["is_active"]
        ]

    @app.get("/listings/{listing_id}")
    def get_listing(listing_id: str) -> dict:
        return runtime.listings.get_active(listing_id).as_public_dict()

    @app.post("/optout", status_code=status.HTTP_202_ACCEPTED)
    def submit_optout(payload: OptOutSubmission) -> dict:
        request = runtime.optouts.submit(payload.listing_id, email=payload.email, reason=payload.reason)
        return {"id": request.id, "status": request.status.value}

    return app


__all__ = ["INTERNAL_ERROR_DETAIL", "MAX_JOB_LIMIT", "OptOutSubmission", "create_app"]
