"""HTTP layer.

Routes:
    GET  /health           Liveness, unauthenticated.
    POST /{slug}           Trigger a BuildRun (bearer token required).
                           ``?wait=false`` starts it in the background.

Response mapping for a finished run:
    200 succeeded, 207 partial_failure, 502 failed or aborted.
Trigger rejections:
    202 accepted (wait=false), 401 bad credentials, 404 unknown project,
    409 a build for the project is already running.

Example:
    >>> app = create_app(orchestrator, tokens=["s3cret"])
    >>> uvicorn.run(app, host="0.0.0.0", port=5000)
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from build_hook import __version__
from build_hook.auth import BearerAuth
from build_hook.errors import AlreadyBuildingError, BuildHookError, UnknownProjectError
from build_hook.orchestrator import BuildOrchestrator
from build_hook.schemas.run import RunStatus

logger = structlog.get_logger(__name__)

STATUS_CODES: dict[RunStatus, int] = {
    RunStatus.SUCCEEDED: status.HTTP_200_OK,
    RunStatus.PARTIAL_FAILURE: status.HTTP_207_MULTI_STATUS,
    RunStatus.FAILED: status.HTTP_502_BAD_GATEWAY,
    RunStatus.ABORTED: status.HTTP_502_BAD_GATEWAY,
}
"""HTTP status per overall run status."""


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message})


def _error_status(exc: BuildHookError) -> int:
    if isinstance(exc, UnknownProjectError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, AlreadyBuildingError):
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(orchestrator: BuildOrchestrator, tokens: Iterable[str]) -> FastAPI:
    """Create the FastAPI application.

    Args:
        orchestrator: Orchestrator serving every trigger.
        tokens: Accepted bearer tokens (at least one).

    Raises:
        ValueError: If ``tokens`` is empty.
    """
    auth = BearerAuth(tokens)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("api_started", projects=orchestrator.registry.slugs)
        yield
        await orchestrator.wait_background()
        logger.info("api_stopped")

    app = FastAPI(title="build-hook", version=__version__, lifespan=lifespan)
    app.state.orchestrator = orchestrator

    @app.exception_handler(BuildHookError)
    async def build_hook_error_handler(request: Request, exc: BuildHookError) -> JSONResponse:
        return error_response(_error_status(exc), exc.reason, str(exc))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict) and "code" in exc.detail:
            content: dict[str, Any] = dict(exc.detail)
        else:
            content = {"code": "http_error", "message": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/{slug}", dependencies=[Depends(auth)])
    async def trigger(
        slug: str,
        wait: bool = Query(default=True, description="Wait for the run to finish"),
    ) -> JSONResponse:
        log = logger.bind(slug=slug)
        if not wait:
            orchestrator.start(slug)
            log.info("trigger_accepted")
            return JSONResponse(
                status_code=status.HTTP_202_ACCEPTED,
                content={"status": "accepted", "project_slug": slug},
            )

        log.info("trigger_received")
        result = await orchestrator.trigger(slug)
        return JSONResponse(
            status_code=STATUS_CODES[result.status],
            content=result.model_dump(mode="json"),
        )

    return app


__all__ = ["STATUS_CODES", "create_app"]
