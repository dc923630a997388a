"""Exception handlers mapping domain errors to HTTP responses.

Routers never catch domain exceptions; register these handlers with
register_exception_handlers(app).
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pomodoro.errors import (
    ConcurrentModification,
    EditLockedError,
    InvalidStateTransition,
    NotFoundError,
    SessionValidationError,
)

logger = logging.getLogger(__name__)


def error_response(status_code: int, detail: str, code: str | None = None) -> JSONResponse:
    """Build a standardized error JSON response."""
    content: dict = {"detail": detail}
    if code:
        content["code"] = code
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain exception handlers on the FastAPI app."""

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return error_response(404, str(exc), f"{exc.entity.upper()}_NOT_FOUND")

    @app.exception_handler(EditLockedError)
    async def _edit_locked(request: Request, exc: EditLockedError) -> JSONResponse:
        return error_response(409, str(exc), "INVALID_STATE_TRANSITION")

    @app.exception_handler(InvalidStateTransition)
    async def _invalid_transition(
        request: Request, exc: InvalidStateTransition
    ) -> JSONResponse:
        return error_response(409, str(exc), "INVALID_STATE_TRANSITION")

    @app.exception_handler(SessionValidationError)
    async def _validation(request: Request, exc: SessionValidationError) -> JSONResponse:
        return error_response(422, str(exc), "VALIDATION_ERROR")

    @app.exception_handler(ConcurrentModification)
    async def _concurrent(request: Request, exc: ConcurrentModification) -> JSONResponse:
        logger.info(
            "Concurrent session modification rejected",
            extra={"session_id": str(exc.session_id), "path": request.url.path},
        )
        return error_response(409, str(exc), "CONCURRENT_MODIFICATION")
