from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent_usage.core.exceptions import (
    AccountUsageFetchFailedError,
    AppError,
    UsageBadRequestError,
    UsageFetchFailedError,
    UsageNotFoundError,
    UsageRequestError,
)
from agent_usage.modules.usage.schemas import AccountUsageErrorResponse, UsageErrorResponse

logger = logging.getLogger(__name__)

_USAGE_EXCEPTION_TYPES: tuple[type[UsageRequestError], ...] = (
    UsageBadRequestError,
    UsageNotFoundError,
    UsageFetchFailedError,
)


def _error_format(request: Request) -> str | None:
    path = request.url.path
    if path.startswith("/rpc/") or path.startswith("/api/"):
        return "usage"
    return None


def add_exception_handlers(app: FastAPI) -> None:
    # --- Domain exceptions: usage envelope ---

    for exc_cls in _USAGE_EXCEPTION_TYPES:

        @app.exception_handler(exc_cls)
        async def _usage_domain_handler(request: Request, exc: UsageRequestError) -> JSONResponse:
            payload = UsageErrorResponse(type=exc.usage_type, email=exc.email, error=exc.message)
            return JSONResponse(
                status_code=exc.status_code,
                content=payload.to_payload(),
                headers=exc.headers,
            )

    @app.exception_handler(AccountUsageFetchFailedError)
    async def _account_usage_handler(request: Request, exc: AccountUsageFetchFailedError) -> JSONResponse:
        payload = AccountUsageErrorResponse(account_id=exc.account_id, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=payload.to_payload())

    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})

    # --- Framework exceptions ---

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> Response:
        if _error_format(request) == "usage":
            detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
            return JSONResponse(
                status_code=exc.status_code,
                content={"ok": False, "error": detail},
                headers=exc.headers,
            )
        return await http_exception_handler(request, exc)

    # --- Catch-all for unhandled exceptions ---

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        if _error_format(request) == "usage":
            return JSONResponse(status_code=500, content={"ok": False, "error": "Unexpected error"})
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
