from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from fastapi.responses import JSONResponse

from agent_usage.core.clients.usage import UsageFetchError
from agent_usage.core.exceptions import (
    AccountUsageFetchFailedError,
    UsageBadRequestError,
    UsageFetchFailedError,
    UsageNotFoundError,
)
from agent_usage.modules.usage.cache import CachedUsage, UnsupportedUsageTypeError, UsageCache
from agent_usage.modules.usage.conditional import decide
from agent_usage.modules.usage.schemas import AccountUsageResponse, UsageLastUpdatedResponse, UsageResponse

router = APIRouter(prefix="/api", tags=["usage"])
rpc_router = APIRouter(prefix="/rpc", tags=["rpc"])


def get_usage_cache(request: Request) -> UsageCache:
    return request.app.state.usage_cache


def _normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    return email.strip() or None


@rpc_router.get("/usage/{usage_type}", response_model=UsageResponse)
async def get_rpc_usage(
    request: Request,
    usage_type: str = Path(...),
    email: str | None = Query(default=None),
    cache: UsageCache = Depends(get_usage_cache),
) -> Response:
    return await _usage_response(request, cache, usage_type.lower(), _normalize_email(email), include_usage=True)


@rpc_router.get("/last-updated/{usage_type}", response_model=UsageLastUpdatedResponse)
async def get_rpc_last_updated(
    request: Request,
    usage_type: str = Path(...),
    email: str | None = Query(default=None),
    cache: UsageCache = Depends(get_usage_cache),
) -> Response:
    return await _usage_response(request, cache, usage_type.lower(), _normalize_email(email), include_usage=False)


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    request: Request,
    usage_type: str = Query(default="codex", alias="type"),
    email: str | None = Query(default=None),
    cache: UsageCache = Depends(get_usage_cache),
) -> Response:
    return await _usage_response(request, cache, usage_type.lower(), _normalize_email(email), include_usage=True)


@router.get("/account/{account_id}/usage", response_model=AccountUsageResponse)
async def get_account_usage(
    account_id: str = Path(...),
    cache: UsageCache = Depends(get_usage_cache),
) -> Response:
    try:
        entry = await cache.load("codex")
    except UsageFetchError as exc:
        raise AccountUsageFetchFailedError(exc.message, account_id=account_id) from exc
    payload = AccountUsageResponse(account_id=account_id, usage=entry.snapshot)
    return JSONResponse(content=payload.to_payload())


async def _usage_response(
    request: Request,
    cache: UsageCache,
    usage_type: str,
    email: str | None,
    *,
    include_usage: bool,
) -> Response:
    entry = await _load(cache, usage_type, email)
    decision = decide(entry, request.headers)
    if decision.not_modified:
        return Response(status_code=304)

    account = entry.snapshot.account
    if email and account is not None and account.email and account.email != email:
        raise UsageNotFoundError(usage_type=usage_type, email=email, headers=decision.headers)

    payload: UsageLastUpdatedResponse
    if include_usage:
        payload = UsageResponse(type=usage_type, email=email, last_updated=entry.last_updated, usage=entry.snapshot)
    else:
        payload = UsageLastUpdatedResponse(type=usage_type, email=email, last_updated=entry.last_updated)
    return JSONResponse(content=payload.to_payload(), headers=decision.headers)


async def _load(cache: UsageCache, usage_type: str, email: str | None) -> CachedUsage:
    try:
        return await cache.load(usage_type)
    except UnsupportedUsageTypeError as exc:
        raise UsageBadRequestError(str(exc), usage_type=usage_type, email=email) from exc
    except UsageFetchError as exc:
        raise UsageFetchFailedError(exc.message, usage_type=usage_type, email=email) from exc
