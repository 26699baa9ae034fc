from __future__ import annotations

import asyncio
import logging
import math
import re
from pathlib import Path

import anyio.to_thread

from agent_usage.core.auth.codex_credentials import CodexAuthFallback, read_codex_auth
from agent_usage.core.clients.codex_rpc import ClientInfo, CodexRpcClient, codex_rpc_session
from agent_usage.core.clients.rpc_transport import RpcTransportError
from agent_usage.core.config.settings import get_settings
from agent_usage.core.usage.models import (
    CodexAccount,
    CodexAccountResponse,
    CodexRateLimits,
    CodexRateLimitsResponse,
    CodexRawPayload,
    CodexUsageSnapshot,
    CreditsSnapshot,
)
from agent_usage.core.utils.request_id import get_request_id
from agent_usage.core.utils.time import now_ms

logger = logging.getLogger(__name__)

# Numeric prefix of a balance string such as "12.5 credits".
_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


class UsageFetchError(Exception):
    def __init__(self, message: str, *, stderr: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.stderr = stderr


async def fetch_codex_usage(
    *,
    binary_path: str | None = None,
    timeout_seconds: float | None = None,
    auth_path: Path | None = None,
    client_info: ClientInfo | None = None,
) -> CodexUsageSnapshot:
    settings = get_settings()
    binary = binary_path or settings.codex_binary_path
    timeout = timeout_seconds or settings.codex_rpc_timeout_seconds
    auth_file = auth_path or settings.codex_auth_file
    info = client_info or ClientInfo(name=settings.client_name, version=settings.client_version)

    client: CodexRpcClient | None = None
    try:
        async with codex_rpc_session(
            binary,
            timeout_seconds=timeout,
            stream_limit=settings.codex_rpc_stream_limit_bytes,
        ) as client:
            await client.initialize(info)
            (account_result, raw_account), (rate_limits_result, raw_rate_limits) = await asyncio.gather(
                client.read_account(),
                client.read_rate_limits(),
            )
    except RpcTransportError as exc:
        stderr = client.stderr if client is not None else ""
        message = str(exc)
        if stderr:
            message = f"{message}\nCodex stderr: {stderr}"
        logger.warning(
            "Codex usage fetch failed request_id=%s binary=%s error=%s",
            get_request_id(),
            binary,
            exc,
        )
        raise UsageFetchError(message, stderr=stderr) from exc

    fallback = await anyio.to_thread.run_sync(read_codex_auth, auth_file)
    return CodexUsageSnapshot(
        source="rpc",
        fetched_at=now_ms(),
        account=merge_account(account_result, fallback),
        rate_limits=normalize_rate_limits(rate_limits_result),
        raw=CodexRawPayload(account=raw_account, rate_limits=raw_rate_limits),
    )


def merge_account(result: CodexAccountResponse, fallback: CodexAuthFallback | None) -> CodexAccount | None:
    account = result.account
    email = account.email if account is not None else None
    plan_type = account.plan_type if account is not None else None
    if fallback is not None:
        if email is None:
            email = fallback.email
        if plan_type is None:
            plan_type = fallback.plan_type
    merged = CodexAccount(
        type=account.type if account is not None else None,
        email=email,
        plan_type=plan_type,
        requires_openai_auth=result.requires_openai_auth,
    )
    if all(value is None for value in merged.model_dump().values()):
        return None
    return merged


def normalize_rate_limits(result: CodexRateLimitsResponse) -> CodexRateLimits | None:
    rate_limits = result.rate_limits
    if rate_limits is None:
        return None
    credits = None
    if rate_limits.credits is not None:
        credits = CreditsSnapshot(
            has_credits=rate_limits.credits.has_credits,
            unlimited=rate_limits.credits.unlimited,
            balance=parse_credits_balance(rate_limits.credits.balance),
        )
    return CodexRateLimits(
        primary=rate_limits.primary,
        secondary=rate_limits.secondary,
        credits=credits,
    )


def parse_credits_balance(balance: object) -> float | None:
    if isinstance(balance, bool):
        return None
    if isinstance(balance, (int, float)):
        value = float(balance)
        return value if math.isfinite(value) else None
    if not isinstance(balance, str):
        return None
    normalized = balance.replace(",", "").strip()
    if not normalized:
        return None
    match = _LEADING_NUMBER.match(normalized)
    if match is None:
        return None
    value = float(match.group())
    return value if math.isfinite(value) else None
