from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RpcModel(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class SnapshotModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# --- account/read and account/rateLimits/read results ---


class CodexAccountPayload(RpcModel):
    type: str | None = None
    email: str | None = None
    plan_type: str | None = None


class CodexAccountResponse(RpcModel):
    account: CodexAccountPayload | None = None
    requires_openai_auth: bool | None = None


class RateLimitWindow(SnapshotModel):
    used_percent: float | None = None
    window_duration_mins: int | None = None
    resets_at: int | None = None


class CodexCreditsPayload(RpcModel):
    has_credits: bool | None = None
    unlimited: bool | None = None
    balance: float | str | None = None


class CodexRateLimitsPayload(RpcModel):
    primary: RateLimitWindow | None = None
    secondary: RateLimitWindow | None = None
    credits: CodexCreditsPayload | None = None


class CodexRateLimitsResponse(RpcModel):
    rate_limits: CodexRateLimitsPayload | None = None


# --- fetched snapshot ---


class CodexAccount(SnapshotModel):
    type: str | None = None
    email: str | None = None
    plan_type: str | None = None
    requires_openai_auth: bool | None = None


class CreditsSnapshot(SnapshotModel):
    has_credits: bool | None = None
    unlimited: bool | None = None
    balance: float | None = None


class CodexRateLimits(SnapshotModel):
    primary: RateLimitWindow | None = None
    secondary: RateLimitWindow | None = None
    credits: CreditsSnapshot | None = None


class CodexRawPayload(SnapshotModel):
    account: Any = None
    rate_limits: Any = None


class CodexUsageSnapshot(SnapshotModel):
    source: Literal["rpc"] = "rpc"
    fetched_at: int
    account: CodexAccount | None = None
    rate_limits: CodexRateLimits | None = None
    raw: CodexRawPayload | None = None


# --- provider-neutral snapshot served over HTTP ---


class UsageAccount(SnapshotModel):
    email: str | None = None
    plan_type: str | None = None


class UsageLimits(SnapshotModel):
    primary: RateLimitWindow | None = None
    secondary: RateLimitWindow | None = None


class AgentUsageSnapshot(SnapshotModel):
    provider: Literal["codex"] = "codex"
    source: Literal["rpc"] = "rpc"
    fetched_at: int
    account: UsageAccount | None = None
    limits: UsageLimits | None = None
    credits: CreditsSnapshot | None = None
    raw: CodexRawPayload | None = None
