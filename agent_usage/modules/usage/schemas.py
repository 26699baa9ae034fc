from __future__ import annotations

from typing import Literal

from agent_usage.core.usage.models import AgentUsageSnapshot
from agent_usage.modules.shared.schemas import ApiModel


class UsageLastUpdatedResponse(ApiModel):
    ok: Literal[True] = True
    type: str
    email: str | None = None
    last_updated: int


class UsageResponse(UsageLastUpdatedResponse):
    usage: AgentUsageSnapshot


class UsageErrorResponse(ApiModel):
    ok: Literal[False] = False
    type: str
    email: str | None = None
    error: str


class AccountUsageResponse(ApiModel):
    ok: Literal[True] = True
    account_id: str
    usage: AgentUsageSnapshot


class AccountUsageErrorResponse(ApiModel):
    ok: Literal[False] = False
    account_id: str
    error: str
