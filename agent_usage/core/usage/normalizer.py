from __future__ import annotations

from agent_usage.core.usage.models import (
    AgentUsageSnapshot,
    CodexUsageSnapshot,
    UsageAccount,
    UsageLimits,
)


def normalize_codex_usage(snapshot: CodexUsageSnapshot) -> AgentUsageSnapshot:
    account = None
    if snapshot.account is not None:
        account = UsageAccount(email=snapshot.account.email, plan_type=snapshot.account.plan_type)
    limits = None
    credits = None
    if snapshot.rate_limits is not None:
        limits = UsageLimits(primary=snapshot.rate_limits.primary, secondary=snapshot.rate_limits.secondary)
        credits = snapshot.rate_limits.credits
    return AgentUsageSnapshot(
        provider="codex",
        source=snapshot.source,
        fetched_at=snapshot.fetched_at,
        account=account,
        limits=limits,
        credits=credits,
        raw=snapshot.raw,
    )
