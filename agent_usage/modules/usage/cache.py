from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from functools import partial
from typing import TypeAlias

from agent_usage.core.clients.usage import fetch_codex_usage
from agent_usage.core.config.settings import DEFAULT_CACHE_TTL_MS, get_settings
from agent_usage.core.usage.models import AgentUsageSnapshot
from agent_usage.core.usage.normalizer import normalize_codex_usage

logger = logging.getLogger(__name__)

UsageFetcher: TypeAlias = Callable[[], Awaitable[AgentUsageSnapshot]]


class UnsupportedUsageTypeError(ValueError):
    def __init__(self, usage_type: str) -> None:
        super().__init__(f"Unsupported usage type: {usage_type}")
        self.usage_type = usage_type


@dataclass(frozen=True, slots=True)
class CachedUsage:
    snapshot: AgentUsageSnapshot
    etag: str
    last_updated: int


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def build_etag(usage_type: str, timestamp: int) -> str:
    return f'W/"{usage_type}-{timestamp}"'


class UsageCache:
    """Per-type usage snapshots with a freshness window and in-flight dedup.

    Within the TTL a cached entry is served without touching upstream. Age is
    measured on a monotonic clock from when the entry was stored, so wall-clock
    steps do not stretch the window. Once stale, concurrent loads for the same
    type share a single fetch task; the task is deregistered when it finishes,
    and failures are never cached.
    """

    def __init__(
        self,
        *,
        fetchers: Mapping[str, UsageFetcher],
        ttl_ms: float = DEFAULT_CACHE_TTL_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        if not math.isfinite(ttl_ms) or ttl_ms < 0:
            ttl_ms = DEFAULT_CACHE_TTL_MS
        self._ttl_ms = ttl_ms
        self._fetchers = dict(fetchers)
        self._clock = clock
        self._entries: dict[str, CachedUsage] = {}
        self._stored_at: dict[str, float] = {}
        self._in_flight: dict[str, asyncio.Task[CachedUsage]] = {}

    @property
    def ttl_ms(self) -> float:
        return self._ttl_ms

    @property
    def supported_types(self) -> frozenset[str]:
        return frozenset(self._fetchers)

    def is_supported(self, usage_type: str) -> bool:
        return usage_type in self._fetchers

    def peek(self, usage_type: str) -> CachedUsage | None:
        return self._entries.get(usage_type)

    def in_flight(self, usage_type: str) -> bool:
        return usage_type in self._in_flight

    async def load(self, usage_type: str) -> CachedUsage:
        if usage_type not in self._fetchers:
            raise UnsupportedUsageTypeError(usage_type)

        cached = self._entries.get(usage_type)
        if cached is not None and self._clock() - self._stored_at[usage_type] < self._ttl_ms:
            return cached

        task = self._in_flight.get(usage_type)
        if task is None:
            task = asyncio.create_task(self._refresh(usage_type))
            self._in_flight[usage_type] = task
            task.add_done_callback(partial(self._on_refresh_done, usage_type))
        return await asyncio.shield(task)

    async def aclose(self) -> None:
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _refresh(self, usage_type: str) -> CachedUsage:
        snapshot = await self._fetchers[usage_type]()
        entry = CachedUsage(
            snapshot=snapshot,
            etag=build_etag(usage_type, snapshot.fetched_at),
            last_updated=snapshot.fetched_at,
        )
        self._entries[usage_type] = entry
        self._stored_at[usage_type] = self._clock()
        logger.debug("Usage cache refreshed type=%s etag=%s", usage_type, entry.etag)
        return entry

    def _on_refresh_done(self, usage_type: str, task: asyncio.Task[CachedUsage]) -> None:
        if self._in_flight.get(usage_type) is task:
            del self._in_flight[usage_type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Usage refresh failed type=%s error=%s", usage_type, exc)


async def fetch_normalized_codex_usage() -> AgentUsageSnapshot:
    return normalize_codex_usage(await fetch_codex_usage())


def build_usage_cache() -> UsageCache:
    return UsageCache(
        fetchers={"codex": fetch_normalized_codex_usage},
        ttl_ms=get_settings().rpc_cache_ttl_ms,
    )
