from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from agent_usage.core.utils.time import format_http_date, parse_http_date
from agent_usage.modules.usage.cache import CachedUsage

LAST_UPDATED_HEADER = "X-Last-Updated"


@dataclass(frozen=True, slots=True)
class ConditionalDecision:
    not_modified: bool
    headers: dict[str, str] = field(default_factory=dict)


def decide(entry: CachedUsage, request_headers: Mapping[str, str]) -> ConditionalDecision:
    """Answer a conditional request against a cached usage entry.

    Either validator matching is enough to report "not modified". Otherwise the
    caller gets the validators to attach; clients must revalidate every time,
    the freshness window is enforced by the cache.
    """
    if is_not_modified(entry, request_headers):
        return ConditionalDecision(not_modified=True)
    return ConditionalDecision(not_modified=False, headers=cache_headers(entry))


def is_not_modified(entry: CachedUsage, request_headers: Mapping[str, str]) -> bool:
    if_none_match = _header(request_headers, "if-none-match")
    if if_none_match and if_none_match == entry.etag:
        return True
    if_modified_since = parse_http_date(_header(request_headers, "if-modified-since"))
    return if_modified_since is not None and entry.last_updated <= if_modified_since


def cache_headers(entry: CachedUsage) -> dict[str, str]:
    return {
        "ETag": entry.etag,
        "Last-Modified": format_http_date(entry.last_updated),
        LAST_UPDATED_HEADER: str(entry.last_updated),
        "Cache-Control": "no-cache",
    }


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    for key, candidate in headers.items():
        if key.lower() == name:
            return candidate
    return None
