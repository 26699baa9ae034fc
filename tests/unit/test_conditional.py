from __future__ import annotations

from email.utils import formatdate

import pytest

from agent_usage.modules.usage.cache import CachedUsage, build_etag
from agent_usage.modules.usage.conditional import decide

pytestmark = pytest.mark.unit

LAST_UPDATED = 1_700_000_000_000


@pytest.fixture
def entry(snapshot_factory) -> CachedUsage:
    return CachedUsage(
        snapshot=snapshot_factory(LAST_UPDATED),
        etag=build_etag("codex", LAST_UPDATED),
        last_updated=LAST_UPDATED,
    )


def _http_date(epoch_ms: int) -> str:
    return formatdate(epoch_ms / 1000, usegmt=True)


def test_matching_etag_is_not_modified(entry):
    decision = decide(entry, {"if-none-match": 'W/"codex-1700000000000"'})

    assert decision.not_modified is True
    assert decision.headers == {}


def test_if_modified_since_after_last_update_is_not_modified(entry):
    decision = decide(entry, {"If-Modified-Since": _http_date(LAST_UPDATED + 1000)})

    assert decision.not_modified is True


def test_if_modified_since_before_last_update_is_modified(entry):
    decision = decide(entry, {"if-modified-since": _http_date(LAST_UPDATED - 1000)})

    assert decision.not_modified is False


def test_either_validator_is_enough(entry):
    decision = decide(
        entry,
        {"if-none-match": 'W/"codex-1"', "if-modified-since": _http_date(LAST_UPDATED + 5000)},
    )

    assert decision.not_modified is True


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"if-none-match": 'W/"codex-1699999999999"'},
        {"if-none-match": "W/\"codex-1700000000000\", W/\"other\""},
        {"if-modified-since": "definitely not a date"},
    ],
)
def test_full_response_carries_cache_headers(entry, headers):
    decision = decide(entry, headers)

    assert decision.not_modified is False
    assert decision.headers == {
        "ETag": 'W/"codex-1700000000000"',
        "Last-Modified": "Tue, 14 Nov 2023 22:13:20 GMT",
        "X-Last-Updated": "1700000000000",
        "Cache-Control": "no-cache",
    }
