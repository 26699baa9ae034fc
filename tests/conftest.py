from __future__ import annotations

import os
import stat
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_HOME_DIR = Path(tempfile.mkdtemp(prefix="agent-usage-tests-"))
FAKE_APP_SERVER = Path(__file__).parent / "support" / "fake_codex_app_server.py"

os.environ["AGENT_USAGE_CODEX_BINARY_PATH"] = str(TEST_HOME_DIR / "missing-codex")
os.environ["AGENT_USAGE_CODEX_AUTH_FILE"] = str(TEST_HOME_DIR / "auth.json")
os.environ["AGENT_USAGE_CODEX_RPC_TIMEOUT_SECONDS"] = "5"

from agent_usage.core.config.settings import get_settings  # noqa: E402
from agent_usage.core.usage.models import AgentUsageSnapshot, UsageAccount  # noqa: E402
from agent_usage.main import create_app  # noqa: E402
from agent_usage.modules.usage.cache import UsageCache  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_codex_binary(tmp_path, monkeypatch) -> Path:
    """Executable wrapper around the fake app-server, usable as the codex binary."""
    binary = tmp_path / "codex"
    binary.write_text(f"#!{sys.executable}\n" + FAKE_APP_SERVER.read_text(encoding="utf-8"), encoding="utf-8")
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setenv("FAKE_CODEX_MODE", "ok")
    monkeypatch.delenv("FAKE_CODEX_EMAIL", raising=False)
    monkeypatch.delenv("FAKE_CODEX_LOG", raising=False)
    return binary


def make_snapshot(fetched_at: int, *, email: str | None = "rpc@example.com") -> AgentUsageSnapshot:
    return AgentUsageSnapshot(
        fetched_at=fetched_at,
        account=UsageAccount(email=email, plan_type="plus"),
    )


class StubFetcher:
    def __init__(self, *, start: int = 1_700_000_000_000) -> None:
        self.calls = 0
        self.next_fetched_at = start
        self.error: Exception | None = None
        self.email: str | None = "rpc@example.com"

    async def __call__(self) -> AgentUsageSnapshot:
        self.calls += 1
        if self.error is not None:
            raise self.error
        snapshot = make_snapshot(self.next_fetched_at, email=self.email)
        self.next_fetched_at += 1000
        return snapshot


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def stub_fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def usage_cache(stub_fetcher: StubFetcher) -> UsageCache:
    return UsageCache(fetchers={"codex": stub_fetcher}, ttl_ms=10_000, clock=lambda: 1_700_000_000_500)


@pytest.fixture
def app_instance(usage_cache: UsageCache):
    return create_app(usage_cache=usage_cache)


@pytest_asyncio.fixture
async def async_client(app_instance):
    async with app_instance.router.lifespan_context(app_instance):
        transport = ASGITransport(app=app_instance)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client

