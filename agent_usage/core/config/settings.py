from __future__ import annotations

import math
import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_usage import __version__

BASE_DIR = Path(__file__).resolve().parents[3]

DEFAULT_CACHE_TTL_MS = 10_000.0
DEFAULT_CLIENT_NAME = "agent-usage-stats"


def _default_codex_home() -> Path:
    configured = os.environ.get("CODEX_HOME", "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".codex"


DEFAULT_CODEX_AUTH_FILE = _default_codex_home() / "auth.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENT_USAGE_",
        env_file=(BASE_DIR / ".env", BASE_DIR / ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    codex_binary_path: str = "codex"
    codex_auth_file: Path = DEFAULT_CODEX_AUTH_FILE
    codex_rpc_timeout_seconds: float = Field(default=10.0, gt=0)
    codex_rpc_stream_limit_bytes: int = Field(default=8 * 1024 * 1024, gt=0)
    client_name: str = DEFAULT_CLIENT_NAME
    client_version: str = __version__
    rpc_cache_ttl_ms: float = DEFAULT_CACHE_TTL_MS

    @field_validator("codex_binary_path")
    @classmethod
    def _expand_codex_binary_path(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            return "codex"
        if stripped.startswith("~"):
            return str(Path(stripped).expanduser())
        return stripped

    @field_validator("codex_auth_file", mode="before")
    @classmethod
    def _expand_codex_auth_file(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return DEFAULT_CODEX_AUTH_FILE
            return Path(stripped).expanduser()
        raise TypeError("codex_auth_file must be a path")

    @field_validator("rpc_cache_ttl_ms", mode="before")
    @classmethod
    def _coerce_rpc_cache_ttl_ms(cls, value: object) -> float:
        return coerce_cache_ttl_ms(value)


def coerce_cache_ttl_ms(value: object) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_CACHE_TTL_MS
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return DEFAULT_CACHE_TTL_MS
        try:
            value = float(stripped)
        except ValueError:
            return DEFAULT_CACHE_TTL_MS
    if not isinstance(value, (int, float)):
        return DEFAULT_CACHE_TTL_MS
    parsed = float(value)
    if not math.isfinite(parsed) or parsed < 0:
        return DEFAULT_CACHE_TTL_MS
    return parsed


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
