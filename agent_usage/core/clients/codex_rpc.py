from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from agent_usage.core.clients.rpc_transport import (
    DEFAULT_STREAM_LIMIT,
    RpcProcessTransport,
    RpcTransportError,
)
from agent_usage.core.types import JsonValue
from agent_usage.core.usage.models import CodexAccountResponse, CodexRateLimitsResponse

APP_SERVER_ARGS = ("-s", "read-only", "-a", "untrusted", "app-server")

logger = logging.getLogger(__name__)

_ResponseT = TypeVar("_ResponseT", bound=BaseModel)


class RpcPayloadError(RpcTransportError):
    def __init__(self, method: str) -> None:
        super().__init__(f"Codex RPC returned an invalid payload: {method}")
        self.method = method


@dataclass(frozen=True, slots=True)
class ClientInfo:
    name: str
    version: str


class CodexRpcClient:
    def __init__(self, transport: RpcProcessTransport, *, timeout_seconds: float) -> None:
        self._transport = transport
        self._timeout_seconds = timeout_seconds

    @classmethod
    async def connect(
        cls,
        binary_path: str,
        *,
        timeout_seconds: float,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
    ) -> CodexRpcClient:
        transport = await RpcProcessTransport.connect(binary_path, APP_SERVER_ARGS, stream_limit=stream_limit)
        return cls(transport, timeout_seconds=timeout_seconds)

    @property
    def stderr(self) -> str:
        return self._transport.stderr

    async def initialize(self, client_info: ClientInfo) -> JsonValue:
        result = await self._transport.call(
            "initialize",
            {"clientInfo": {"name": client_info.name, "version": client_info.version}},
            timeout=self._timeout_seconds,
        )
        self._transport.notify("initialized", {})
        return result

    async def read_account(self) -> tuple[CodexAccountResponse, JsonValue]:
        return await self._request("account/read", CodexAccountResponse)

    async def read_rate_limits(self) -> tuple[CodexRateLimitsResponse, JsonValue]:
        return await self._request("account/rateLimits/read", CodexRateLimitsResponse)

    async def close(self) -> None:
        await self._transport.close()

    async def _request(self, method: str, model: type[_ResponseT]) -> tuple[_ResponseT, JsonValue]:
        result = await self._transport.call(method, {}, timeout=self._timeout_seconds)
        try:
            parsed = model.model_validate(result if isinstance(result, dict) else {})
        except ValidationError as exc:
            logger.warning("Codex RPC invalid payload method=%s", method)
            raise RpcPayloadError(method) from exc
        return parsed, result


@asynccontextmanager
async def codex_rpc_session(
    binary_path: str,
    *,
    timeout_seconds: float,
    stream_limit: int = DEFAULT_STREAM_LIMIT,
) -> AsyncIterator[CodexRpcClient]:
    client = await CodexRpcClient.connect(binary_path, timeout_seconds=timeout_seconds, stream_limit=stream_limit)
    try:
        yield client
    finally:
        await client.close()
