from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from collections.abc import Sequence

from agent_usage.core.types import JsonObject, JsonValue, RpcParams

DEFAULT_STREAM_LIMIT = 8 * 1024 * 1024
TERMINATE_GRACE_SECONDS = 2.0
STDERR_FLUSH_SECONDS = 0.5

logger = logging.getLogger(__name__)


class RpcTransportError(Exception):
    """Base class for failures talking to the app-server process."""


class SpawnError(RpcTransportError):
    def __init__(self, executable: str, cause: OSError) -> None:
        super().__init__(f"Failed to start Codex RPC process {executable!r}: {cause}")
        self.executable = executable


class RpcTimeoutError(RpcTransportError):
    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"Codex RPC request timed out: {method}")
        self.method = method
        self.timeout = timeout


class RpcResponseError(RpcTransportError):
    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(f"Codex RPC error {code}: {message}")
        self.code = code
        self.message = message


class ProcessExitError(RpcTransportError):
    def __init__(self, returncode: int | None) -> None:
        super().__init__(_exit_message(returncode))
        self.returncode = returncode


class TransportClosedError(RpcTransportError):
    def __init__(self) -> None:
        super().__init__("Codex RPC client closed")


class RpcProcessTransport:
    """Newline-delimited JSON-RPC over a child process's stdin/stdout.

    Calls are correlated by integer id, so responses may arrive in any order.
    A pending call is removed by exactly one of: its response, its timeout,
    process exit, or ``close()``. Responses for ids that are no longer pending
    are dropped.
    """

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self._pending: dict[int, asyncio.Future[JsonValue]] = {}
        self._next_id = 1
        self._closed = False
        self._exit_error: ProcessExitError | None = None
        self._stderr_chunks: list[str] = []
        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

    @classmethod
    async def connect(
        cls,
        executable: str,
        args: Sequence[str] = (),
        *,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
    ) -> RpcProcessTransport:
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=stream_limit,
            )
        except OSError as exc:
            raise SpawnError(executable, exc) from exc
        logger.debug("Spawned Codex RPC process pid=%s executable=%s", process.pid, executable)
        return cls(process)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def stderr(self) -> str:
        return "".join(self._stderr_chunks).strip()

    def send(self, message: JsonObject) -> None:
        if self._closed or self._exit_error is not None:
            return
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            return
        stdin.write(_encode(message))

    def notify(self, method: str, params: RpcParams | None = None) -> None:
        self.send({"jsonrpc": "2.0", "method": method, "params": params or {}})

    async def call(self, method: str, params: RpcParams | None = None, *, timeout: float) -> JsonValue:
        if self._closed:
            raise TransportClosedError()
        if self._exit_error is not None:
            raise self._exit_error

        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[JsonValue] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            self.send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}})
            await self._drain()
            return await asyncio.wait_for(future, timeout)
        except TimeoutError:
            raise RpcTimeoutError(method, timeout) from None
        finally:
            self._pending.pop(request_id, None)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._fail_all_pending(TransportClosedError())

        stdin = self._process.stdin
        if stdin is not None:
            with contextlib.suppress(Exception):
                stdin.close()

        if self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), TERMINATE_GRACE_SECONDS)
            except TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    self._process.kill()
                with contextlib.suppress(Exception):
                    await self._process.wait()

        await asyncio.wait([self._stderr_task], timeout=STDERR_FLUSH_SECONDS)
        for task in (self._stdout_task, self._stderr_task):
            task.cancel()
        await asyncio.gather(self._stdout_task, self._stderr_task, return_exceptions=True)

    async def _drain(self) -> None:
        stdin = self._process.stdin
        if stdin is None:
            return
        try:
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ProcessExitError(self._process.returncode) from exc

    async def _read_stdout(self) -> None:
        stdout = self._process.stdout
        if stdout is None:
            return
        while True:
            try:
                line = await stdout.readline()
            except ValueError:
                # Line exceeded the stream limit; the reader discarded it.
                logger.warning("Dropped oversized Codex RPC line pid=%s", self._process.pid)
                continue
            if not line:
                break
            self._handle_line(line)

        returncode = await self._process.wait()
        if self._closed:
            return
        await asyncio.wait([self._stderr_task], timeout=STDERR_FLUSH_SECONDS)
        if self._closed:
            return
        self._exit_error = ProcessExitError(returncode)
        logger.debug("Codex RPC process exited pid=%s returncode=%s", self._process.pid, returncode)
        self._fail_all_pending(self._exit_error)

    async def _read_stderr(self) -> None:
        stderr = self._process.stderr
        if stderr is None:
            return
        while True:
            chunk = await stderr.read(4096)
            if not chunk:
                return
            self._stderr_chunks.append(chunk.decode("utf-8", errors="replace"))

    def _handle_line(self, line: bytes) -> None:
        try:
            payload = json.loads(line)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError):
            return
        if not isinstance(payload, dict):
            return
        request_id = payload.get("id")
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            return
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return

        error = payload.get("error")
        if error is not None:
            future.set_exception(_response_error(error))
            return
        future.set_result(payload.get("result"))

    def _fail_all_pending(self, error: RpcTransportError) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)


def _encode(message: JsonObject) -> bytes:
    return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")


def _response_error(error: JsonValue) -> RpcResponseError:
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message")
        return RpcResponseError(
            code if isinstance(code, int) and not isinstance(code, bool) else None,
            message if isinstance(message, str) else "Unknown error",
        )
    return RpcResponseError(None, str(error))


def _exit_message(returncode: int | None) -> str:
    if returncode == 0:
        return "Codex RPC process exited unexpectedly"
    if returncode is None:
        return "Codex RPC process exited (unknown)"
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return f"Codex RPC process exited (signal {name})"
    return f"Codex RPC process exited ({returncode})"
