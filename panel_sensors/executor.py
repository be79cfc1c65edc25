from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Sequence, cast

import psutil

from panel_sensors.logging_utils import TRACE_LEVEL

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MAX_BUFFER = 1024 * 1024
FAILURE_EXIT_CODE = -1
_READ_CHUNK = 64 * 1024

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def detail(self) -> str:
        return self.stderr.strip()


class OutputOverflow(Exception):
    """Raised when a command writes more than the configured buffer."""


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


async def _read_bounded(stream: asyncio.StreamReader, limit: int) -> bytes:
    buffer = bytearray()
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return bytes(buffer)
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise OutputOverflow(f"output exceeded {limit} bytes")


def _kill_tree(pid: int) -> None:
    try:
        parent = psutil.Process(pid)
        processes = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return
    for process in processes:
        try:
            process.kill()
        except psutil.NoSuchProcess:
            continue


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        _kill_tree(process.pid)
        await process.wait()


async def _spawn(command: str | Sequence[str]) -> asyncio.subprocess.Process:
    pipes = {
        "stdin": asyncio.subprocess.DEVNULL,
        "stdout": asyncio.subprocess.PIPE,
        "stderr": asyncio.subprocess.PIPE,
    }
    if isinstance(command, str):
        return await asyncio.create_subprocess_shell(command, **pipes)
    return await asyncio.create_subprocess_exec(*command, **pipes)


async def run_command(
    command: str | Sequence[str],
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> CommandResult:
    """Run one external command and capture its output.

    A string is run through the shell, a sequence is executed directly. The
    call never raises: spawn errors, a non-zero exit, the timeout expiring or
    either output stream exceeding ``max_buffer`` bytes all produce a failed
    ``CommandResult``. On timeout or overflow the process tree is killed and
    the partial output is discarded.
    """
    label = command if isinstance(command, str) else " ".join(command)
    try:
        process = await _spawn(command)
    except OSError as exc:
        logger.debug("Command could not be started: %s", label)
        return CommandResult(False, FAILURE_EXIT_CODE, "", str(exc))

    async def _communicate() -> tuple[bytes, bytes, int]:
        streams = cast("tuple[asyncio.StreamReader, asyncio.StreamReader]", (process.stdout, process.stderr))
        readers = [asyncio.ensure_future(_read_bounded(stream, max_buffer)) for stream in streams]
        try:
            stdout, stderr = await asyncio.gather(*readers)
        finally:
            for reader in readers:
                reader.cancel()
        return stdout, stderr, await process.wait()

    try:
        stdout_b, stderr_b, returncode = await asyncio.wait_for(
            _communicate(), timeout=timeout_ms / 1000
        )
    except asyncio.TimeoutError:
        await _terminate(process)
        return CommandResult(
            False, FAILURE_EXIT_CODE, "", f"command timed out after {timeout_ms} ms"
        )
    except OutputOverflow as exc:
        await _terminate(process)
        return CommandResult(False, FAILURE_EXIT_CODE, "", str(exc))

    stdout = _decode(stdout_b)
    stderr = _decode(stderr_b)
    if stdout:
        logger.log(TRACE_LEVEL, "stdout: %s", stdout.strip())
    if returncode != 0:
        logger.debug("Command failed (%s): %s", returncode, label)
        if stderr:
            logger.log(TRACE_LEVEL, "stderr: %s", stderr.strip())
        # Negative return codes mean the process died from a signal.
        exit_code = returncode if returncode > 0 else FAILURE_EXIT_CODE
        return CommandResult(False, exit_code, stdout, stderr)
    return CommandResult(True, 0, stdout, stderr)
