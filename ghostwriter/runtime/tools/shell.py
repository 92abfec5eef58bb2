from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import Optional

from ghostwriter.runtime.types import ToolResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0
TIMEOUT_NOTICE = "\n[command timed out and was killed]"


async def _drain(stream: Optional[asyncio.StreamReader], sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        sink.extend(chunk)


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


async def shell_run(command: str, *, cwd: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> ToolResult:
    """
    Run a shell command in cwd and capture its output.

    On timeout the whole process group is killed and the result is still a success,
    carrying whatever output was produced before the kill, code -1 and timed_out=True.
    Confirmation and allow-listing happen in the safety gate, not here.
    """
    if not command or not command.strip():
        return ToolResult.failure("command is required")

    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=(os.name == "posix"),
    )
    out = bytearray()
    err = bytearray()
    readers = asyncio.gather(_drain(proc.stdout, out), _drain(proc.stderr, err))

    timed_out = False
    try:
        await asyncio.wait_for(proc.wait(), timeout=timeout_s)
    except asyncio.TimeoutError:
        timed_out = True
        logger.info("Command timed out after %ss, killing: %s", timeout_s, command)
        _kill(proc)
        await proc.wait()

    try:
        await asyncio.wait_for(readers, timeout=2.0)
    except asyncio.TimeoutError:
        # a grandchild may still hold the pipes open
        readers.cancel()

    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")
    if timed_out:
        return ToolResult.ok({"stdout": stdout, "stderr": stderr + TIMEOUT_NOTICE, "code": -1, "timed_out": True})
    return ToolResult.ok({"stdout": stdout, "stderr": stderr, "code": proc.returncode, "timed_out": False})
