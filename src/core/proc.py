# src/core/proc.py — v1
"""Child process helpers shared by the build runner and the git store.

Commands are started in their own session so that a kill reaches the whole
tree (make → compiler, git → remote helper), not just the direct child.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from typing import Any

# Passed to asyncio.create_subprocess_exec
SESSION_KWARGS: dict[str, Any] = {} if sys.platform == "win32" else {"start_new_session": True}


async def communicate_or_kill(
    proc: asyncio.subprocess.Process,
    timeout_s: float,
) -> tuple[bytes, bytes]:
    """proc.communicate() bounded by timeout_s.

    On timeout (asyncio.TimeoutError) or cancellation of the caller the
    process tree is killed and reaped before the exception propagates, so no
    command outlives the stage that started it.
    """
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except BaseException:
        await kill(proc)
        raise
    return stdout or b"", stderr or b""


async def kill(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the process group (or the process) and wait for it."""
    if proc.returncode is None:
        try:
            if SESSION_KWARGS:
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass  # exited between the check and the signal
    await asyncio.shield(proc.wait())
