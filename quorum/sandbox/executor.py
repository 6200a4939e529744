"""
Code Sandbox Executor

Runs model-generated Python in a separate interpreter process with a hard
wall-clock limit. The child runs in the temp directory with the caller's
environment; there is no further isolation.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from quorum.observability.logging import get_logger
from quorum.observability.metrics import increment_counter, track_duration

logger = get_logger(__name__)

NO_OUTPUT_MESSAGE = "Code executed successfully (no output)"


class ExecutionResult(BaseModel):
    """Outcome of one sandbox execution."""

    success: bool = Field(..., description="Whether the process exited with status 0")
    output: str = Field(..., description="Collected output or failure description")

    model_config = ConfigDict(frozen=True)


class SandboxExecutor:
    """
    Execute Python source in a child process.

    Each execution writes to its own uniquely named temp file, so concurrent
    executions never share files. The file is removed on every path,
    including cancellation, and a cancelled or timed-out child is killed and
    reaped.

    Example:
        >>> sandbox = SandboxExecutor(timeout=10.0)
        >>> result = await sandbox.execute("print(17 * 23)")
        >>> result.output
        '391'
    """

    def __init__(
        self,
        timeout: float = 10.0,
        python_executable: Optional[str] = None,
        temp_dir: Optional[Path] = None,
    ):
        self.timeout = timeout
        self.python_executable = python_executable or sys.executable or "python3"
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())

    async def execute(self, code: str) -> ExecutionResult:
        script = self.temp_dir / f"quorum_{time.time_ns()}_{secrets.token_hex(4)}.py"
        try:
            with track_duration("sandbox_duration_seconds"):
                result, outcome = await self._run(script, code)
        finally:
            script.unlink(missing_ok=True)

        increment_counter("sandbox_executions_total", labels={"outcome": outcome})
        logger.debug("sandbox_execution_finished", outcome=outcome, output_chars=len(result.output))
        return result

    async def _run(self, script: Path, code: str) -> tuple[ExecutionResult, str]:
        try:
            script.write_text(code, encoding="utf-8")
            process = await asyncio.create_subprocess_exec(
                self.python_executable,
                str(script),
                cwd=str(self.temp_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return (
                ExecutionResult(success=False, output=f"Failed to execute Python: {exc}"),
                "launch_failure",
            )
        except Exception as exc:
            logger.warning("sandbox_prepare_failed", error=str(exc))
            return ExecutionResult(success=False, output=f"Error: {exc}"), "error"

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await _kill(process)
            logger.warning("sandbox_timeout", timeout=self.timeout, pid=process.pid)
            return (
                ExecutionResult(
                    success=False,
                    output=f"Execution timed out ({self.timeout:g} second limit)",
                ),
                "timeout",
            )
        except asyncio.CancelledError:
            await _kill(process)
            raise
        except Exception as exc:
            await _kill(process)
            logger.warning("sandbox_execution_failed", error=str(exc), pid=process.pid)
            return ExecutionResult(success=False, output=f"Error: {exc}"), "error"

        stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
        stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

        if process.returncode == 0:
            output = stdout + (f"\n[stderr]: {stderr}" if stderr else "")
            return ExecutionResult(success=True, output=output or NO_OUTPUT_MESSAGE), "success"

        return (
            ExecutionResult(
                success=False,
                output=stderr or f"Process exited with code {process.returncode}",
            ),
            "error",
        )


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


__all__ = ["ExecutionResult", "NO_OUTPUT_MESSAGE", "SandboxExecutor"]
