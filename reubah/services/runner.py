"""
External Tool Runner

Single-shot, blocking invocation of a command line tool with a timeout.
Callers get either the completed process or their own error kind with the
underlying cause attached; nothing is retried.
"""

import subprocess
from typing import List, Optional, Type

from reubah.core.exceptions import ReubahError
from reubah.core.logging import get_logger
from reubah.core.metrics import record_external_tool_call

logger = get_logger(__name__)


def run_tool(
    tool: str,
    command: List[str],
    error_cls: Type[ReubahError],
    stage: str,
    timeout: float,
    input_data: Optional[bytes] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external tool and return the finished process.

    Raises:
        error_cls: missing executable, timeout or non-zero exit
    """
    logger.info("external_tool_starting", tool=tool, timeout=timeout)

    try:
        proc = subprocess.run(
            command,
            input=input_data,
            capture_output=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        record_external_tool_call(tool, "missing")
        raise error_cls(f"{tool} executable not found", stage=stage, cause=e) from e
    except subprocess.TimeoutExpired as e:
        record_external_tool_call(tool, "timeout")
        raise error_cls(f"{tool} timed out after {timeout}s", stage=stage, cause=e) from e

    if proc.returncode != 0:
        record_external_tool_call(tool, "error")
        stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
        logger.error("external_tool_failed", tool=tool, returncode=proc.returncode, stderr=stderr[:500])
        raise error_cls(
            f"{tool} exited with status {proc.returncode}",
            stage=stage,
            details={"returncode": proc.returncode, "stderr": stderr[:500]},
        )

    record_external_tool_call(tool, "success")
    return proc
