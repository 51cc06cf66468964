"""Shared command utilities for collaborators driving CLI tools."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def run_cmd(
    cmd: list[str],
    cwd: Path | str | None = None,
    timeout: float | None = None,
) -> tuple[int, str, str]:
    """Run a command and wait for it.

    Args:
        cmd: Command and arguments as list
        cwd: Working directory of the command
        timeout: Seconds before the command is killed

    Returns:
        Tuple of (return_code, stdout, stderr). A missing executable or an
        expired timeout is reported as return code 127 or 124.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        completed = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        return 127, "", str(e)
    except subprocess.TimeoutExpired:
        return 124, "", f"Command timed out after {timeout}s: {' '.join(cmd)}"
    return completed.returncode, completed.stdout, completed.stderr
