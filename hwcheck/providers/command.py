from __future__ import annotations

import logging
from pathlib import Path
import subprocess

from hwcheck.logging_utils import TRACE_LEVEL

logger = logging.getLogger(__name__)


def run_command(
    command: list[str],
    timeout_s: float | None = None,
    merge_stderr: bool = False,
) -> str | None:
    """Run ``command`` and return its stdout, or None when it produced nothing useful."""
    try:
        result = subprocess.run(
            command,
            check=False,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            timeout=timeout_s,
        )
    except FileNotFoundError:
        logger.debug("Command not found: %s", command[0])
        return None
    except subprocess.TimeoutExpired:
        logger.debug("Command timed out after %ss: %s", timeout_s, " ".join(command))
        return None
    if result.returncode != 0:
        logger.debug(
            "Command failed (%s): %s", result.returncode, " ".join(command)
        )
        if result.stderr:
            logger.log(TRACE_LEVEL, "stderr: %s", result.stderr.strip())
        if not result.stdout:
            return None
    if result.stdout:
        logger.log(TRACE_LEVEL, "stdout: %s", result.stdout.strip())
    return result.stdout


def read_file(path: str | Path) -> str | None:
    """Read a small text file, or None if it is missing or unreadable."""
    try:
        return Path(path).read_text().strip()
    except (FileNotFoundError, PermissionError, OSError):
        return None
