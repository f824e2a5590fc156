"""External converter probing and invocation helpers."""
from __future__ import annotations

import logging
import subprocess
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .config import DEFAULT_CONVERTER, DEFAULT_TOOL_TIMEOUT
from .errors import ToolError

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 5.0


@lru_cache(maxsize=None)
def is_converter_available(binary: str = DEFAULT_CONVERTER) -> bool:
    """Probe for ``binary`` once per process.

    The answer is cached for the lifetime of the process and never re-probed,
    even if the tool is installed or removed while we run.
    """
    try:
        subprocess.run(
            ["which", binary],
            check=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=PROBE_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError):
        pass
    else:
        logger.info("%s is available for raw file processing", binary)
        return True

    # No `which` on PATH, or it could not find the binary. Spawn the tool
    # itself: dcraw prints usage and exits non-zero, which still proves it runs.
    try:
        subprocess.run(
            [binary],
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=PROBE_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError):
        logger.info("%s is not available, will use embedded previews only", binary)
        return False
    logger.info("%s is available for raw file processing", binary)
    return True


def run_tool(
    args: Sequence[str],
    *,
    stdout_path: Optional[Path] = None,
    timeout: float = DEFAULT_TOOL_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run an external tool, optionally streaming its stdout into ``stdout_path``."""
    command = [str(arg) for arg in args]
    logger.debug("Running %s", " ".join(command))
    try:
        if stdout_path is not None:
            with stdout_path.open("wb") as handle:
                result = subprocess.run(
                    command,
                    stdout=handle,
                    stderr=subprocess.PIPE,
                    timeout=timeout,
                    check=False,
                )
        else:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
                check=False,
            )
    except subprocess.TimeoutExpired as exc:
        raise ToolError(f"{command[0]} timed out after {timeout:.0f}s") from exc
    except OSError as exc:
        raise ToolError(f"{command[0]} could not be started: {exc}") from exc
    if result.returncode != 0:
        stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
        raise ToolError(f"{command[0]} exited with {result.returncode}: {stderr}")
    return result


@contextmanager
def scratch_files(*paths: Path) -> Iterator[None]:
    """Delete ``paths`` when the block exits, however it exits."""
    try:
        yield
    finally:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.debug("Could not remove temp file %s: %s", path, exc)
