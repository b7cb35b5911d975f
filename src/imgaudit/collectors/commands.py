"""Subprocess helpers shared by the fact collectors."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Mapping, Optional, Sequence

LOGGER = logging.getLogger(__name__)


def have(tool: str) -> bool:
    """Return True when ``tool`` resolves to an executable on PATH."""
    return shutil.which(tool) is not None


def run_command(
    args: Sequence[str],
    *,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> Optional[str]:
    """Run an external tool and return its standard output.

    Args:
        args: Executable followed by its arguments.
        timeout: Seconds to wait before giving up.
        env: Extra environment variables layered over the current environment.

    Returns:
        Optional[str]: Captured stdout, or None when the tool is missing,
        exits non-zero, or times out.
    """
    run_env = None
    if env:
        run_env = dict(os.environ)
        run_env.update(env)
    try:
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=run_env,
            check=False,
        )
    except FileNotFoundError:
        LOGGER.debug("%s not found on PATH.", args[0])
        return None
    except subprocess.TimeoutExpired:
        LOGGER.warning("%s timed out after %ss.", args[0], timeout)
        return None
    except OSError as exc:
        LOGGER.warning("Could not run %s: %s", args[0], exc)
        return None

    if completed.returncode != 0:
        LOGGER.debug(
            "%s exited with %s: %s",
            " ".join(args[:2]),
            completed.returncode,
            completed.stderr.strip(),
        )
        return None
    return completed.stdout


__all__ = ["have", "run_command"]
