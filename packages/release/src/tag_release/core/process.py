from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

import structlog

from .errors import ReleaseError

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


def _tail(text: str, *, limit: int = 400) -> str:
    text = text.strip()
    return text if len(text) <= limit else "..." + text[-limit:]


def run_command(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout_s: float,
    error: type[ReleaseError],
) -> CommandResult:
    """
    Run a command to completion with a hard timeout.

    Any launch failure, timeout or non-zero exit is raised as `error`.
    """
    cmd = tuple(str(c) for c in command)
    merged_env = None if env is None else {**os.environ, **env}

    log.debug("command.start", command=list(cmd), cwd=str(cwd) if cwd else None)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        raise error(f"Command not found: {cmd[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise error(f"Command timed out after {timeout_s:g}s: {' '.join(cmd)}") from e
    except OSError as e:
        raise error(f"Command could not start: {' '.join(cmd)}: {e}") from e

    if proc.returncode != 0:
        detail = _tail(proc.stderr) or _tail(proc.stdout)
        raise error(f"{' '.join(cmd)} failed ({proc.returncode}): {detail}")

    return CommandResult(
        command=cmd,
        returncode=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
    )
