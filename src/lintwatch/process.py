# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Launch linter processes on the running event loop."""

from __future__ import annotations

import asyncio
import errno
import logging

# Bandit: subprocess usage is intentional. Arguments are passed as a list and
# ``shell=True`` is never used.
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

from .config import TriggerMode
from .errors import ExecutableNotFoundError, SpawnFailureError, ValidationProcessError
from .interfaces import LinterProcess, ProcessLauncher

LOGGER = logging.getLogger(__name__)

FILE_ARGS: Final[tuple[str, ...]] = ("--nocolor", "-p")
BUFFER_ARGS: Final[tuple[str, ...]] = ("--nocolor", "-p", "-")


def build_arguments(trigger: TriggerMode, file_name: str) -> list[str]:
    """Return the linter argument vector for ``trigger``.

    Args:
        trigger: Active trigger mode.
        file_name: Path of the saved document; only used in on-save mode.

    Returns:
        list[str]: Arguments passed after the executable.
    """

    if trigger is TriggerMode.ON_SAVE:
        return [*FILE_ARGS, file_name]
    return list(BUFFER_ARGS)


def classify_spawn_error(error: OSError, executable: str) -> ValidationProcessError:
    """Translate an ``OSError`` raised while spawning into a package error.

    Args:
        error: Exception raised by the process launcher.
        executable: Executable that was being started.

    Returns:
        ValidationProcessError: :class:`ExecutableNotFoundError` for missing
        executables, :class:`SpawnFailureError` otherwise.
    """

    reason = error.strerror or (str(error) if str(error) else None)
    if isinstance(error, FileNotFoundError) or error.errno == errno.ENOENT:
        return ExecutableNotFoundError(executable, reason)
    return SpawnFailureError(executable, reason)


class AsyncioProcessLauncher(ProcessLauncher):
    """Start linters through :func:`asyncio.create_subprocess_exec`."""

    def __init__(self, *, env: Mapping[str, str] | None = None) -> None:
        """Create a launcher.

        Args:
            env: Optional environment for child processes; inherits the
                current environment when omitted.
        """

        self._env = dict(env) if env is not None else None

    async def launch(
        self,
        executable: str,
        args: Sequence[str],
        *,
        cwd: Path | None,
        pipe_input: bool,
    ) -> LinterProcess:
        """Spawn ``executable`` with stdout piped and stdin piped only when requested.

        Raises:
            ExecutableNotFoundError: If the executable does not exist.
            SpawnFailureError: For any other start-up failure.
        """

        LOGGER.debug("Spawning %s %s", executable, " ".join(args))
        try:
            # Bandit: the executable is either the default linter or a path the user approved.
            process = await asyncio.create_subprocess_exec(  # nosec B603
                executable,
                *args,
                cwd=str(cwd) if cwd is not None else None,
                env=self._env,
                stdin=subprocess.PIPE if pipe_input else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise classify_spawn_error(exc, executable) from exc
        return process


def terminate(process: LinterProcess) -> None:
    """Kill ``process`` if it is still running."""

    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return


__all__ = [
    "AsyncioProcessLauncher",
    "BUFFER_ARGS",
    "FILE_ARGS",
    "build_arguments",
    "classify_spawn_error",
    "terminate",
]
