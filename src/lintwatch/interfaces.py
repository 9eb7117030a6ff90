# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Service interfaces the validation provider depends on."""

# pylint: disable=too-few-public-methods -- Protocol definitions intentionally expose minimal method surfaces.

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Prompter(Protocol):
    """Show a message offering a fixed set of choices."""

    async def ask(self, message: str, choices: Sequence[str]) -> str | None:
        """Return the selected choice, or ``None`` when the prompt was dismissed."""

        raise NotImplementedError


@runtime_checkable
class LinterProcess(Protocol):
    """Running child process, shaped like :class:`asyncio.subprocess.Process`."""

    stdin: asyncio.StreamWriter | None
    stdout: asyncio.StreamReader | None

    @property
    def returncode(self) -> int | None:
        """Return the exit status once the process finished."""

        raise NotImplementedError

    async def wait(self) -> int:
        """Wait for the process to exit and return its status."""

        raise NotImplementedError

    def kill(self) -> None:
        """Terminate the process immediately."""

        raise NotImplementedError


@runtime_checkable
class ProcessLauncher(Protocol):
    """Start linter processes."""

    async def launch(
        self,
        executable: str,
        args: Sequence[str],
        *,
        cwd: Path | None,
        pipe_input: bool,
    ) -> LinterProcess:
        """Spawn ``executable`` with ``args``.

        Raises:
            ExecutableNotFoundError: If ``executable`` does not exist.
            SpawnFailureError: If the process could not be started.
        """

        raise NotImplementedError


@runtime_checkable
class SettingsOpener(Protocol):
    """Reveal the configuration that defines a setting."""

    def __call__(self, setting: str) -> None:
        """Open the settings location for ``setting``."""

        raise NotImplementedError


__all__ = ["LinterProcess", "ProcessLauncher", "Prompter", "SettingsOpener"]
