# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Console front end for consent requests and error notifications."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Final

import typer
from rich.console import Console
from rich.prompt import Prompt

from ..config_loader import SettingsStore
from ..interfaces import Prompter, SettingsOpener
from ..logging import info, warn

DISMISS: Final[str] = "Dismiss"


class ConsolePrompter(Prompter):
    """Ask questions on the terminal without blocking the event loop."""

    def __init__(
        self,
        console: Console,
        *,
        interactive: bool | None = None,
        auto_answer: str | None = None,
        use_emoji: bool = True,
        use_color: bool | None = None,
    ) -> None:
        """Create a prompter.

        Args:
            console: Console used to render the prompt.
            interactive: Whether questions may be asked. Defaults to whether
                stdin is a terminal; non-interactive prompts are dismissed.
            auto_answer: Choice selected automatically whenever it is offered.
            use_emoji: Prefix messages with emoji.
            use_color: Explicit colour flag; ``None`` follows TTY detection.
        """

        self._console = console
        self._interactive = sys.stdin.isatty() if interactive is None else interactive
        self._auto_answer = auto_answer
        self._use_emoji = use_emoji
        self._use_color = use_color
        self._lock: asyncio.Lock | None = None

    async def ask(self, message: str, choices: Sequence[str]) -> str | None:
        """Show ``message`` and return the chosen entry of ``choices``."""

        options = tuple(choices)
        if self._auto_answer is not None and self._auto_answer in options:
            info(f"{message} -> {self._auto_answer}", use_emoji=self._use_emoji, use_color=self._use_color)
            return self._auto_answer
        if not self._interactive or not options:
            warn(message, use_emoji=self._use_emoji, use_color=self._use_color)
            return None
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            return await asyncio.to_thread(self._ask_blocking, message, options)

    def _ask_blocking(self, message: str, options: tuple[str, ...]) -> str | None:
        warn(message, use_emoji=self._use_emoji, use_color=self._use_color)
        answer = Prompt.ask("Choose", choices=[*options, DISMISS], default=DISMISS, console=self._console)
        return None if answer == DISMISS else answer


class SettingsFileOpener(SettingsOpener):
    """Open the settings file that controls a setting in the user's editor."""

    def __init__(self, settings: SettingsStore, console: Console) -> None:
        self._settings = settings
        self._console = console

    def __call__(self, setting: str) -> None:
        path: Path | None = self._settings.settings_file()
        if path is None:
            return
        self._console.print(f"Configure '{setting}' in {path}")
        if path.exists():
            typer.launch(str(path))


__all__ = ["ConsolePrompter", "DISMISS", "SettingsFileOpener"]
