# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Custom exceptions raised while configuring and running validations."""

from __future__ import annotations


class LintwatchError(RuntimeError):
    """Base class for every error raised by the lintwatch package."""


class ConfigError(LintwatchError):
    """Raised when configuration input is invalid."""


class ValidationProcessError(LintwatchError):
    """Raised when the external linter process cannot be started."""

    def __init__(self, executable: str, reason: str | None = None) -> None:
        """Initialise the error with the executable that failed to start.

        Args:
            executable: Executable path or name passed to the process launcher.
            reason: Optional description reported by the operating system.
        """

        super().__init__(reason or f"Failed to run {executable}")
        self.executable = executable
        self.reason = reason


class ExecutableNotFoundError(ValidationProcessError):
    """Raised when the linter executable does not exist."""


class SpawnFailureError(ValidationProcessError):
    """Raised when the linter executable exists but could not be started."""


__all__ = [
    "ConfigError",
    "ExecutableNotFoundError",
    "LintwatchError",
    "SpawnFailureError",
    "ValidationProcessError",
]
