# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for the lintwatch validation provider."""

from __future__ import annotations

import codecs
from enum import Enum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import ConfigError

DEFAULT_EXECUTABLE: Final[str] = "ansible-lint"
DEFAULT_ENCODING: Final[str] = "utf-8"
ON_TYPE_DELAY: Final[float] = 0.25
ON_SAVE_DELAY: Final[float] = 0.0


class Setting(str, Enum):
    """Keys understood by the settings store."""

    RUN = "validate.run"
    CHECKED_EXECUTABLE_PATH = "validate.checkedExecutablePath"
    ENABLE = "validate.enable"
    EXECUTABLE_PATH = "validate.executable_path"
    ENCODING = "validate.encoding"


class TriggerMode(str, Enum):
    """When a validation runs for a document."""

    ON_SAVE = "onSave"
    ON_TYPE = "onType"

    @classmethod
    def from_value(cls, value: object) -> TriggerMode:
        """Return ``ON_TYPE`` for ``"onType"`` and ``ON_SAVE`` for anything else."""

        if isinstance(value, TriggerMode):
            return value
        if value == cls.ON_TYPE.value:
            return cls.ON_TYPE
        return cls.ON_SAVE


class ExecutableScope(str, Enum):
    """Configuration scope that supplied the executable path."""

    DEFAULT = "default"
    USER = "user"
    WORKSPACE = "workspace"


class ValidateSettings(BaseModel):
    """Raw ``[validate]`` table as written in a configuration file."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    enable: bool | None = None
    run: str | None = None
    executable_path: str | None = None
    encoding: str | None = None

    @field_validator("executable_path", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        """Treat empty executable paths as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ValidationConfig(BaseModel):
    """Resolved configuration consumed by the validation provider."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    trigger: TriggerMode = TriggerMode.ON_SAVE
    executable_path: str | None = None
    executable_is_user_defined: bool | None = None
    encoding: str = DEFAULT_ENCODING

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        """Reject encodings Python cannot decode."""
        try:
            codecs.lookup(value)
        except LookupError as exc:
            raise ValueError(f"unknown encoding '{value}'") from exc
        return value

    @property
    def debounce_delay(self) -> float:
        """Return the debounce delay in seconds derived from the trigger mode."""

        return ON_TYPE_DELAY if self.trigger is TriggerMode.ON_TYPE else ON_SAVE_DELAY

    @property
    def executable(self) -> str:
        """Return the executable to spawn, falling back to the default linter."""

        return self.executable_path or DEFAULT_EXECUTABLE

    @property
    def scope(self) -> ExecutableScope:
        """Return the scope the executable path was read from."""

        if self.executable_is_user_defined is None:
            return ExecutableScope.DEFAULT
        return ExecutableScope.USER if self.executable_is_user_defined else ExecutableScope.WORKSPACE

    @property
    def requires_consent(self) -> bool:
        """Return ``True`` when the executable comes from an untrusted scope."""

        return self.executable_is_user_defined is False


__all__ = [
    "ConfigError",
    "DEFAULT_ENCODING",
    "DEFAULT_EXECUTABLE",
    "ExecutableScope",
    "ON_SAVE_DELAY",
    "ON_TYPE_DELAY",
    "Setting",
    "TriggerMode",
    "ValidateSettings",
    "ValidationConfig",
]
