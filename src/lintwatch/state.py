# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Durable per-workspace key/value storage."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

from .errors import ConfigError

LOGGER = logging.getLogger(__name__)

STATE_ENV_VAR: Final[str] = "LINTWATCH_STATE_DIR"


@runtime_checkable
class Memento(Protocol):
    """Key/value store whose values survive process restarts."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key`` or ``default``."""

        raise NotImplementedError

    def update(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``; ``None`` removes the entry."""

        raise NotImplementedError


class MemoryStore(Memento):
    """Volatile :class:`Memento` used by tests and one-shot runs."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def update(self, key: str, value: Any) -> None:
        if value is None:
            self._values.pop(key, None)
        else:
            self._values[key] = value

    def keys(self) -> tuple[str, ...]:
        """Return the stored keys."""
        return tuple(self._values)


def state_home(env: Mapping[str, str] | None = None) -> Path:
    """Return the directory holding lintwatch state files.

    Args:
        env: Environment mapping consulted for ``LINTWATCH_STATE_DIR`` and
            ``XDG_STATE_HOME``. Defaults to :data:`os.environ`.

    Returns:
        Path: Directory under which workspace stores are written.
    """

    environ = env if env is not None else os.environ
    explicit = environ.get(STATE_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser()
    base = environ.get("XDG_STATE_HOME")
    state_dir = Path(base).expanduser() if base else Path.home() / ".local" / "state"
    return state_dir / "lintwatch"


def workspace_state_path(root: Path, env: Mapping[str, str] | None = None) -> Path:
    """Return the state file for the workspace rooted at ``root``.

    The file lives outside the workspace so a repository cannot ship a
    pre-approved trust decision for its own executable.
    """

    digest = hashlib.sha256(str(root.resolve()).encode("utf-8")).hexdigest()
    return state_home(env) / "workspaces" / f"{digest}.json"


class WorkspaceStore(Memento):
    """JSON-file backed :class:`Memento` scoped to a single workspace."""

    def __init__(self, path: Path) -> None:
        """Open the store at ``path``.

        Args:
            path: JSON file backing the store. It is created on first write.

        Raises:
            ConfigError: If the existing file is not a JSON object.
        """

        self._path = path
        self._values: dict[str, Any] = self._read()

    @classmethod
    def for_workspace(cls, root: Path, env: Mapping[str, str] | None = None) -> WorkspaceStore:
        """Open the store associated with the workspace at ``root``."""

        return cls(workspace_state_path(root, env))

    @property
    def path(self) -> Path:
        """Return the backing file."""

        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def update(self, key: str, value: Any) -> None:
        if value is None:
            if key not in self._values:
                return
            del self._values[key]
        else:
            self._values[key] = value
        self._write()

    def _read(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ConfigError(f"State file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError(f"State file {self._path} must contain a JSON object")
        return payload

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Wrote workspace state to %s", self._path)


__all__ = [
    "Memento",
    "MemoryStore",
    "STATE_ENV_VAR",
    "WorkspaceStore",
    "state_home",
    "workspace_state_path",
]
