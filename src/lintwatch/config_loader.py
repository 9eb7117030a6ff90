# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Scoped configuration loading for user and workspace settings files."""

from __future__ import annotations

import copy
import os
import tomllib
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

from pydantic import ValidationError

from .config import (
    DEFAULT_ENCODING,
    ConfigError,
    Setting,
    TriggerMode,
    ValidateSettings,
    ValidationConfig,
)

DEFAULT_INCLUDE_KEY: Final[str] = "include"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "lintwatch"
VALIDATE_SECTION_KEY: Final[str] = "validate"
WORKSPACE_CONFIG_NAME: Final[str] = ".lintwatch.toml"
PYPROJECT_NAME: Final[str] = "pyproject.toml"
CONFIG_ENV_VAR: Final[str] = "LINTWATCH_CONFIG"

_TOML_CACHE: dict[tuple[Path, int, int], Mapping[str, Any]] = {}

_DEFAULTS: Final[dict[Setting, Any]] = {
    Setting.ENABLE: True,
    Setting.RUN: TriggerMode.ON_SAVE.value,
    Setting.EXECUTABLE_PATH: None,
    Setting.ENCODING: DEFAULT_ENCODING,
}


@runtime_checkable
class ConfigSource(Protocol):
    """Provide raw configuration fragments."""

    name: str

    def load(self) -> Mapping[str, Any]:
        """Return the configuration fragment supplied by the source."""

        raise NotImplementedError

    def describe(self) -> str:
        """Return a human readable description of the source."""

        raise NotImplementedError


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` recursively updated with ``override``."""

    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _expand_env(value: Any, env: Mapping[str, str]) -> Any:
    """Expand ``${VAR}`` references and a leading ``~`` inside string values."""

    if isinstance(value, str):
        expanded = value
        for name, replacement in env.items():
            expanded = expanded.replace(f"${{{name}}}", replacement)
        if expanded.startswith("~"):
            expanded = os.path.expanduser(expanded)
        return expanded
    if isinstance(value, Mapping):
        return {key: _expand_env(item, env) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item, env) for item in value]
    return value


class TomlConfigSource(ConfigSource):
    """Load configuration data from a TOML document with include support."""

    def __init__(
        self,
        path: Path,
        *,
        name: str | None = None,
        include_key: str = DEFAULT_INCLUDE_KEY,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._root_path = path
        self.name = name or str(path)
        self._include_key = include_key
        self._env = env if env is not None else os.environ

    @property
    def path(self) -> Path:
        """Return the root document loaded by this source."""

        return self._root_path

    def load(self) -> Mapping[str, Any]:
        return self._load(self._root_path, ())

    def _load(self, path: Path, stack: tuple[Path, ...]) -> Mapping[str, Any]:
        if not path.exists():
            return {}
        if path in stack:
            include_chain = " -> ".join(str(entry) for entry in (*stack, path))
            raise ConfigError(f"Circular include detected: {include_chain}")
        resolved = path.resolve()
        stat = resolved.stat()
        cache_key = (resolved, stat.st_mtime_ns, stat.st_size)
        if cached := _TOML_CACHE.get(cache_key):
            data = copy.deepcopy(cached)
        else:
            try:
                with resolved.open("rb") as handle:
                    data = tomllib.load(handle)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
            _TOML_CACHE[cache_key] = copy.deepcopy(data)
        if not isinstance(data, MutableMapping):
            raise ConfigError(f"Configuration at {path} must be a table")
        document: dict[str, Any] = dict(data)
        includes = document.pop(self._include_key, None)
        merged: dict[str, Any] = {}
        for include_path in self._coerce_includes(includes, path.parent):
            fragment = self._load(include_path, stack + (path,))
            merged = _deep_merge(merged, fragment)
        merged = _deep_merge(merged, document)
        return _expand_env(merged, self._env)

    def _coerce_includes(self, raw: Any, base_dir: Path) -> Iterable[Path]:
        if raw is None:
            return []
        if isinstance(raw, (str, Path)):
            return [self._resolve_path(Path(raw), base_dir)]
        if isinstance(raw, Iterable):
            return [self._resolve_path(Path(item), base_dir) for item in raw]
        raise ConfigError(f"Unsupported include declaration: {raw!r}")

    @staticmethod
    def _resolve_path(path: Path, base_dir: Path) -> Path:
        return path if path.is_absolute() else (base_dir / path)

    def describe(self) -> str:
        return f"TOML configuration at {self.name}"


class PyProjectConfigSource(TomlConfigSource):
    """Read configuration from ``[tool.lintwatch]`` within ``pyproject.toml``."""

    def __init__(self, path: Path, *, env: Mapping[str, str] | None = None) -> None:
        super().__init__(path, name=str(path), env=env)

    def load(self) -> Mapping[str, Any]:
        data = super().load()
        tool_section = data.get(PYPROJECT_TOOL_KEY)
        if not isinstance(tool_section, Mapping):
            return {}
        section = tool_section.get(PYPROJECT_SECTION_KEY)
        if not isinstance(section, Mapping):
            return {}
        return dict(section)

    def describe(self) -> str:
        return f"pyproject.toml ({self.name})"


class MappingConfigSource(ConfigSource):
    """Serve a fixed in-memory fragment, used for command-line overrides."""

    def __init__(self, data: Mapping[str, Any], *, name: str = "overrides") -> None:
        self.name = name
        self._data = copy.deepcopy(dict(data))

    def load(self) -> Mapping[str, Any]:
        return copy.deepcopy(self._data)

    def describe(self) -> str:
        return f"in-memory {self.name}"


@dataclass(frozen=True, slots=True)
class SettingInspection:
    """Per-scope values of a single setting."""

    key: Setting
    default_value: Any
    global_value: Any = None
    workspace_value: Any = None

    @property
    def effective(self) -> Any:
        """Return the value that wins: workspace, then user, then default."""

        if self.workspace_value is not None:
            return self.workspace_value
        if self.global_value is not None:
            return self.global_value
        return self.default_value


def user_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Return the location of the user-level configuration file.

    Args:
        env: Environment mapping consulted for ``LINTWATCH_CONFIG`` and
            ``XDG_CONFIG_HOME``. Defaults to :data:`os.environ`.

    Returns:
        Path: Path of the user configuration file (it may not exist).
    """

    environ = env if env is not None else os.environ
    explicit = environ.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser()
    base = environ.get("XDG_CONFIG_HOME")
    config_home = Path(base).expanduser() if base else Path.home() / ".config"
    return config_home / "lintwatch" / "config.toml"


def _validate_fragment(fragment: Mapping[str, Any], origin: str) -> ValidateSettings:
    section = fragment.get(VALIDATE_SECTION_KEY, {})
    if not isinstance(section, Mapping):
        raise ConfigError(f"[{VALIDATE_SECTION_KEY}] in {origin} must be a table")
    try:
        return ValidateSettings.model_validate(dict(section))
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings in {origin}: {exc}") from exc


class SettingsStore:
    """Layered, scope-aware view over user and workspace configuration files."""

    def __init__(
        self,
        *,
        user_sources: Sequence[ConfigSource] = (),
        workspace_sources: Sequence[ConfigSource] = (),
    ) -> None:
        """Create a store over explicit sources.

        Args:
            user_sources: Sources forming the user (global) scope, lowest
                precedence first.
            workspace_sources: Sources forming the workspace scope, lowest
                precedence first.
        """

        self._user_sources = list(user_sources)
        self._workspace_sources = list(workspace_sources)
        self._user = ValidateSettings()
        self._workspace = ValidateSettings()
        self.reload()

    @classmethod
    def for_workspace(
        cls,
        root: Path,
        *,
        env: Mapping[str, str] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> SettingsStore:
        """Return a store reading the user file plus the workspace files under ``root``.

        Args:
            root: Workspace folder.
            env: Environment used to locate the user file and expand values.
            overrides: Optional fragment (for example ``{"validate": {"run": "onType"}}``)
                applied on top of the workspace scope.

        Returns:
            SettingsStore: Loaded settings store.
        """

        environ = env if env is not None else os.environ
        workspace_sources: list[ConfigSource] = [
            PyProjectConfigSource(root / PYPROJECT_NAME, env=environ),
            TomlConfigSource(root / WORKSPACE_CONFIG_NAME, name="workspace", env=environ),
        ]
        if overrides:
            workspace_sources.append(MappingConfigSource(overrides))
        return cls(
            user_sources=[TomlConfigSource(user_config_path(environ), name="user", env=environ)],
            workspace_sources=workspace_sources,
        )

    @property
    def watched_paths(self) -> tuple[Path, ...]:
        """Return the files whose modification should trigger a reload."""

        paths: list[Path] = []
        for source in (*self._user_sources, *self._workspace_sources):
            path = getattr(source, "path", None)
            if isinstance(path, Path):
                paths.append(path)
        return tuple(paths)

    def settings_file(self) -> Path | None:
        """Return the file a user should edit to change validation settings."""

        for source in (*reversed(self._workspace_sources), *reversed(self._user_sources)):
            path = getattr(source, "path", None)
            if isinstance(path, Path) and path.exists():
                return path
        paths = self.watched_paths
        return paths[0] if paths else None

    def reload(self) -> None:
        """Re-read every source.

        Raises:
            ConfigError: If a source contains invalid TOML or settings.
        """

        user = self._load_scope(self._user_sources)
        workspace = self._load_scope(self._workspace_sources)
        self._user, self._workspace = user, workspace

    @staticmethod
    def _load_scope(sources: Sequence[ConfigSource]) -> ValidateSettings:
        merged: dict[str, Any] = {}
        for source in sources:
            merged = _deep_merge(merged, source.load())
        origin = ", ".join(source.describe() for source in sources) or "<none>"
        return _validate_fragment(merged, origin)

    def inspect(self, key: Setting) -> SettingInspection:
        """Return the per-scope values recorded for ``key``."""

        attribute = key.value.split(".", 1)[1]
        if not hasattr(self._user, attribute):
            raise KeyError(key.value)
        return SettingInspection(
            key=key,
            default_value=_DEFAULTS.get(key),
            global_value=getattr(self._user, attribute),
            workspace_value=getattr(self._workspace, attribute),
        )

    def get(self, key: Setting, default: Any = None) -> Any:
        """Return the effective value of ``key`` or ``default`` when unset everywhere."""

        value = self.inspect(key).effective
        return default if value is None else value


def resolve_validation_config(settings: SettingsStore) -> ValidationConfig:
    """Build a :class:`ValidationConfig` from the current settings.

    A workspace-level executable path takes precedence and is flagged as not
    user defined; a user-level path is flagged as user defined; when neither
    scope sets one the flag stays ``None`` and the default executable is used.

    Args:
        settings: Settings store to read.

    Returns:
        ValidationConfig: Resolved configuration snapshot.

    Raises:
        ConfigError: If the resolved values fail validation.
    """

    inspection = settings.inspect(Setting.EXECUTABLE_PATH)
    executable: str | None
    user_defined: bool | None
    if inspection.workspace_value:
        executable, user_defined = inspection.workspace_value, False
    elif inspection.global_value:
        executable, user_defined = inspection.global_value, True
    else:
        executable, user_defined = None, None
    try:
        return ValidationConfig(
            enabled=bool(settings.get(Setting.ENABLE, True)),
            trigger=TriggerMode.from_value(settings.get(Setting.RUN, TriggerMode.ON_SAVE.value)),
            executable_path=executable,
            executable_is_user_defined=user_defined,
            encoding=settings.get(Setting.ENCODING, DEFAULT_ENCODING),
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid validation settings: {exc}") from exc


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigSource",
    "MappingConfigSource",
    "PyProjectConfigSource",
    "SettingInspection",
    "SettingsStore",
    "TomlConfigSource",
    "WORKSPACE_CONFIG_NAME",
    "resolve_validation_config",
    "user_config_path",
]
