# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Filesystem-driven host feeding workspace events to the validation provider."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Final

from watchfiles import Change, awatch

from ..config import TriggerMode
from ..errors import ConfigError
from ..logging import warn
from ..provider import ValidationProvider
from ..workspace import YAML_LANGUAGE, Workspace, language_for

LOGGER = logging.getLogger(__name__)

IGNORED_DIRECTORIES: Final[frozenset[str]] = frozenset({"node_modules", "__pycache__", "venv"})

FileChange = tuple[Change, str]


def iter_documents(root: Path) -> Iterator[Path]:
    """Yield YAML files below ``root``, skipping hidden and vendored directories."""

    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part.startswith(".") or part in IGNORED_DIRECTORIES for part in relative.parts[:-1]):
            continue
        if path.is_file() and language_for(path) == YAML_LANGUAGE:
            yield path


class WatchHost:
    """Translate filesystem changes into document and configuration events."""

    def __init__(self, workspace: Workspace, provider: ValidationProvider, *, use_emoji: bool = True) -> None:
        self._workspace = workspace
        self._provider = provider
        self._use_emoji = use_emoji

    @property
    def config_paths(self) -> frozenset[Path]:
        """Return the resolved configuration files that trigger a reload."""

        return frozenset(path.expanduser().resolve() for path in self._workspace.settings.watched_paths)

    def watch_roots(self) -> list[Path]:
        """Return the directories handed to the filesystem watcher."""

        roots = [self._workspace.root]
        for path in self.config_paths:
            parent = path.parent
            if parent.is_dir() and not parent.is_relative_to(self._workspace.root) and parent not in roots:
                roots.append(parent)
        return roots

    def open_existing(self) -> int:
        """Open every YAML document already present in the workspace."""

        count = 0
        for path in iter_documents(self._workspace.root):
            self._workspace.open_document(path)
            count += 1
        return count

    def handle_changes(self, changes: Iterable[FileChange]) -> None:
        """Apply one batch of filesystem changes.

        Deleted documents are closed, new documents are opened, modified
        documents fire a save (on-save mode) or a change (on-type mode), and a
        modified configuration file reloads the settings.
        """

        config_paths = self.config_paths
        config_changed = False
        for change, raw_path in sorted(changes, key=lambda item: item[1]):
            path = Path(raw_path).resolve()
            if path in config_paths:
                config_changed = True
                continue
            if language_for(path) != YAML_LANGUAGE:
                continue
            document = self._workspace.get_document(path.as_uri())
            if change == Change.deleted:
                if document is not None:
                    self._workspace.close_document(document)
                continue
            if not path.is_file():
                continue
            if document is None:
                self._workspace.open_document(path)
            elif self._provider.config.trigger is TriggerMode.ON_TYPE:
                self._workspace.change_document(document, path.read_text(encoding="utf-8"))
            else:
                self._workspace.save_document(document)
        if config_changed:
            try:
                self._workspace.notify_configuration_changed()
            except ConfigError as exc:
                warn(f"Ignoring invalid configuration: {exc}", use_emoji=self._use_emoji)

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Watch the workspace until ``stop_event`` is set or the task is cancelled."""

        roots = self.watch_roots()
        LOGGER.info("Watching %s", ", ".join(str(root) for root in roots))
        async for changes in awatch(*roots, stop_event=stop_event):
            try:
                self.handle_changes(changes)
            except OSError:
                LOGGER.exception("Error while applying file changes")


__all__ = ["WatchHost", "iter_documents"]
