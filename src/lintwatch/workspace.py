# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""In-process workspace: open documents, their events and published diagnostics."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from .config_loader import SettingsStore
from .events import Disposable, EventEmitter
from .models import Diagnostic
from .state import Memento, MemoryStore

LOGGER = logging.getLogger(__name__)

YAML_LANGUAGE: Final[str] = "yaml"
PLAINTEXT_LANGUAGE: Final[str] = "plaintext"
LANGUAGE_EXTENSIONS: Final[dict[str, frozenset[str]]] = {
    YAML_LANGUAGE: frozenset({".yml", ".yaml"}),
}


def language_for(path: Path) -> str:
    """Return the language identifier inferred from ``path``'s suffix."""

    suffix = path.suffix.lower()
    for language, extensions in LANGUAGE_EXTENSIONS.items():
        if suffix in extensions:
            return language
    return PLAINTEXT_LANGUAGE


@dataclass(slots=True)
class TextDocument:
    """Open document tracked by a :class:`Workspace`."""

    path: Path
    language_id: str
    text: str = ""
    version: int = 1

    @classmethod
    def from_path(cls, path: Path, *, text: str | None = None, language_id: str | None = None) -> TextDocument:
        """Create a document for ``path``, reading its content when ``text`` is omitted."""

        resolved = path.expanduser().resolve()
        content = text if text is not None else resolved.read_text(encoding="utf-8")
        return cls(path=resolved, language_id=language_id or language_for(resolved), text=content)

    @property
    def uri(self) -> str:
        """Return the document key."""

        return self.path.as_uri()

    @property
    def file_name(self) -> str:
        """Return the filesystem path as a string."""

        return str(self.path)

    def get_text(self) -> str:
        """Return the current buffered content."""

        return self.text


@dataclass(frozen=True, slots=True)
class DiagnosticsChange:
    """Notification that diagnostics for ``uri`` were replaced or removed."""

    uri: str
    diagnostics: tuple[Diagnostic, ...]
    removed: bool = False


class DiagnosticCollection:
    """Diagnostics published per document key."""

    def __init__(self, name: str = "lintwatch") -> None:
        self.name = name
        self._entries: dict[str, tuple[Diagnostic, ...]] = {}
        self.on_did_change: EventEmitter[DiagnosticsChange] = EventEmitter(f"{name}.diagnostics")
        self._disposed = False

    def __iter__(self) -> Iterator[tuple[str, tuple[Diagnostic, ...]]]:
        return iter(tuple(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def disposed(self) -> bool:
        """Return ``True`` once the collection was disposed."""

        return self._disposed

    def has(self, uri: str) -> bool:
        """Return ``True`` when diagnostics are stored for ``uri``."""

        return uri in self._entries

    def get(self, uri: str) -> tuple[Diagnostic, ...]:
        """Return the diagnostics stored for ``uri`` (empty when none)."""

        return self._entries.get(uri, ())

    def set(self, uri: str, diagnostics: Sequence[Diagnostic]) -> None:
        """Replace the diagnostics for ``uri`` with ``diagnostics`` as one unit."""

        if self._disposed:
            raise RuntimeError(f"diagnostic collection '{self.name}' is disposed")
        snapshot = tuple(diagnostics)
        self._entries[uri] = snapshot
        self.on_did_change.fire(DiagnosticsChange(uri=uri, diagnostics=snapshot))

    def delete(self, uri: str) -> None:
        """Remove the diagnostics for ``uri``."""

        if self._entries.pop(uri, None) is not None:
            self.on_did_change.fire(DiagnosticsChange(uri=uri, diagnostics=(), removed=True))

    def clear(self) -> None:
        """Remove every entry."""

        for uri in tuple(self._entries):
            self.delete(uri)

    def dispose(self) -> None:
        """Clear the collection and stop notifying listeners."""

        self._entries.clear()
        self.on_did_change.dispose()
        self._disposed = True


class CommandRegistry:
    """Named commands invokable from the CLI or other components."""

    def __init__(self) -> None:
        self._commands: dict[str, Callable[..., Any]] = {}

    def register(self, command_id: str, callback: Callable[..., Any]) -> Disposable:
        """Register ``callback`` under ``command_id``.

        Raises:
            ValueError: If ``command_id`` is already registered.
        """

        if command_id in self._commands:
            raise ValueError(f"command '{command_id}' already registered")
        self._commands[command_id] = callback
        return Disposable(lambda: self._commands.pop(command_id, None))

    def has(self, command_id: str) -> bool:
        """Return ``True`` when ``command_id`` is registered."""

        return command_id in self._commands

    def execute(self, command_id: str, *args: Any) -> Any:
        """Invoke the command registered as ``command_id``.

        Raises:
            KeyError: If no such command exists.
        """

        try:
            callback = self._commands[command_id]
        except KeyError:
            raise KeyError(f"unknown command '{command_id}'") from None
        return callback(*args)


@dataclass(slots=True)
class Workspace:
    """Folder, open documents and the events fired as they change."""

    root: Path
    settings: SettingsStore
    state: Memento = field(default_factory=MemoryStore)
    commands: CommandRegistry = field(default_factory=CommandRegistry)
    context: dict[str, Any] = field(default_factory=dict)
    on_did_open_text_document: EventEmitter[TextDocument] = field(default_factory=lambda: EventEmitter("open"))
    on_did_close_text_document: EventEmitter[TextDocument] = field(default_factory=lambda: EventEmitter("close"))
    on_did_save_text_document: EventEmitter[TextDocument] = field(default_factory=lambda: EventEmitter("save"))
    on_did_change_text_document: EventEmitter[TextDocument] = field(default_factory=lambda: EventEmitter("change"))
    on_did_change_configuration: EventEmitter[None] = field(default_factory=lambda: EventEmitter("configuration"))
    _documents: dict[str, TextDocument] = field(default_factory=dict, init=False, repr=False)

    @property
    def text_documents(self) -> tuple[TextDocument, ...]:
        """Return every open document."""

        return tuple(self._documents.values())

    def get_document(self, uri: str) -> TextDocument | None:
        """Return the open document for ``uri``, if any."""

        return self._documents.get(uri)

    def is_open(self, uri: str) -> bool:
        """Return ``True`` while ``uri`` is open."""

        return uri in self._documents

    def set_context(self, key: str, value: Any) -> None:
        """Record a context flag consumed by front ends."""

        self.context[key] = value

    def open_document(self, path: Path, *, text: str | None = None, language_id: str | None = None) -> TextDocument:
        """Open ``path`` (or return the already open document) and fire the open event."""

        resolved = path.expanduser().resolve()
        existing = self._documents.get(resolved.as_uri())
        if existing is not None:
            return existing
        document = TextDocument.from_path(resolved, text=text, language_id=language_id)
        self._documents[document.uri] = document
        LOGGER.debug("Opened %s", document.file_name)
        self.on_did_open_text_document.fire(document)
        return document

    def change_document(self, document: TextDocument, text: str) -> TextDocument:
        """Replace the buffered text of ``document`` and fire the change event."""

        document.text = text
        document.version += 1
        self.on_did_change_text_document.fire(document)
        return document

    def save_document(self, document: TextDocument, *, reload: bool = True) -> TextDocument:
        """Fire the save event for ``document``.

        Args:
            document: Open document that was written to disk.
            reload: When ``True`` the buffered text is refreshed from disk.

        Returns:
            TextDocument: The saved document.
        """

        if reload and document.path.exists():
            text = document.path.read_text(encoding="utf-8")
            if text != document.text:
                document.text = text
                document.version += 1
        self.on_did_save_text_document.fire(document)
        return document

    def close_document(self, document: TextDocument) -> None:
        """Close ``document`` and fire the close event."""

        if self._documents.pop(document.uri, None) is None:
            return
        LOGGER.debug("Closed %s", document.file_name)
        self.on_did_close_text_document.fire(document)

    def notify_configuration_changed(self) -> None:
        """Reload settings and fire the configuration change event.

        Raises:
            ConfigError: If the new settings are invalid; listeners are not
                notified and the previous settings stay active.
        """

        self.settings.reload()
        self.on_did_change_configuration.fire(None)


__all__ = [
    "CommandRegistry",
    "DiagnosticCollection",
    "DiagnosticsChange",
    "LANGUAGE_EXTENSIONS",
    "PLAINTEXT_LANGUAGE",
    "TextDocument",
    "Workspace",
    "YAML_LANGUAGE",
    "language_for",
]
