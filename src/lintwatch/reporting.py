# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Render published diagnostics to the console."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Final
from urllib.parse import unquote, urlparse

from rich.console import Console
from rich.text import Text

from .models import END_OF_LINE, Diagnostic, Severity
from .workspace import DiagnosticsChange

LOCATION_SEPARATOR: Final[str] = ":"


def severity_color(sev: Severity) -> str:
    """Return the rich colour name associated with a severity level."""

    return {
        Severity.ERROR: "red",
        Severity.WARNING: "yellow",
        Severity.INFORMATION: "blue",
        Severity.HINT: "cyan",
    }.get(sev, "yellow")


def path_from_uri(uri: str) -> Path:
    """Return the filesystem path encoded in a ``file://`` document key."""

    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return Path(uri)
    return Path(unquote(parsed.path))


def display_path(uri: str, root: Path | None = None) -> str:
    """Return the document path for ``uri``, relative to ``root`` when it lies below it."""

    path = path_from_uri(uri)
    if root is not None and path.is_relative_to(root):
        path = path.relative_to(root)
    return path.as_posix()


def display_location(uri: str, diagnostic: Diagnostic, root: Path | None = None) -> str:
    """Return ``path:line`` (1-based) for ``diagnostic``."""

    location = f"{display_path(uri, root)}{LOCATION_SEPARATOR}{diagnostic.range.start_line + 1}"
    if diagnostic.range.start_column and diagnostic.range.end_column != END_OF_LINE:
        location += f"{LOCATION_SEPARATOR}{diagnostic.range.start_column + 1}"
    return location


def format_diagnostic_line(uri: str, diagnostic: Diagnostic, *, root: Path | None, color: bool) -> Text:
    """Return a formatted diagnostic line."""

    severity_text = Text(diagnostic.severity.value)
    if color:
        severity_text.stylize(severity_color(diagnostic.severity))
    line = Text("  ")
    line.append_text(severity_text)
    line.append(" ")
    line.append(display_location(uri, diagnostic, root), style="bold" if color else None)
    if diagnostic.code:
        line.append(" [")
        line.append(diagnostic.code, style="magenta" if color else None)
        line.append("]")
    line.append(f" {diagnostic.message}")
    return line


class ConsoleDiagnosticsReporter:
    """Print diagnostics whenever a collection publishes a change."""

    def __init__(self, console: Console, *, root: Path | None = None, color: bool = True) -> None:
        self._console = console
        self._root = root
        self._color = color
        self.published = 0

    def __call__(self, change: DiagnosticsChange) -> None:
        if change.removed:
            return
        self.published += len(change.diagnostics)
        self.render(change.uri, change.diagnostics)

    def render(self, uri: str, diagnostics: Iterable[Diagnostic]) -> None:
        """Print ``diagnostics`` for ``uri``, or a clean marker when there are none."""

        items = list(diagnostics)
        path = display_path(uri, self._root)
        if not items:
            self._console.print(Text(f"{path}: no problems", style="green" if self._color else ""))
            return
        self._console.print(Text(f"{path}: {len(items)} problem(s)", style="bold" if self._color else ""))
        for diagnostic in items:
            self._console.print(format_diagnostic_line(uri, diagnostic, root=self._root, color=self._color))


__all__ = [
    "ConsoleDiagnosticsReporter",
    "display_location",
    "display_path",
    "format_diagnostic_line",
    "path_from_uri",
    "severity_color",
]
