# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Parse linter output lines into :class:`Diagnostic` instances."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Final

from .models import Diagnostic, Range

LOGGER = logging.getLogger(__name__)

# ``<file>:<line>:[<column>:] <rule id> <message>`` as printed by ``ansible-lint -p``.
LINT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?P<file>[^:]+):(?P<line>\d+):(?:(?P<column>\d+):)? (?P<id>[\w-]+) (?P<message>.*)"
)
UNKNOWN_MESSAGE: Final[str] = "unknown"


def _zero_based_line(raw: str | None) -> int:
    """Convert the 1-based line reported by the linter to a 0-based index."""
    try:
        value = int(raw or "1")
    except ValueError:
        return 0
    return max(value - 1, 0)


def extract(line: str) -> Diagnostic | None:
    """Return the diagnostic described by ``line`` or ``None`` when it does not match.

    The column group is recognised but deliberately not used: the linter does
    not report columns reliably, so every diagnostic spans its whole line.

    Args:
        line: One decoded line of linter output.

    Returns:
        Diagnostic | None: Parsed diagnostic, or ``None`` for banner and
        summary lines that do not follow the diagnostic format.
    """

    match = LINT_PATTERN.match(line)
    if match is None:
        return None
    LOGGER.debug("Found: %s", match.group(0))
    message = match.group("message")
    return Diagnostic(
        range=Range.whole_line(_zero_based_line(match.group("line"))),
        message=message if message is not None else UNKNOWN_MESSAGE,
        code=match.group("id"),
    )


def extract_all(lines: Iterable[str]) -> list[Diagnostic]:
    """Return diagnostics for every matching entry in ``lines``."""
    diagnostics: list[Diagnostic] = []
    for line in lines:
        diagnostic = extract(line)
        if diagnostic is not None:
            diagnostics.append(diagnostic)
    return diagnostics


__all__ = ["LINT_PATTERN", "UNKNOWN_MESSAGE", "extract", "extract_all"]
