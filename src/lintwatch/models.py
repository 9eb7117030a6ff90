# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core data models shared across the lintwatch package."""

from __future__ import annotations

import sys
from enum import Enum
from typing import Final

from pydantic import BaseModel, ConfigDict, model_validator

END_OF_LINE: Final[int] = sys.maxsize
DEFAULT_SOURCE: Final[str] = "ansible-lint"


class Severity(str, Enum):
    """Severity levels attached to published diagnostics."""

    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"
    HINT = "hint"


class Range(BaseModel):
    """Zero-based span inside a document."""

    model_config = ConfigDict(frozen=True)

    start_line: int
    start_column: int
    end_line: int
    end_column: int

    @model_validator(mode="after")
    def _check_order(self) -> Range:
        """Reject ranges whose end precedes their start."""
        if (self.end_line, self.end_column) < (self.start_line, self.start_column):
            raise ValueError("range end must not precede range start")
        return self

    @classmethod
    def whole_line(cls, line: int) -> Range:
        """Return a range covering ``line`` from its first column to its end."""
        return cls(start_line=line, start_column=0, end_line=line, end_column=END_OF_LINE)


class Diagnostic(BaseModel):
    """Single linter finding attached to a document."""

    model_config = ConfigDict(frozen=True)

    range: Range
    message: str
    severity: Severity = Severity.ERROR
    code: str | None = None
    source: str = DEFAULT_SOURCE

    @property
    def line(self) -> int:
        """Expose the zero-based start line."""
        return self.range.start_line


__all__ = ["DEFAULT_SOURCE", "END_OF_LINE", "Diagnostic", "Range", "Severity"]
