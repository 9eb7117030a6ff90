# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Incremental conversion of process output chunks into complete lines."""

from __future__ import annotations

import codecs
from typing import Final

_TERMINATORS: Final[frozenset[str]] = frozenset({"\r", "\n"})


class LineDecoder:
    """Decode byte chunks from a stream and split them into terminated lines.

    A decoder instance owns the state of exactly one process invocation: the
    incremental codec (so multi-byte characters split across chunks are
    reassembled) and the unterminated fragment trailing the latest chunk.
    Runs of ``\\r`` and ``\\n`` characters act as a single separator, so
    ``\\r\\n`` line endings and blank lines never produce empty lines.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        """Create a decoder for ``encoding``.

        Args:
            encoding: Codec name used to decode the byte stream.

        Raises:
            LookupError: If ``encoding`` is not a known codec.
        """

        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._remaining: str | None = None

    @property
    def remaining(self) -> str | None:
        """Return the buffered fragment that has not been terminated yet."""

        return self._remaining

    def write(self, chunk: bytes) -> list[str]:
        """Decode ``chunk`` and return every line it completes.

        Args:
            chunk: Raw bytes read from the process output stream.

        Returns:
            list[str]: Complete lines, without terminators, in stream order.
        """

        decoded = self._decoder.decode(chunk)
        value = self._remaining + decoded if self._remaining else decoded
        return self._split(value)

    def end(self) -> str | None:
        """Flush the decoder and return the final unterminated fragment once.

        Returns:
            str | None: Trailing text that was never followed by a terminator,
            or ``None`` when the stream ended on a terminator.
        """

        # A truncated multi-byte sequence at EOF flushes as U+FFFD, never a terminator.
        tail = self._decoder.decode(b"", final=True)
        remaining = (self._remaining or "") + tail
        self._remaining = None
        return remaining or None

    def _split(self, value: str) -> list[str]:
        lines: list[str] = []
        length = len(value)
        start = 0
        while start < length and value[start] in _TERMINATORS:
            start += 1
        index = start
        while index < length:
            if value[index] in _TERMINATORS:
                lines.append(value[start:index])
                index += 1
                while index < length and value[index] in _TERMINATORS:
                    index += 1
                start = index
            else:
                index += 1
        self._remaining = value[start:] if start < length else None
        return lines


__all__ = ["LineDecoder"]
