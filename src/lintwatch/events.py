# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Minimal event emitter with disposable subscriptions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, MutableSequence
from typing import Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], None]


class Disposable:
    """Handle releasing a resource exactly once."""

    def __init__(self, callback: Callable[[], None] | None = None) -> None:
        self._callback = callback

    @classmethod
    def combine(cls, disposables: Iterable[Disposable]) -> Disposable:
        """Return a handle disposing every item of ``disposables``."""

        items = list(disposables)

        def _dispose_all() -> None:
            for item in items:
                item.dispose()

        return cls(_dispose_all)

    @property
    def disposed(self) -> bool:
        """Return ``True`` once :meth:`dispose` ran."""

        return self._callback is None

    def dispose(self) -> None:
        """Release the resource; later calls are no-ops."""

        callback = self._callback
        self._callback = None
        if callback is not None:
            callback()


class EventEmitter(Generic[T]):
    """Deliver values to subscribed listeners in subscription order."""

    def __init__(self, name: str = "event") -> None:
        self.name = name
        self._listeners: list[Listener[T]] = []

    @property
    def listener_count(self) -> int:
        """Return the number of active subscriptions."""

        return len(self._listeners)

    def subscribe(
        self,
        listener: Listener[T],
        subscriptions: MutableSequence[Disposable] | None = None,
    ) -> Disposable:
        """Register ``listener`` and return the handle that removes it.

        Args:
            listener: Callable invoked with every fired value.
            subscriptions: Optional list the handle is appended to.

        Returns:
            Disposable: Handle unsubscribing ``listener``.
        """

        self._listeners.append(listener)
        handle = Disposable(lambda: self._remove(listener))
        if subscriptions is not None:
            subscriptions.append(handle)
        return handle

    def fire(self, value: T) -> None:
        """Invoke every listener with ``value``.

        A failing listener is logged and does not prevent delivery to the
        remaining listeners.
        """

        for listener in tuple(self._listeners):
            try:
                listener(value)
            except Exception:  # listener isolation
                LOGGER.exception("Listener for %s failed", self.name)

    def dispose(self) -> None:
        """Drop every listener."""

        self._listeners.clear()

    def _remove(self, listener: Listener[T]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return


__all__ = ["Disposable", "EventEmitter", "Listener"]
