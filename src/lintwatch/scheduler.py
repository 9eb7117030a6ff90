# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Debounce and throttle validation runs per document.

Two primitives are combined here. :class:`Delayer` postpones a task until no
further trigger arrived for ``delay`` seconds, keeping only the most recent
task. :class:`Throttler` runs at most one task at a time and keeps at most one
follow-up task queued behind it. :class:`ThrottledDelayer` chains the two so a
burst of edits turns into one run, and a run never overlaps another run for
the same document.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from functools import partial
from typing import Any, Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
TaskFactory = Callable[[], Awaitable[T]]


def _chain(source: asyncio.Future[Any], target: asyncio.Future[Any]) -> None:
    """Copy the outcome of ``source`` into ``target`` unless it already settled."""

    if target.done():
        return
    if source.cancelled():
        target.cancel()
        return
    exc = source.exception()
    if exc is not None:
        target.set_exception(exc)
    else:
        target.set_result(source.result())


class Throttler(Generic[T]):
    """Run one task at a time with at most one task queued behind it."""

    def __init__(self) -> None:
        self._active: asyncio.Future[T] | None = None
        self._queued: asyncio.Future[T] | None = None
        self._queued_factory: TaskFactory[T] | None = None

    @property
    def is_running(self) -> bool:
        """Return ``True`` while a task started by this throttler is executing."""

        return self._active is not None

    @property
    def has_queued(self) -> bool:
        """Return ``True`` when a follow-up task waits for the active one."""

        return self._queued_factory is not None

    def queue(self, factory: TaskFactory[T]) -> asyncio.Future[T]:
        """Start ``factory`` now or queue it behind the running task.

        Queuing while another task is already queued replaces the queued
        factory; both callers then observe the outcome of the replacement.

        Args:
            factory: Zero-argument callable producing the awaitable to run.

        Returns:
            asyncio.Future[T]: Future resolving with the result of the run that
            serves this request.
        """

        loop = asyncio.get_running_loop()
        if self._active is not None:
            self._queued_factory = factory
            if self._queued is None:
                self._queued = loop.create_future()
            return self._queued
        active = asyncio.ensure_future(factory())
        self._active = active
        active.add_done_callback(self._on_active_done)
        return active

    def cancel(self) -> None:
        """Drop the queued task and cancel the running one."""

        queued = self._queued
        self._queued = None
        self._queued_factory = None
        if queued is not None:
            queued.cancel()
        if self._active is not None:
            self._active.cancel()

    def _on_active_done(self, finished: asyncio.Future[T]) -> None:
        if self._active is finished:
            self._active = None
        factory = self._queued_factory
        queued = self._queued
        self._queued_factory = None
        self._queued = None
        if factory is None or queued is None:
            return
        follow_up = self.queue(factory)
        follow_up.add_done_callback(partial(_chain, target=queued))


class Delayer(Generic[T]):
    """Run the most recently supplied task once triggers stop for ``delay`` seconds."""

    def __init__(self, default_delay: float) -> None:
        """Initialise the delayer.

        Args:
            default_delay: Seconds to wait after the last trigger. ``0`` still
                defers execution to the next event loop iteration.
        """

        self.default_delay = default_delay
        self._handle: asyncio.TimerHandle | None = None
        self._completion: asyncio.Future[T] | None = None
        self._task: Callable[[], Awaitable[T]] | None = None

    @property
    def is_triggered(self) -> bool:
        """Return ``True`` while a timer is waiting to fire."""

        return self._handle is not None

    def trigger(self, task: Callable[[], Awaitable[T]], delay: float | None = None) -> asyncio.Future[T]:
        """Replace the pending task with ``task`` and restart the countdown.

        Args:
            task: Zero-argument callable producing the awaitable to run.
            delay: Optional override for :attr:`default_delay`.

        Returns:
            asyncio.Future[T]: Future shared by every trigger coalesced into
            the same run.
        """

        loop = asyncio.get_running_loop()
        self._task = task
        self._cancel_timeout()
        if self._completion is None or self._completion.done():
            self._completion = loop.create_future()
        wait = self.default_delay if delay is None else delay
        self._handle = loop.call_later(max(wait, 0.0), self._fire)
        return self._completion

    def cancel(self) -> None:
        """Cancel the timer and the shared completion future."""

        self._cancel_timeout()
        self._task = None
        completion = self._completion
        self._completion = None
        if completion is not None:
            completion.cancel()

    def _cancel_timeout(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = self._task
        completion = self._completion
        self._task = None
        self._completion = None
        if task is None or completion is None:
            return
        try:
            awaitable = task()
        except Exception as exc:  # surfaced through the completion future
            completion.set_exception(exc)
            return
        asyncio.ensure_future(awaitable).add_done_callback(partial(_chain, target=completion))


class ThrottledDelayer(Generic[T]):
    """Debounce triggers, then run them through a :class:`Throttler`."""

    def __init__(self, default_delay: float) -> None:
        self._delayer: Delayer[T] = Delayer(default_delay)
        self._throttler: Throttler[T] = Throttler()
        self._disposed = False

    @property
    def default_delay(self) -> float:
        """Return the debounce delay in seconds."""

        return self._delayer.default_delay

    @property
    def is_pending(self) -> bool:
        """Return ``True`` when work is waiting on the timer or the throttler."""

        return self._delayer.is_triggered or self._throttler.has_queued

    @property
    def is_running(self) -> bool:
        """Return ``True`` while a task is executing."""

        return self._throttler.is_running

    @property
    def disposed(self) -> bool:
        """Return ``True`` once :meth:`dispose` has been called."""

        return self._disposed

    def trigger(self, factory: TaskFactory[T], delay: float | None = None) -> asyncio.Future[T]:
        """Schedule ``factory`` after the debounce delay.

        Args:
            factory: Zero-argument callable producing the awaitable to run.
            delay: Optional override for the debounce delay.

        Returns:
            asyncio.Future[T]: Future resolving with the outcome of the run
            that ultimately serves this trigger.

        Raises:
            RuntimeError: If the delayer has been disposed.
        """

        if self._disposed:
            raise RuntimeError("cannot trigger a disposed ThrottledDelayer")
        return self._delayer.trigger(partial(self._throttler.queue, factory), delay)

    def dispose(self) -> None:
        """Cancel the timer, drop the queued task and cancel the running one."""

        self._disposed = True
        self._delayer.cancel()
        self._throttler.cancel()


def _report_failure(key: str, future: asyncio.Future[Any]) -> None:
    """Log failures of scheduled runs so they never escape into the event loop."""

    if future.cancelled():
        LOGGER.debug("Validation of %s was cancelled", key)
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Validation of %s failed", key, exc_info=exc)


class ValidationScheduler:
    """Map document keys to their :class:`ThrottledDelayer` entries."""

    def __init__(self) -> None:
        self._entries: dict[str, ThrottledDelayer[None]] = {}
        self._watched: dict[str, asyncio.Future[None]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._entries))

    def get(self, key: str) -> ThrottledDelayer[None] | None:
        """Return the entry registered for ``key``, if any."""

        return self._entries.get(key)

    def entry(self, key: str, delay: float) -> ThrottledDelayer[None]:
        """Return the entry for ``key``, creating it with ``delay`` on first use."""

        delayer = self._entries.get(key)
        if delayer is None:
            delayer = ThrottledDelayer(delay)
            self._entries[key] = delayer
        return delayer

    def is_current(self, key: str, delayer: ThrottledDelayer[None]) -> bool:
        """Return ``True`` when ``delayer`` is still the live entry for ``key``."""

        return self._entries.get(key) is delayer

    def trigger(self, key: str, delay: float, factory: TaskFactory[None]) -> asyncio.Future[None]:
        """Debounce ``factory`` for ``key``.

        Args:
            key: Document key the validation belongs to.
            delay: Debounce delay in seconds used when the entry is created.
            factory: Zero-argument callable producing the validation coroutine.

        Returns:
            asyncio.Future[None]: Completion of the run serving this trigger.
            Failures are logged; callers are not required to await it.
        """

        future = self.entry(key, delay).trigger(factory)
        if self._watched.get(key) is not future:
            self._watched[key] = future
            future.add_done_callback(partial(_report_failure, key))
        return future

    def discard(self, key: str) -> None:
        """Dispose the entry for ``key`` without running its pending work."""

        delayer = self._entries.pop(key, None)
        self._watched.pop(key, None)
        if delayer is not None:
            delayer.dispose()

    def clear(self) -> None:
        """Dispose every entry."""

        entries = self._entries
        self._entries = {}
        self._watched = {}
        for delayer in entries.values():
            delayer.dispose()


__all__ = [
    "Delayer",
    "TaskFactory",
    "ThrottledDelayer",
    "Throttler",
    "ValidationScheduler",
]
