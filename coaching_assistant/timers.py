"""Debounce and throttle timers driven by the running asyncio loop."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

_UNSET: Any = object()


class DebounceTimer:
    """Countdown that fires its callback once, restarted by every ``reset()``.

    A reset before expiry cancels the pending countdown, so a burst of resets
    produces a single firing ``delay`` seconds after the last one.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = float(delay)
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def reset(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class Throttle(Generic[T]):
    """Rate-limits ``publish`` to one call per ``interval`` seconds.

    Leading and trailing: the first value of a burst is published at once and
    the last value is published when the interval elapses; values in between
    may be coalesced. ``flush()`` publishes immediately, ``cancel()`` drops
    anything pending and silences the throttle for good.
    """

    def __init__(self, interval: float, publish: Callable[[T], None]) -> None:
        self.interval = float(interval)
        self._publish = publish
        self._last_publish: Optional[float] = None
        self._pending: Any = _UNSET
        self._handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, value: T) -> None:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._handle is None and (
            self._last_publish is None or now - self._last_publish >= self.interval
        ):
            self._emit(value, now)
            return

        self._pending = value
        if self._handle is None:
            delay = max(0.0, self.interval - (now - self._last_publish))
            self._handle = loop.call_later(delay, self._trailing)

    def flush(self, value: Any = _UNSET) -> None:
        """Publish ``value`` (or whatever is pending) right now."""
        if self._closed:
            return
        self._cancel_handle()
        if value is _UNSET:
            value, self._pending = self._pending, _UNSET
            if value is _UNSET:
                return
        else:
            self._pending = _UNSET
        self._emit(value, asyncio.get_running_loop().time())

    def cancel(self) -> None:
        self._cancel_handle()
        self._pending = _UNSET
        self._closed = True

    def _trailing(self) -> None:
        self._handle = None
        if self._closed or self._pending is _UNSET:
            return
        value, self._pending = self._pending, _UNSET
        self._emit(value, asyncio.get_running_loop().time())

    def _emit(self, value: T, now: float) -> None:
        self._last_publish = now
        self._publish(value)

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
