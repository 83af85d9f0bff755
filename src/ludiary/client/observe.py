"""Observable values for UI badges.

This module provides:
- ValueStream: Latest-value stream with listener callbacks
- Subscription: Handle returned to the subscriber, cancellable once
- UnreadCountObserver: Polls the unread notification counter

Usage:
    observer = UnreadCountObserver(http_client.get_unread_count)
    stream, cancel = observer.subscribe()
    stream.listen(lambda n: print("unread:", n))
    ...
    cancel()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Generic, TypeVar

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ludiary.core.errors import AuthError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class ValueStream(Generic[T]):
    """Holds the latest value and notifies listeners on change."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._listeners: list[Listener[T]] = []
        self._closed = False
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        """Latest emitted value."""
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    def listen(self, listener: Listener[T]) -> Callable[[], None]:
        """Register a listener. It is called at once with the current value.

        Returns:
            Function removing the listener.
        """
        with self._lock:
            self._listeners.append(listener)
        listener(self._value)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def emit(self, value: T) -> None:
        """Publish a value. Ignored after close or when unchanged."""
        with self._lock:
            if self._closed or value == self._value:
                return
            self._value = value
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(value)
            except Exception:
                logger.exception("Stream listener failed")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._listeners.clear()


class Subscription:
    """Cancellation handle for an active observation."""

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        """Stop the observation. Safe to call more than once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._on_cancel()


class UnreadCountObserver:
    """Observes the current user's unread notification count.

    The stream starts at 0 before the first real value. In local mode
    (no fetch function) it stays at 0.
    """

    FALLBACK = 0

    def __init__(
        self,
        fetch: Callable[[], int] | None = None,
        interval_seconds: int | None = 60,
    ) -> None:
        """Initialize the observer.

        Args:
            fetch: Reads the counter from the server; None in local mode.
            interval_seconds: Poll period; None disables background polling
                (call refresh() yourself).
        """
        self._fetch = fetch
        self._interval_seconds = interval_seconds
        self._stream: ValueStream[int] | None = None
        self._subscription: Subscription | None = None
        self._scheduler: BackgroundScheduler | None = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        """True while a subscription is attached."""
        return self._subscription is not None and self._subscription.active

    def subscribe(self) -> tuple[ValueStream[int], Callable[[], None]]:
        """Start observing.

        A second call while a subscription is active returns the same
        stream and handle.

        Returns:
            Tuple of (stream, cancel).
        """
        with self._lock:
            if self._stream is not None and self._subscription is not None:
                return self._stream, self._subscription.cancel

            stream: ValueStream[int] = ValueStream(self.FALLBACK)
            subscription = Subscription(self._detach)
            self._stream = stream
            self._subscription = subscription

            if self._fetch is not None and self._interval_seconds:
                self._scheduler = BackgroundScheduler()
                self._scheduler.add_job(
                    self.refresh,
                    trigger=IntervalTrigger(seconds=self._interval_seconds),
                    id="unread_count",
                    name="Unread count poll",
                    next_run_time=datetime.now(),
                    max_instances=1,
                    coalesce=True,
                )
                self._scheduler.start()

        logger.debug("Unread count observer attached")
        return stream, subscription.cancel

    def refresh(self) -> int:
        """Read the counter once and publish it.

        Transient and auth failures keep the last known value.

        Returns:
            The value now held by the stream.
        """
        stream = self._stream
        if stream is None:
            return self.FALLBACK
        if self._fetch is None:
            return stream.value
        try:
            stream.emit(max(0, int(self._fetch())))
        except (TransientError, AuthError) as e:
            logger.warning("Could not refresh unread count: %s", e)
        return stream.value

    def _detach(self) -> None:
        with self._lock:
            scheduler = self._scheduler
            stream = self._stream
            self._scheduler = None
            self._stream = None
            self._subscription = None
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        if stream is not None:
            stream.close()
        logger.debug("Unread count observer detached")
