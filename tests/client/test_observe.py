"""Tests for observable values and the unread count observer."""

import time

from ludiary.client.observe import Subscription, UnreadCountObserver, ValueStream
from ludiary.core.errors import AuthError, TransientNetworkError


class TestValueStream:
    """Tests for ValueStream."""

    def test_listener_gets_current_value(self) -> None:
        """A new listener should be called at once."""
        stream = ValueStream(3)
        seen: list[int] = []
        stream.listen(seen.append)
        assert seen == [3]

    def test_emit_notifies_on_change_only(self) -> None:
        """Unchanged values should not be re-emitted."""
        stream = ValueStream(0)
        seen: list[int] = []
        stream.listen(seen.append)

        stream.emit(1)
        stream.emit(1)
        stream.emit(2)

        assert seen == [0, 1, 2]
        assert stream.value == 2

    def test_remove_listener(self) -> None:
        """A removed listener should not be called again."""
        stream = ValueStream(0)
        seen: list[int] = []
        remove = stream.listen(seen.append)
        remove()
        remove()
        stream.emit(5)
        assert seen == [0]

    def test_failing_listener_does_not_break_others(self) -> None:
        """An exception in one listener should not stop delivery."""
        stream = ValueStream(0)
        seen: list[int] = []

        def broken(value: int) -> None:
            if value:
                raise RuntimeError("listener bug")

        stream.listen(broken)
        stream.listen(seen.append)
        stream.emit(7)

        assert seen == [0, 7]

    def test_closed_stream_ignores_emit(self) -> None:
        """Nothing should be published after close."""
        stream = ValueStream(0)
        seen: list[int] = []
        stream.listen(seen.append)
        stream.close()
        stream.emit(9)
        assert stream.closed
        assert stream.value == 0
        assert seen == [0]


class TestSubscription:
    """Tests for Subscription."""

    def test_cancel_is_idempotent(self) -> None:
        """on_cancel should run exactly once."""
        cancelled: list[bool] = []
        subscription = Subscription(lambda: cancelled.append(True))

        assert subscription.active
        subscription.cancel()
        subscription.cancel()

        assert not subscription.active
        assert cancelled == [True]


class TestUnreadCountObserver:
    """Tests for UnreadCountObserver."""

    def test_starts_with_fallback(self) -> None:
        """The stream should hold 0 before the first real value."""
        observer = UnreadCountObserver(lambda: 4, interval_seconds=None)
        stream, cancel = observer.subscribe()
        try:
            assert stream.value == UnreadCountObserver.FALLBACK == 0
            assert observer.active
        finally:
            cancel()

    def test_refresh_publishes_value(self) -> None:
        """refresh() should publish the fetched counter."""
        observer = UnreadCountObserver(lambda: 4, interval_seconds=None)
        stream, cancel = observer.subscribe()
        seen: list[int] = []
        stream.listen(seen.append)

        assert observer.refresh() == 4

        assert seen == [0, 4]
        cancel()

    def test_refresh_without_subscription(self) -> None:
        """refresh() without a subscriber should return the fallback."""
        observer = UnreadCountObserver(lambda: 4, interval_seconds=None)
        assert observer.refresh() == 0

    def test_negative_counter_is_clamped(self) -> None:
        """A drifting counter should never show below 0."""
        observer = UnreadCountObserver(lambda: -2, interval_seconds=None)
        stream, cancel = observer.subscribe()
        observer.refresh()
        assert stream.value == 0
        cancel()

    def test_failures_keep_last_value(self) -> None:
        """Transient and auth failures should keep the last known value."""
        values: list[object] = [3, TransientNetworkError("down"), AuthError("expired")]

        def fetch() -> int:
            value = values.pop(0)
            if isinstance(value, Exception):
                raise value
            return value  # type: ignore[return-value]

        observer = UnreadCountObserver(fetch, interval_seconds=None)
        stream, cancel = observer.subscribe()
        observer.refresh()
        observer.refresh()
        observer.refresh()

        assert stream.value == 3
        cancel()

    def test_duplicate_subscribe_returns_same_stream(self) -> None:
        """A second subscribe while active should not attach twice."""
        observer = UnreadCountObserver(lambda: 1, interval_seconds=None)
        first, cancel_first = observer.subscribe()
        second, cancel_second = observer.subscribe()

        assert first is second
        cancel_second()
        assert not observer.active
        cancel_first()

    def test_cancel_detaches_and_allows_resubscribe(self) -> None:
        """After cancel a new subscription gets a fresh stream."""
        observer = UnreadCountObserver(lambda: 1, interval_seconds=None)
        stream, cancel = observer.subscribe()
        cancel()
        cancel()

        assert stream.closed
        assert not observer.active

        fresh, cancel_fresh = observer.subscribe()
        assert fresh is not stream
        assert fresh.value == 0
        cancel_fresh()

    def test_local_mode_stays_at_zero(self) -> None:
        """Without a fetch function the counter is always 0."""
        observer = UnreadCountObserver(None)
        stream, cancel = observer.subscribe()
        assert observer.refresh() == 0
        assert stream.value == 0
        cancel()

    def test_background_poll(self) -> None:
        """The poll job should fetch once right after subscribing."""
        observer = UnreadCountObserver(lambda: 5, interval_seconds=3600)
        stream, cancel = observer.subscribe()
        try:
            deadline = time.time() + 5.0
            while stream.value != 5 and time.time() < deadline:
                time.sleep(0.05)
            assert stream.value == 5
        finally:
            cancel()
