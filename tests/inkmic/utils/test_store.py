import threading
import time

from inkmic.utils.store import EventQueue, StateStore


class TestStateStore:
    """Test the snapshot store."""

    def test_set_and_value(self):
        """Should hold the latest snapshot."""
        store = StateStore(1)

        store.set(2)

        assert store.value == 2

    def test_update_transforms_current(self):
        """Should derive the next value from the current one."""
        store = StateStore(10)

        assert store.update(lambda v: v + 5) == 15

    def test_subscribers_notified_in_order(self):
        """Should notify every subscriber of each new snapshot."""
        store = StateStore("a")
        first, second = [], []
        store.subscribe(first.append)
        store.subscribe(second.append)

        store.set("b")

        assert first == ["b"]
        assert second == ["b"]

    def test_unsubscribe(self):
        """Should stop notifying after unsubscribing, even if called twice."""
        store = StateStore(0)
        seen = []
        unsubscribe = store.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        store.set(1)

        assert seen == []

    def test_failing_subscriber_does_not_block_others(self):
        """Should keep notifying remaining subscribers when one raises."""
        store = StateStore(0)
        seen = []

        def broken(value):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(seen.append)
        store.set(1)

        assert seen == [1]
        assert store.value == 1

    def test_subscriber_may_read_store(self):
        """Should call subscribers outside the value lock."""
        store = StateStore(0)
        reads = []
        store.subscribe(lambda _: reads.append(store.value))

        store.set(3)

        assert reads == [3]

    def test_concurrent_updates_are_atomic(self):
        """Should not lose increments under contention."""
        store = StateStore(0)

        def work():
            for _ in range(500):
                store.update(lambda v: v + 1)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.value == 2000

    def test_notifications_follow_write_order(self):
        """Should not let a later write overtake a slow notification of an earlier one."""
        store = StateStore(0)
        seen = []
        in_subscriber = threading.Event()

        def slow(value):
            if value == 1:
                in_subscriber.set()
                time.sleep(0.2)
            seen.append(value)

        store.subscribe(slow)
        first = threading.Thread(target=store.set, args=(1,))
        first.start()
        assert in_subscriber.wait(2.0)
        second = threading.Thread(target=store.set, args=(2,))
        second.start()
        first.join()
        second.join()

        assert seen == [1, 2]
        assert store.value == 2

    def test_subscriber_may_write_store(self):
        """Should allow a subscriber to write back on the same thread."""
        store = StateStore(0)
        seen = []

        def bump(value):
            seen.append(value)
            if value == 1:
                store.set(2)

        store.subscribe(bump)
        store.set(1)

        assert seen == [1, 2]
        assert store.value == 2


class TestEventQueue:
    """Test the one-shot event queue."""

    def test_events_delivered_once(self):
        """Should hand each event out exactly once, in order."""
        events = EventQueue()
        events.emit("a")
        events.emit("b")

        assert events.get(timeout=0.1) == "a"
        assert events.drain() == ["b"]
        assert events.drain() == []

    def test_get_timeout(self):
        """Should return None when nothing arrives."""
        assert EventQueue().get(timeout=0.01) is None

    def test_bounded(self):
        """Should drop events once full."""
        events = EventQueue(maxsize=2)

        assert events.emit(1) is True
        assert events.emit(2) is True
        assert events.emit(3) is False
        assert events.drain() == [1, 2]
