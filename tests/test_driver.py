from s3api.driver import run_bounded
from s3api.errors import InvalidArgumentError
from s3api.errors import StoreError
from s3api.types import ObjectDescriptor
from s3api.types import Progress

import pytest
import threading
import time


class InFlightCounter:
    def __init__(self):
        self.current = 0
        self.peak = 0
        self.started = []
        self._lock = threading.Lock()

    def enter(self, item):
        with self._lock:
            self.started.append(item)
            self.current += 1
            self.peak = max(self.peak, self.current)

    def leave(self):
        with self._lock:
            self.current -= 1


def _items(count, size=10):
    return [ObjectDescriptor(f"key{i}", size, 0.0) for i in range(count)]


class TestConcurrency:
    def test_peak_in_flight_is_bounded(self):
        counter = InFlightCounter()

        def work(item, report):
            counter.enter(item)
            time.sleep(0.02)
            counter.leave()

        count, total = run_bounded(_items(10), work, concurrency=3)
        assert count == 10
        assert total == 100
        assert 1 < counter.peak <= 3

    def test_default_is_sequential(self):
        counter = InFlightCounter()
        items = _items(5)

        def work(item, report):
            counter.enter(item)
            time.sleep(0.005)
            counter.leave()

        run_bounded(items, work)
        assert counter.peak == 1
        assert counter.started == items

    def test_slow_item_does_not_block_others(self):
        """A free slot picks up the next item while a slow one is running."""
        release = threading.Event()
        items = _items(6)

        def work(item, report):
            if item is items[0]:
                assert release.wait(5)
            elif item is items[-1]:
                release.set()

        count, _total = run_bounded(items, work, concurrency=2)
        assert count == 6

    def test_return_value_counts_bytes(self):
        count, total = run_bounded(_items(4), lambda item, report: 7, concurrency=2)
        assert (count, total) == (4, 28)

    def test_explicit_sizes(self):
        count, total = run_bounded(
            ["a", "b", "c"], lambda item, report: None, sizes=[1, 2, 3]
        )
        assert (count, total) == (3, 6)

    def test_empty(self):
        assert run_bounded([], lambda item, report: None, concurrency=4) == (0, 0)

    @pytest.mark.parametrize("concurrency", [0, -1, "3", 1.5])
    def test_invalid_concurrency(self, concurrency):
        with pytest.raises(InvalidArgumentError):
            run_bounded(_items(1), lambda item, report: None, concurrency=concurrency)


class TestErrors:
    def test_first_error_stops_new_work(self):
        items = _items(10)
        started = []

        def work(item, report):
            started.append(item)
            if item is items[3]:
                raise StoreError("boom", code="err_put")

        with pytest.raises(StoreError) as exc_info:
            run_bounded(items, work)
        assert str(exc_info.value) == "boom"
        assert started == items[:4]
        assert exc_info.value.completed == items[:3]

    def test_in_flight_items_drain(self):
        """Items already running when another fails are allowed to finish."""
        items = _items(4)
        slow_started = threading.Event()
        finished = []

        def work(item, report):
            if item is items[0]:
                slow_started.set()
                time.sleep(0.1)
                finished.append(item)
            elif item is items[1]:
                assert slow_started.wait(5)
                raise StoreError("boom")
            else:
                finished.append(item)

        with pytest.raises(StoreError) as exc_info:
            run_bounded(items, work, concurrency=2)
        assert items[0] in finished
        assert items[0] in exc_info.value.completed
        assert items[1] not in exc_info.value.completed

    def test_only_first_error_is_raised(self):
        items = _items(2)
        gate = threading.Barrier(2)

        def work(item, report):
            gate.wait(5)
            if item is items[0]:
                raise StoreError("first")
            time.sleep(0.1)
            raise StoreError("second")

        with pytest.raises(StoreError) as exc_info:
            run_bounded(items, work, concurrency=2)
        assert str(exc_info.value) == "first"
        assert exc_info.value.completed == []


class TestProgress:
    def test_aggregate_reaches_total(self):
        updates = []

        def work(item, report):
            report(Progress(item.size // 2, item.size))
            report(Progress(item.size, item.size))

        run_bounded(
            _items(5, size=100), work, concurrency=2, progress=updates.append
        )
        assert updates
        assert all(p.total == 500 for p in updates)
        assert updates[-1] == Progress(500, 500)
        loaded = [p.loaded for p in updates]
        assert loaded == sorted(loaded)

    def test_items_without_reports_still_complete(self):
        updates = []
        run_bounded(
            _items(3, size=10), lambda item, report: None, progress=updates.append
        )
        assert updates[-1] == Progress(30, 30)
