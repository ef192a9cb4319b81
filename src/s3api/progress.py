from s3api.types import Progress

import threading
import time


class ThrottledProgress:
    """Byte counter reporting Progress(loaded, total) at a throttled cadence.

    Instances are callable with a byte delta, which matches the boto3
    transfer ``Callback`` signature. boto3 may report negative deltas when
    it retries a part; the reported ``loaded`` never goes backwards.
    """

    def __init__(self, callback, total=None, interval=0.25, clock=time.monotonic):
        self._callback = callback
        self.total = total
        self.loaded = 0
        self._raw = 0
        self._interval = interval
        self._clock = clock
        self._last_report = None
        self._lock = threading.Lock()

    def __call__(self, bytes_amount):
        with self._lock:
            self._raw += bytes_amount
            if self._raw <= self.loaded:
                return
            self.loaded = self._raw
            now = self._clock()
            if (
                self._last_report is not None
                and now - self._last_report < self._interval
            ):
                return
            self._last_report = now
            self._callback(Progress(self.loaded, self.total))

    def finish(self):
        """Always report the final count, regardless of throttling."""
        with self._lock:
            self._callback(Progress(self.loaded, self.total))


class AggregateProgress:
    """Sums per-item progress of a multi-object operation into one callback.

    ``total`` is fixed up front from the byte sum of the whole job list.
    """

    def __init__(self, callback, total, interval=0.25, clock=time.monotonic):
        self._callback = callback
        self.total = total
        self._completed = 0
        self._in_flight = {}
        self._interval = interval
        self._clock = clock
        self._last_report = None
        self._reported = 0
        self._lock = threading.Lock()

    @property
    def loaded(self):
        with self._lock:
            return self._completed + sum(self._in_flight.values())

    def item_callback(self, slot):
        """Return a Progress callback for the item in ``slot``."""

        def report(progress):
            with self._lock:
                self._in_flight[slot] = progress.loaded
                self._report(force=False)

        return report

    def complete(self, slot, size):
        """Credit the item's full size once it has finished."""
        with self._lock:
            self._in_flight.pop(slot, None)
            self._completed += size
            self._report(force=True)

    def discard(self, slot):
        with self._lock:
            self._in_flight.pop(slot, None)

    def _report(self, force):
        if self._callback is None:
            return
        loaded = self._completed + sum(self._in_flight.values())
        if loaded < self._reported:
            return
        now = self._clock()
        if (
            not force
            and self._last_report is not None
            and now - self._last_report < self._interval
        ):
            return
        self._last_report = now
        self._reported = loaded
        self._callback(Progress(loaded, self.total))
