from collections import OrderedDict
from s3api.agents import AgentSupport
from s3api.interfaces import IRecordCache
from zope.interface import implementer

import logging
import re
import threading
import time


logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("value", "inserted_at", "last_access_at")

    def __init__(self, value, now):
        self.value = value
        self.inserted_at = now
        self.last_access_at = now


@implementer(IRecordCache)
class RecordCache(AgentSupport):
    """In-memory cache of parsed JSON records, keyed by object key.

    Entries expire once their age reaches ``max_age`` seconds and are
    evicted in insertion order (not access order) once more than
    ``max_items`` are held. Zero disables either bound. Setting an existing
    key counts as a fresh insertion.

    Only keys matching ``key_match`` are eligible; callers check
    ``matches()`` themselves before get/set. All access is serialized by
    a lock so parallel transfers can share one instance.
    """

    _logger = logger

    def __init__(self, max_items=1000, max_age=0, key_match=".+", clock=time.monotonic):
        self.max_items = max_items
        self.max_age = max_age
        self.key_match = re.compile(key_match) if isinstance(key_match, str) else key_match
        self._clock = clock
        self._entries = OrderedDict()
        self._lock = threading.Lock()

    def matches(self, key):
        return self.key_match.search(key) is not None

    def get(self, key, default=None):
        with self._lock:
            entry = self._fresh(key)
            if entry is None:
                return default
            entry.last_access_at = self._clock()
            return entry.value

    def has(self, key):
        with self._lock:
            return self._fresh(key) is not None

    def set(self, key, value):
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = _Entry(value, self._clock())
            if self.max_items:
                while len(self._entries) > self.max_items:
                    oldest, _entry = self._entries.popitem(last=False)
                    self._expired(oldest, "count")

    def delete(self, key):
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            self._prune()
            return len(self._entries)

    # -- Helpers, called with the lock held --

    def _fresh(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.max_age and self._clock() - entry.inserted_at >= self.max_age:
            del self._entries[key]
            self._expired(key, "age")
            return None
        return entry

    def _prune(self):
        if not self.max_age:
            return
        now = self._clock()
        # insertion order is also age order
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if now - entry.inserted_at < self.max_age:
                break
            del self._entries[key]
            self._expired(key, "age")

    def _expired(self, key, reason):
        self.log_debug(9, f"Cache expired {key} because of {reason}.")
