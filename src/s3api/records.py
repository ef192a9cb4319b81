"""JSON key/value records stored as objects, with a read-through cache."""

from s3api.agents import AgentSupport
from s3api.errors import InvalidArgumentError
from s3api.errors import NotFoundError
from s3api.errors import ParseError
from s3api.interfaces import IRecordStore
from zope.interface import implementer

import copy
import json
import logging


logger = logging.getLogger(__name__)


class _Delete:
    def __repr__(self):
        return "DELETE"


# Passed as an update value to remove the key at that path.
DELETE = _Delete()

_MISS = object()


def _split(path):
    if not isinstance(path, str) or not path:
        raise InvalidArgumentError(f"Invalid path: {path!r}")
    return path.split(".")


def _index(segment, path):
    try:
        return int(segment)
    except ValueError:
        raise InvalidArgumentError(
            f"Path {path!r}: segment {segment!r} is not a list index"
        ) from None


def get_path(obj, path):
    """Return the value at a dot-separated path, or None if absent."""
    for segment in _split(path):
        if isinstance(obj, dict):
            obj = obj.get(segment)
        elif isinstance(obj, list):
            try:
                obj = obj[int(segment)]
            except (ValueError, IndexError):
                return None
        else:
            return None
    return obj


def set_path(obj, path, value):
    """Set (or with DELETE, remove) the value at a dot-separated path.

    Integer segments index into lists. Missing intermediates are created
    as dicts, never lists.
    """
    segments = _split(path)
    for segment in segments[:-1]:
        if isinstance(obj, list):
            idx = _index(segment, path)
            if idx == len(obj) and value is not DELETE:
                obj.append({})
            elif not -len(obj) <= idx < len(obj):
                if value is DELETE:
                    return
                raise InvalidArgumentError(f"Path {path!r}: index {idx} out of range")
            if not isinstance(obj[idx], (dict, list)):
                if value is DELETE:
                    return
                obj[idx] = {}
            obj = obj[idx]
        elif isinstance(obj, dict):
            child = obj.get(segment)
            if not isinstance(child, (dict, list)):
                if value is DELETE:
                    return
                child = obj[segment] = {}
            obj = child
        else:
            raise InvalidArgumentError(f"Path {path!r} crosses a non-container value")

    last = segments[-1]
    if isinstance(obj, list):
        idx = _index(last, path)
        if value is DELETE:
            if -len(obj) <= idx < len(obj):
                del obj[idx]
        elif idx == len(obj):
            obj.append(value)
        elif -len(obj) <= idx < len(obj):
            obj[idx] = value
        else:
            raise InvalidArgumentError(f"Path {path!r}: index {idx} out of range")
    elif not isinstance(obj, dict):
        raise InvalidArgumentError(f"Path {path!r} crosses a non-container value")
    elif value is DELETE:
        obj.pop(last, None)
    else:
        obj[last] = value


@implementer(IRecordStore)
class RecordStore(AgentSupport):
    """Structured records serialized as JSON objects.

    With a cache attached, ``get`` is read-through and successful ``put``
    stores the caller's own object in the cache. Writes always go to the
    store first.
    """

    _logger = logger

    def __init__(self, client, cache=None):
        self._client = client
        self.cache = cache

    def _cacheable(self, key):
        return self.cache is not None and self.cache.matches(key)

    def get(self, key, subpath=None, bucket=None):
        """Return (value, metadata). Cache hits return {"cached": True}."""
        if self._cacheable(key):
            value = self.cache.get(key, _MISS)
            if value is not _MISS:
                self.log_debug(8, f"Using JSON record from cache: {key}")
                if subpath:
                    value = get_path(value, subpath)
                return value, {"cached": True}

        self.log_debug(8, f"Fetching JSON record: {key}")
        data, meta = self._client.get_buffer(key, bucket=bucket)
        try:
            value = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            self.log_error("err_json", f"Failed to parse JSON record: {key}: {e}")
            raise ParseError(
                f"Failed to parse JSON record: {key}: {e}", key=key
            ) from e

        if self._cacheable(key):
            self.cache.set(key, value)
        self.log_debug(9, f"JSON fetch complete: {key}")
        if subpath:
            value = get_path(value, subpath)
        return value, meta

    def put(self, key, value, pretty=False, params=None, dry=False, bucket=None):
        if value is None:
            raise InvalidArgumentError("Missing required 'value' (object) property.")
        if isinstance(value, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError(
                "The 'value' property must be an object (not a buffer)."
            )
        if not isinstance(value, (dict, list)):
            raise InvalidArgumentError("The 'value' property must be an object.")
        self.log_debug(8, f"Storing JSON record: {key}", {"pretty": pretty})

        if pretty:
            text = json.dumps(value, indent="\t")
        else:
            text = json.dumps(value, separators=(",", ":"))
        params = dict(params or {})
        params.setdefault("ContentType", "application/json")

        meta = self._client.put_buffer(
            key, text.encode("utf-8"), params=params, dry=dry, bucket=bucket
        )
        if not dry and self._cacheable(key):
            self.cache.set(key, value)
        return meta

    def update(self, key, updates, create=False, dry=False, bucket=None):
        """Read-modify-write a record using dot-path updates.

        Not transactional: a concurrent put between the read and the write
        is overwritten. With ``create`` a missing record starts out as an
        empty dict instead of raising NotFoundError. Returns (value, metadata).
        """
        if updates is None:
            raise InvalidArgumentError("Missing required 'updates' (object) property.")
        if not isinstance(updates, dict):
            raise InvalidArgumentError("The 'updates' property must be an object.")
        self.log_debug(8, f"Updating JSON record: {key}", {"paths": list(updates)})

        try:
            current, _meta = self.get(key, bucket=bucket)
        except NotFoundError:
            if not create:
                raise
            current = {}
        # the cache may hold this very object
        value = copy.deepcopy(current)
        for path, new_value in updates.items():
            set_path(value, path, new_value)
        meta = self.put(key, value, dry=dry, bucket=bucket)
        return value, meta

    def delete(self, key, dry=False, bucket=None):
        if not dry and self._cacheable(key):
            self.cache.delete(key)
        return self._client.delete(key, dry=dry, bucket=bucket)
