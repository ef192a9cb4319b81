"""Predicates selecting which objects or local files a bulk operation touches.

A filter is any callable taking an ObjectDescriptor or a LocalFile and
returning a bool. Filters are pure: applying one twice changes nothing.
"""

from s3api.errors import InvalidArgumentError
from s3api.types import ObjectDescriptor
from ZConfig.datatypes import Registry

import datetime
import os
import re
import time


_datatypes = Registry()


def _convert(datatype, value, name):
    if isinstance(value, (int, float)):
        return value
    try:
        return _datatypes.get(datatype)(str(value).strip())
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid '{name}' value: {value!r}") from e


def parse_age(value, name="older"):
    """Seconds from a number or interval text such as "30m" or "7d"."""
    return _convert("time-interval", value, name)


def parse_size(value, name="larger"):
    """Bytes from a number or size text such as "512KB" or "10MB"."""
    return _convert("byte-size", value, name)


def parse_time(value, now=None, name="newer"):
    """Epoch seconds from a datetime, an ISO date, or an age relative to now."""
    if isinstance(value, datetime.datetime):
        return value.timestamp()
    if isinstance(value, str):
        try:
            return datetime.datetime.fromisoformat(value.strip()).timestamp()
        except ValueError:
            pass
    now = time.time() if now is None else now
    return now - parse_age(value, name)


def compile_filespec(filespec):
    if filespec is None or hasattr(filespec, "search"):
        return filespec
    try:
        return re.compile(filespec)
    except re.error as e:
        raise InvalidArgumentError(f"Invalid filespec: {filespec!r}: {e}") from e


def filespec_matches(filespec, key):
    """Match against the basename only, never the full path."""
    if filespec is None:
        return True
    return filespec.search(key.rsplit("/", 1)[-1]) is not None


def older_filter(older, now=None):
    """Filter selecting objects modified at least ``older`` ago."""
    seconds = parse_age(older)
    cutoff = (time.time() if now is None else now) - seconds

    def is_older(file):
        return file.mtime <= cutoff

    return is_older


def _path_of(file):
    if isinstance(file, ObjectDescriptor):
        return file.key
    return os.fspath(file.path)


def make_filter(
    include=None,
    exclude=None,
    newer=None,
    older=None,
    larger=None,
    smaller=None,
    now=None,
):
    """Compose a filter from path, age and size bounds.

    ``include``/``exclude`` are regexes searched in the full key (or local
    path). ``newer``/``older`` are points in time, given as datetimes, ISO
    dates or ages relative to now. ``larger``/``smaller`` are inclusive
    byte bounds. Returns None when no bound is given.
    """
    if all(v is None for v in (include, exclude, newer, older, larger, smaller)):
        return None
    include = compile_filespec(include)
    exclude = compile_filespec(exclude)
    now = time.time() if now is None else now
    newer = parse_time(newer, now, "newer") if newer is not None else None
    older = parse_time(older, now, "older") if older is not None else None
    larger = parse_size(larger, "larger") if larger is not None else None
    smaller = parse_size(smaller, "smaller") if smaller is not None else None

    def multi_filter(file):
        path = _path_of(file)
        if include is not None and not include.search(path):
            return False
        if exclude is not None and exclude.search(path):
            return False
        if newer is not None and file.mtime < newer:
            return False
        if older is not None and file.mtime > older:
            return False
        if larger is not None and file.size < larger:
            return False
        if smaller is not None and file.size > smaller:
            return False
        return True

    return multi_filter
