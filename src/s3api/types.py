"""Value types shared by the lister, the transfer primitives and the driver."""

from collections import namedtuple


# Snapshot of one object at listing time; size and mtime may be stale later.
ObjectDescriptor = namedtuple("ObjectDescriptor", ["key", "size", "mtime"])

LocalFile = namedtuple("LocalFile", ["path", "size", "mtime"])

ListingResult = namedtuple("ListingResult", ["files", "total_bytes"])

ListPage = namedtuple("ListPage", ["entries", "folders", "is_truncated"])

# total is None when indeterminate (compressed uploads)
Progress = namedtuple("Progress", ["loaded", "total"])
