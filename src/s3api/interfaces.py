from zope.interface import Interface


class IS3Client(Interface):
    """Single-object operations against S3-compatible object storage."""

    def get_stream(key, decompress=False, progress=None, bucket=None):
        """Start a download and return (readable stream, metadata)."""

    def get_buffer(key, decompress=False, progress=None, bucket=None):
        """Download an object fully and return (bytes, metadata)."""

    def put_stream(key, stream, compress=False, params=None, progress=None):
        """Upload a readable stream using multipart transfer."""

    def put_buffer(key, value, compress=False, params=None, progress=None):
        """Upload a bytes-like value."""

    def head(key, nonfatal=False, bucket=None):
        """Return metadata with size and mtime, or None if nonfatal and missing."""

    def copy(source_key, key, source_bucket=None, bucket=None, params=None):
        """Server-side copy of a single object."""

    def move(source_key, key, source_bucket=None, bucket=None, params=None):
        """Copy then delete the source. Not atomic."""

    def delete(key, bucket=None):
        """Delete an object, raising NotFoundError if it does not exist."""

    def upload_file(key, local_file, compress=False, params=None, progress=None):
        """Upload a local file."""

    def download_file(key, local_file, decompress=False, progress=None):
        """Download an object to a local file (atomic via temp+rename)."""

    def list_page(prefix, max_keys, start_after=None, delimiter=None, bucket=None):
        """Return one raw ListObjectsV2 page for a logical prefix."""

    def list_buckets():
        """Return the names of all buckets visible to the credentials."""


class IRecordCache(Interface):
    """In-memory capacity and TTL bounded cache of parsed JSON records."""

    def matches(key):
        """Return True if key is eligible for caching."""

    def get(key, default=None):
        """Return the cached value, or default if absent or expired."""

    def set(key, value):
        """Insert or replace a value."""

    def delete(key):
        """Drop a value if present."""

    def has(key):
        """Return True if a fresh value is cached."""


class IRecordStore(Interface):
    """JSON key/value records stored as objects."""

    def get(key, subpath=None):
        """Return (value, metadata)."""

    def put(key, value, pretty=False, params=None):
        """Serialize and store a value, returning metadata."""

    def update(key, updates):
        """Apply dot-path updates to a record, returning (value, metadata)."""


class ILogAgent(Interface):
    """Externally attached logger."""

    def debug(level, msg, data):
        """Record a debug trace."""

    def error(code, msg, data):
        """Record a failure tagged with a stable error code."""


class IPerfAgent(Interface):
    """Externally attached performance tracker."""

    def begin(category):
        """Start timing a category; return an object with an end() method."""
