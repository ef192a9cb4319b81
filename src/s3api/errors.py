class S3APIError(Exception):
    """Base class for all errors raised by s3api.

    Every error carries a stable ``code`` so attached log agents can route it.
    """

    code = "err_s3"

    def __init__(self, message, code=None, key=None):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.key = key


class NotFoundError(S3APIError):
    """The requested key does not exist. Expected, never logged as an error."""

    code = "err_not_found"


class StoreError(S3APIError):
    """Any other object store failure (auth, throttling, network)."""


class ParseError(S3APIError):
    """A key/value record did not contain valid JSON."""

    code = "err_json"


class LocalFsError(S3APIError):
    """Stat, mkdir or scan failure on the local filesystem."""

    code = "err_file"


class InvalidArgumentError(S3APIError, ValueError):
    """The caller violated a precondition."""

    code = "err_argument"
