from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError
from s3api.agents import AgentSupport
from s3api.errors import InvalidArgumentError
from s3api.errors import LocalFsError
from s3api.errors import NotFoundError
from s3api.errors import StoreError
from s3api.interfaces import IS3Client
from s3api.localfs import ensure_dir
from s3api.progress import ThrottledProgress
from s3api.streams import buffered
from s3api.streams import GzipCompressReader
from s3api.streams import GzipReader
from s3api.streams import ProgressReader
from s3api.streams import remaining_size
from s3api.types import ListPage
from s3api.types import ObjectDescriptor
from zope.interface import implementer

import boto3
import contextlib
import gzip
import io
import logging
import mimetypes
import os
import re
import shutil
import tempfile
import zlib


logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset(["404", "NoSuchKey", "NotFound"])

_GZIP_ERRORS = (gzip.BadGzipFile, zlib.error, EOFError)


def _is_not_found(e):
    return (
        isinstance(e, ClientError)
        and e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES
    )


def _stringify_metadata(params):
    # S3 user metadata values must be strings
    if "Metadata" in params:
        params["Metadata"] = {k: str(v) for k, v in params["Metadata"].items()}
    return params


@implementer(IS3Client)
class S3Client(AgentSupport):
    """boto3 wrapper for S3-compatible object storage.

    Callers use logical keys. The configured prefix is prepended on every
    store call and stripped from every key the store returns. One boto3
    client, and with it one connection pool, is held for the lifetime of
    the instance and shared by all threads.
    """

    _logger = logger

    def __init__(
        self,
        bucket=None,
        prefix="",
        endpoint_url=None,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        use_ssl=True,
        addressing_style="auto",
        connect_timeout=5,
        read_timeout=5,
        retries=50,
        max_pool_connections=10,
        gzip_level=6,
        progress_interval=0.25,
        params=None,
        cache=None,
        client=None,
    ):
        self.bucket = bucket
        self._prefix = prefix.strip("/") if prefix else ""
        self.gzip_level = gzip_level
        self.progress_interval = progress_interval
        self.max_pool_connections = max_pool_connections
        # defaults for uploads and copies, e.g. ACL or StorageClass
        self.params = dict(params or {})
        # record cache whose entries are dropped when a key is overwritten or deleted
        self.cache = cache

        if self._prefix:
            if not re.fullmatch(r"[a-zA-Z0-9._/-]*", self._prefix):
                raise InvalidArgumentError(
                    f"prefix contains invalid characters: {self._prefix!r}. "
                    "Only alphanumeric characters, dots, hyphens, underscores, "
                    "and slashes are allowed."
                )
            if ".." in self._prefix:
                raise InvalidArgumentError(
                    f"prefix must not contain '..': {self._prefix!r}"
                )

        if client is not None:
            self._client = client
            return

        config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": retries, "mode": "standard"},
            max_pool_connections=max_pool_connections,
        )

        kwargs = {"config": config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region_name:
            kwargs["region_name"] = region_name
        if aws_access_key_id:
            kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            kwargs["aws_secret_access_key"] = aws_secret_access_key
        kwargs["use_ssl"] = use_ssl
        if not use_ssl:
            logger.warning(
                "S3 SSL is disabled, data and credentials are transmitted in cleartext"
            )

        self._client = boto3.client("s3", **kwargs)

    @property
    def prefix(self):
        return self._prefix

    # -- Key helpers --

    def _full_key(self, key):
        if self._prefix:
            return f"{self._prefix}/{key}"
        return key

    def _full_prefix(self, prefix):
        if self._prefix:
            return f"{self._prefix}/{prefix}"
        return prefix

    def _logical_key(self, full_key):
        if self._prefix and full_key.startswith(self._prefix + "/"):
            return full_key[len(self._prefix) + 1 :]
        return full_key

    def _bucket(self, bucket):
        bucket = bucket or self.bucket
        if not bucket:
            raise InvalidArgumentError("Missing required 'bucket' (string) property.")
        return bucket

    @staticmethod
    def _require_key(key, name="key"):
        if not key:
            raise InvalidArgumentError(f"Missing required '{name}' (string) property.")
        if not isinstance(key, str):
            raise InvalidArgumentError(f"The '{name}' property must be a string.")

    def _write_args(self, params):
        args = dict(self.params)
        args.update(params or {})
        return _stringify_metadata(args)

    def _drop_cached(self, key):
        if self.cache is not None and self.cache.matches(key):
            if self.cache.delete(key):
                self.log_debug(9, f"Dropped cached record: {key}")

    def _raise_error(self, e, code, msg, key):
        """Translate a boto error. Not found is expected and never logged."""
        if _is_not_found(e):
            logger.debug("%s: %s", msg, e)
            raise NotFoundError(f"{msg}: Not found", key=key) from e
        self.log_error(code, f"{msg}: {e}", {"key": key})
        raise StoreError(f"{msg}: {e}", code=code, key=key) from e

    # -- Reads --

    def head(self, key, nonfatal=False, bucket=None):
        bucket = self._bucket(bucket)
        self._require_key(key)
        self.log_debug(8, f"Pinging key: {key}", {"bucket": bucket})
        try:
            with self.track("head"):
                meta = self._client.head_object(Bucket=bucket, Key=self._full_key(key))
        except (ClientError, BotoCoreError) as e:
            if nonfatal and _is_not_found(e):
                return None
            self._raise_error(e, "err_head", f"Failed to fetch key: {key}", key)
        meta["size"] = meta["ContentLength"]
        meta["mtime"] = meta["LastModified"].timestamp()
        self.log_debug(9, f"Head complete: {key}", {"size": meta["size"]})
        return meta

    def get_stream(self, key, decompress=False, progress=None, bucket=None):
        """Start a download and return (stream, metadata) without reading it."""
        bucket = self._bucket(bucket)
        self._require_key(key)
        self.log_debug(9, f"Fetching stream: {key}", {"bucket": bucket})
        try:
            with self.track("get"):
                resp = self._client.get_object(Bucket=bucket, Key=self._full_key(key))
        except (ClientError, BotoCoreError) as e:
            self._raise_error(e, "err_get", f"Failed to fetch key: {key}", key)

        stream = resp.pop("Body")
        size = resp.get("ContentLength") or 0
        self.log_debug(9, f"Stream started: {key}", {"size": size})
        if progress is not None:
            counter = ThrottledProgress(
                progress, total=size, interval=self.progress_interval
            )
            stream = buffered(ProgressReader(stream, counter))
        if decompress:
            self.log_debug(9, "Decompressing stream with gunzip")
            stream = GzipReader(stream)
        return stream, resp

    def get_buffer(self, key, decompress=False, progress=None, bucket=None):
        stream, meta = self.get_stream(
            key, decompress=decompress, progress=progress, bucket=bucket
        )
        try:
            with contextlib.closing(stream):
                data = stream.read()
        except _GZIP_ERRORS as e:
            self.log_error("err_gzip", f"Gzip decompress error: {key}: {e}")
            raise StoreError(
                f"Gzip decompress error: {key}: {e}", code="err_gzip", key=key
            ) from e
        except (BotoCoreError, OSError) as e:
            self._raise_error(e, "err_get", f"Failed to fetch key: {key}", key)
        self.log_debug(9, f"Fetch complete: {key}", {"bytes": len(data)})
        return data, meta

    # -- Writes --

    def put_stream(
        self,
        key,
        stream,
        compress=False,
        params=None,
        progress=None,
        dry=False,
        bucket=None,
    ):
        """Upload a readable stream with boto3's managed multipart transfer."""
        bucket = self._bucket(bucket)
        self._require_key(key)
        if stream is None:
            raise InvalidArgumentError("Missing required 'value' (stream) property.")
        if not isinstance(stream, io.IOBase):
            raise InvalidArgumentError("The 'value' property must be a stream object.")
        extra_args = self._write_args(params)
        self.log_debug(9, f"Storing stream: {key}", extra_args)

        if dry:
            self.log_debug(9, "Dry-run, returning faux success")
            return {"dry": True}

        body = stream
        total = None
        if compress:
            self.log_debug(9, "Compressing stream with gzip")
            body = buffered(GzipCompressReader(stream, level=self.gzip_level))
        else:
            total = remaining_size(stream)
        callback = None
        if progress is not None:
            callback = ThrottledProgress(
                progress, total=total, interval=self.progress_interval
            )

        full_key = self._full_key(key)
        try:
            with self.track("put"):
                self._client.upload_fileobj(
                    body,
                    bucket,
                    full_key,
                    ExtraArgs=extra_args or None,
                    Callback=callback,
                )
        except zlib.error as e:
            self.log_error("err_gzip", f"Gzip compress error: {key}: {e}")
            raise StoreError(
                f"Gzip compress error: {key}: {e}", code="err_gzip", key=key
            ) from e
        except (S3UploadFailedError, ClientError, BotoCoreError) as e:
            self.log_error("err_put", f"Failed to store object: {key}: {e}")
            raise StoreError(
                f"Failed to store object: {key}: {e}", code="err_put", key=key
            ) from e
        if callback is not None:
            callback.finish()
        self._drop_cached(key)
        self.log_debug(9, f"Store complete: {key}")
        return {"Bucket": bucket, "Key": full_key}

    def put_buffer(
        self,
        key,
        value,
        compress=False,
        params=None,
        progress=None,
        dry=False,
        bucket=None,
    ):
        if value is None:
            raise InvalidArgumentError("Missing required 'value' (buffer) property.")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError("The 'value' property must be a buffer object.")
        self.log_debug(9, f"Storing buffer: {key} ({len(value)} bytes)")
        return self.put_stream(
            key,
            io.BytesIO(value),
            compress=compress,
            params=params,
            progress=progress,
            dry=dry,
            bucket=bucket,
        )

    def copy(
        self,
        source_key,
        key,
        source_bucket=None,
        bucket=None,
        params=None,
        dry=False,
    ):
        """Server-side copy. ACL and storage class must be passed in params."""
        bucket = self._bucket(bucket)
        source_bucket = self._bucket(source_bucket)
        self._require_key(source_key, "source_key")
        self._require_key(key)
        copy_source = {"Bucket": source_bucket, "Key": self._full_key(source_key)}
        self.log_debug(8, f"Copying object: {source_key} to: {key}", copy_source)

        if dry:
            self.log_debug(9, "Dry-run, returning faux success")
            return {"dry": True}

        full_key = self._full_key(key)
        try:
            with self.track("copy"):
                self._client.copy(
                    copy_source,
                    bucket,
                    full_key,
                    ExtraArgs=self._write_args(params) or None,
                )
        except (ClientError, BotoCoreError) as e:
            self._raise_error(e, "err_copy", f"Failed to copy object: {key}", key)
        self._drop_cached(key)
        self.log_debug(9, f"Copy complete: {key}")
        return {"Bucket": bucket, "Key": full_key}

    def delete(self, key, dry=False, bucket=None):
        """Delete an object, raising NotFoundError if it is absent.

        S3 DeleteObject reports success for missing keys, so the key is
        pinged first to detect that case.
        """
        bucket = self._bucket(bucket)
        self._require_key(key)
        self.log_debug(8, f"Deleting object: {key}", {"bucket": bucket})

        if dry:
            self.log_debug(9, "Dry-run, returning faux success")
            return {"dry": True}

        self._drop_cached(key)
        self.head(key, bucket=bucket)
        try:
            with self.track("delete"):
                meta = self._client.delete_object(
                    Bucket=bucket, Key=self._full_key(key)
                )
        except (ClientError, BotoCoreError) as e:
            self._raise_error(e, "err_delete", f"Failed to delete object: {key}", key)
        self.log_debug(9, f"Delete complete: {key}")
        return meta

    def move(
        self,
        source_key,
        key,
        source_bucket=None,
        bucket=None,
        params=None,
        dry=False,
    ):
        """Copy then delete the source.

        Not atomic: if the delete fails, both objects exist and the delete
        error is raised.
        """
        self.copy(
            source_key,
            key,
            source_bucket=source_bucket,
            bucket=bucket,
            params=params,
            dry=dry,
        )
        return self.delete(source_key, dry=dry, bucket=source_bucket)

    # -- Local files --

    def upload_file(
        self,
        key,
        local_file,
        compress=False,
        params=None,
        progress=None,
        dry=False,
        bucket=None,
    ):
        self._require_key(key)
        if not local_file:
            raise InvalidArgumentError("Missing required 'local_file' property.")
        if not isinstance(local_file, (str, os.PathLike)):
            raise InvalidArgumentError("The 'local_file' property must be a file path.")
        local_file = os.fspath(local_file)
        if key.endswith("/"):
            key += os.path.basename(local_file)

        params = dict(params or {})
        if "ContentType" not in params:
            params["ContentType"] = (
                mimetypes.guess_type(local_file)[0] or "application/octet-stream"
            )

        try:
            size = os.stat(local_file).st_size
        except OSError as e:
            self.log_error("err_file", f"Failed to stat local file: {local_file}: {e}")
            raise LocalFsError(
                f"Failed to stat local file: {local_file}: {e}", key=key
            ) from e

        self.log_debug(
            8, f"Uploading file: {local_file} to: {key}", {"size": size}
        )
        if dry:
            self.log_debug(9, "Dry-run, returning faux success")
            return {"dry": True}

        with open(local_file, "rb") as f:
            return self.put_stream(
                key,
                f,
                compress=compress,
                params=params,
                progress=progress,
                bucket=bucket,
            )

    def download_file(
        self,
        key,
        local_file,
        decompress=False,
        progress=None,
        dry=False,
        bucket=None,
    ):
        """Download an object to a local file (atomic via temp+rename)."""
        self._require_key(key)
        if not local_file:
            raise InvalidArgumentError("Missing required 'local_file' property.")
        if not isinstance(local_file, (str, os.PathLike)):
            raise InvalidArgumentError("The 'local_file' property must be a file path.")
        local_file = os.fspath(local_file)
        if local_file.endswith(("/", os.sep)):
            local_file += os.path.basename(key)
        self.log_debug(8, f"Downloading file: {key} to: {local_file}")

        if dry:
            self.log_debug(9, "Dry-run, returning faux success")
            return {"dry": True}

        target_dir = os.path.dirname(os.path.abspath(local_file))
        ensure_dir(target_dir)
        stream, meta = self.get_stream(
            key, decompress=decompress, progress=progress, bucket=bucket
        )
        with contextlib.closing(stream):
            fd, tmp_path = tempfile.mkstemp(dir=target_dir, suffix=".s3api.tmp")
            try:
                with os.fdopen(fd, "wb") as outp:
                    self._copy_stream(stream, outp, key)
                os.replace(tmp_path, local_file)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
                raise
        self.log_debug(9, f"Download complete: {key}", {"file": local_file})
        return meta

    def _copy_stream(self, stream, outp, key):
        try:
            shutil.copyfileobj(stream, outp)
        except _GZIP_ERRORS as e:
            self.log_error("err_gzip", f"Gzip decompress error: {key}: {e}")
            raise StoreError(
                f"Gzip decompress error: {key}: {e}", code="err_gzip", key=key
            ) from e
        except BotoCoreError as e:
            self.log_error("err_stream", f"Read stream failed: {key}: {e}")
            raise StoreError(
                f"Read stream failed: {key}: {e}", code="err_stream", key=key
            ) from e
        except OSError as e:
            self.log_error("err_stream", f"Write stream failed: {key}: {e}")
            raise LocalFsError(
                f"Write stream failed: {key}: {e}", code="err_stream", key=key
            ) from e

    # -- Listing --

    def list_page(
        self, prefix="", max_keys=1000, start_after=None, delimiter=None, bucket=None
    ):
        """Fetch one ListObjectsV2 page under a logical prefix."""
        kwargs = {
            "Bucket": self._bucket(bucket),
            "Prefix": self._full_prefix(prefix),
            "MaxKeys": max_keys,
        }
        if start_after:
            kwargs["StartAfter"] = self._full_key(start_after)
        if delimiter:
            kwargs["Delimiter"] = delimiter
        try:
            with self.track("list"):
                resp = self._client.list_objects_v2(**kwargs)
        except (ClientError, BotoCoreError) as e:
            self.log_error("err_list", f"Failed to list prefix: {prefix}: {e}")
            raise StoreError(
                f"Failed to list prefix: {prefix}: {e}", code="err_list", key=prefix
            ) from e
        entries = [
            ObjectDescriptor(
                self._logical_key(item["Key"]),
                item["Size"],
                item["LastModified"].timestamp(),
            )
            for item in resp.get("Contents", [])
        ]
        folders = [
            self._logical_key(item["Prefix"])
            for item in resp.get("CommonPrefixes", [])
        ]
        return ListPage(entries, folders, bool(resp.get("IsTruncated")))

    def list_buckets(self):
        self.log_debug(8, "Listing buckets")
        try:
            with self.track("list"):
                resp = self._client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            self.log_error("err_list", f"Failed to list buckets: {e}")
            raise StoreError(f"Failed to list buckets: {e}", code="err_list") from e
        buckets = [item["Name"] for item in resp.get("Buckets", [])]
        self.log_debug(9, f"Bucket listing complete ({len(buckets)} buckets)")
        return buckets
