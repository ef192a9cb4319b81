from s3api.agents import AgentSupport
from s3api.driver import run_bounded
from s3api.localfs import scan_files

import logging
import os
import re


logger = logging.getLogger(__name__)


def _rebase(key, remote_path, dest_path):
    """Swap the remote_path prefix of key for dest_path."""
    rel = key[len(remote_path) :]
    if not dest_path:
        return rel.lstrip("/")
    return dest_path + rel


class BulkTransfer(AgentSupport):
    """Recursive multi-object upload, download, copy, move and delete.

    Every operation lists or scans its work items first, then hands them
    to the bounded concurrency driver. ``threads`` defaults to 1, which is
    strictly sequential.
    """

    _logger = logger

    def __init__(self, client, lister, progress_interval=0.25):
        self._client = client
        self._lister = lister
        self.progress_interval = progress_interval

    def _run(self, items, per_item, threads, progress):
        pool_size = getattr(self._client, "max_pool_connections", None)
        if pool_size and isinstance(threads, int) and threads > pool_size:
            logger.warning(
                "threads (%d) exceeds max_pool_connections (%d), extra "
                "connections are opened and discarded instead of reused",
                threads,
                pool_size,
            )
        return run_bounded(
            items,
            per_item,
            concurrency=threads,
            progress=progress,
            progress_interval=self.progress_interval,
        )

    def upload_files(
        self,
        local_path=None,
        remote_path="",
        filespec=None,
        filter=None,
        all=False,
        threads=1,
        compress=False,
        suffix="",
        params=None,
        progress=None,
        dry=False,
        bucket=None,
    ):
        """Upload every file under local_path. Returns the LocalFile list."""
        local_path = os.path.abspath(local_path or os.getcwd()).rstrip(os.sep)
        remote_path = (remote_path or "").rstrip("/")
        self.log_debug(9, f"Scanning for local files: {local_path}")
        files = scan_files(local_path, filespec=filespec, filter=filter, all=all)
        self.log_debug(
            8,
            f"Uploading {len(files)} files ({sum(f.size for f in files)} bytes)",
            {"remote_path": remote_path},
        )

        def upload(file, report):
            rel = file.path[len(local_path) :].replace(os.sep, "/")
            key = _rebase(rel, "", remote_path) + suffix
            self._client.upload_file(
                key,
                file.path,
                compress=compress,
                params=params,
                progress=report,
                dry=dry,
                bucket=bucket,
            )
            return file.size

        self._run(files, upload, threads, progress)
        self.log_debug(9, "All files uploaded successfully")
        return files

    def download_files(
        self,
        remote_path="",
        local_path=None,
        filespec=None,
        filter=None,
        older=None,
        threads=1,
        decompress=False,
        strip=None,
        progress=None,
        dry=False,
        bucket=None,
    ):
        """Download every matching object under remote_path into local_path.

        ``strip`` is a regex removed from every destination path, e.g. a
        ``.gz`` suffix when decompressing.
        """
        listing = self._lister.list(
            remote_path, filespec=filespec, filter=filter, older=older, bucket=bucket
        )
        local_path = os.path.abspath(local_path or os.getcwd()).rstrip(os.sep)
        remote_path = (remote_path or "").rstrip("/")
        if isinstance(strip, str):
            strip = re.compile(strip)
        self.log_debug(8, f"Downloading {len(listing.files)} files")

        def download(file, report):
            rel = file.key[len(remote_path) :].lstrip("/")
            dest_file = os.path.join(local_path, *rel.split("/"))
            if strip is not None:
                dest_file = strip.sub("", dest_file)
            self._client.download_file(
                file.key,
                dest_file,
                decompress=decompress,
                progress=report,
                dry=dry,
                bucket=bucket,
            )
            return file.size

        self._run(listing.files, download, threads, progress)
        self.log_debug(9, "All files downloaded successfully")
        return listing

    def copy_files(
        self,
        remote_path="",
        dest_path="",
        filespec=None,
        filter=None,
        older=None,
        threads=1,
        source_bucket=None,
        bucket=None,
        params=None,
        progress=None,
        dry=False,
    ):
        """Server-side copy of everything under remote_path to dest_path.

        Zero-byte folder markers are copied too.
        """
        listing = self._lister.list(
            remote_path,
            filespec=filespec,
            filter=filter,
            older=older,
            empty_folders=True,
            bucket=source_bucket,
        )
        self.log_debug(8, f"Copying {len(listing.files)} files")

        def copy(file, report):
            self._client.copy(
                file.key,
                _rebase(file.key, remote_path, dest_path),
                source_bucket=source_bucket,
                bucket=bucket,
                params=params,
                dry=dry,
            )

        self._run(listing.files, copy, threads, progress)
        self.log_debug(9, "All files copied successfully")
        return listing

    def move_files(
        self,
        remote_path="",
        dest_path="",
        filespec=None,
        filter=None,
        older=None,
        threads=1,
        source_bucket=None,
        bucket=None,
        params=None,
        progress=None,
        dry=False,
    ):
        """Move everything under remote_path to dest_path (copy + delete each)."""
        listing = self._lister.list(
            remote_path,
            filespec=filespec,
            filter=filter,
            older=older,
            empty_folders=True,
            bucket=source_bucket,
        )
        self.log_debug(8, f"Moving {len(listing.files)} files")

        def move(file, report):
            self._client.move(
                file.key,
                _rebase(file.key, remote_path, dest_path),
                source_bucket=source_bucket,
                bucket=bucket,
                params=params,
                dry=dry,
            )

        self._run(listing.files, move, threads, progress)
        self.log_debug(9, "All files moved successfully")
        return listing

    def delete_files(
        self,
        remote_path="",
        filespec=None,
        filter=None,
        older=None,
        threads=1,
        progress=None,
        dry=False,
        bucket=None,
    ):
        listing = self._lister.list(
            remote_path, filespec=filespec, filter=filter, older=older, bucket=bucket
        )
        self.log_debug(8, f"Deleting {len(listing.files)} files")

        def delete(file, report):
            self._client.delete(file.key, dry=dry, bucket=bucket)

        self._run(listing.files, delete, threads, progress)
        self.log_debug(9, "All files deleted successfully")
        return listing
