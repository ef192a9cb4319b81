from s3api.agents import AgentSupport
from s3api.errors import InvalidArgumentError
from s3api.filters import compile_filespec
from s3api.filters import filespec_matches
from s3api.filters import older_filter
from s3api.types import ListingResult

import logging


logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


def _is_folder_marker(entry):
    return not entry.size and entry.key.endswith("/")


class ObjectLister(AgentSupport):
    """Paginated listing of every object under a key prefix.

    Pages are requested with StartAfter set to the last key of the previous
    page, until the store reports no more pages or returns an empty one.
    """

    _logger = logger

    def __init__(self, client, page_size=PAGE_SIZE):
        self._client = client
        self.page_size = page_size

    def _select(self, filespec, filter, older):
        if filter is not None and older is not None:
            raise InvalidArgumentError(
                "The 'filter' and 'older' properties are mutually exclusive."
            )
        if older is not None:
            filter = older_filter(older)
        return compile_filespec(filespec), filter

    def _pages(self, remote_path, bucket):
        start_after = None
        while True:
            page = self._client.list_page(
                remote_path,
                max_keys=self.page_size,
                start_after=start_after,
                bucket=bucket,
            )
            yield page
            if not page.is_truncated or not page.entries:
                return
            start_after = page.entries[-1].key

    def list(
        self,
        remote_path="",
        filespec=None,
        filter=None,
        older=None,
        empty_folders=False,
        bucket=None,
    ):
        """Return a ListingResult of all matching objects under remote_path.

        Zero-byte folder markers are skipped unless ``empty_folders``.
        ``older`` (seconds or interval text) is compiled into a filter and
        cannot be combined with a custom ``filter``.
        """
        filespec, filter = self._select(filespec, filter, older)
        self.log_debug(8, f"Listing files with prefix: {remote_path}")
        files = []
        total_bytes = 0
        calls = 0
        for page in self._pages(remote_path, bucket):
            calls += 1
            for entry in page.entries:
                if not empty_folders and _is_folder_marker(entry):
                    continue
                if not filespec_matches(filespec, entry.key):
                    continue
                if filter is not None and not filter(entry):
                    continue
                files.append(entry)
                total_bytes += entry.size
        self.log_debug(
            9,
            f"Listing complete ({len(files)} objects, {total_bytes} bytes)",
            {"prefix": remote_path, "calls": calls},
        )
        return ListingResult(files, total_bytes)

    def walk(
        self,
        iterator,
        remote_path="",
        filespec=None,
        filter=None,
        older=None,
        bucket=None,
    ):
        """Call ``iterator(descriptor)`` for every match, one page in memory.

        Returns the number of matching objects.
        """
        if not callable(iterator):
            raise InvalidArgumentError("Missing required 'iterator' (function) property.")
        filespec, filter = self._select(filespec, filter, older)
        self.log_debug(8, f"Walking files with prefix: {remote_path}")
        count = 0
        calls = 0
        for page in self._pages(remote_path, bucket):
            calls += 1
            for entry in page.entries:
                if not filespec_matches(filespec, entry.key):
                    continue
                if filter is not None and not filter(entry):
                    continue
                iterator(entry)
                count += 1
        self.log_debug(9, "Walk complete", {"prefix": remote_path, "calls": calls})
        return count

    def list_folders(self, remote_path="", delimiter="/", bucket=None):
        """Single level, single page: return (folders, files) under remote_path."""
        if remote_path and not remote_path.endswith(delimiter):
            remote_path += delimiter
        self.log_debug(8, f"Listing subfolders with prefix: {remote_path}")
        page = self._client.list_page(
            remote_path, max_keys=self.page_size, delimiter=delimiter, bucket=bucket
        )
        self.log_debug(
            9,
            f"Subfolder listing complete ({len(page.folders)} paths, "
            f"{len(page.entries)} files)",
        )
        return page.folders, page.entries
