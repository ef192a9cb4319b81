"""Local filesystem side of bulk transfers."""

from s3api.errors import LocalFsError
from s3api.types import LocalFile

import logging
import os
import re


logger = logging.getLogger(__name__)


def ensure_dir(path):
    """Create ``path`` and any missing parents."""
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        logger.error("[err_dir] Failed to create directory: %s: %s", path, e)
        raise LocalFsError(
            f"Failed to create directory: {path}: {e}", code="err_dir"
        ) from e


def scan_files(local_path, filespec=None, filter=None, all=False):
    """Recursively find files under ``local_path``.

    ``filespec`` is matched against the file name only, ``filter`` receives
    a LocalFile. Dotfiles and dot-directories are skipped unless ``all``.
    Returns LocalFile entries sorted by path.
    """
    if not os.path.isdir(local_path):
        logger.error("[err_glob] Not a directory: %s", local_path)
        raise LocalFsError(f"Not a directory: {local_path}", code="err_glob")
    if isinstance(filespec, str):
        filespec = re.compile(filespec)

    def onerror(e):
        logger.error("[err_glob] Failed to scan: %s: %s", e.filename, e)
        raise LocalFsError(
            f"Failed to list local files: {e.filename}: {e}", code="err_glob"
        ) from e

    files = []
    for dirpath, dirnames, filenames in os.walk(local_path, onerror=onerror):
        if not all:
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for fn in filenames:
            if not all and fn.startswith("."):
                continue
            if filespec is not None and not filespec.search(fn):
                continue
            path = os.path.join(dirpath, fn)
            try:
                st = os.stat(path)
            except OSError as e:
                logger.error("[err_file] Failed to stat local file: %s: %s", path, e)
                raise LocalFsError(
                    f"Failed to stat local file: {path}: {e}", code="err_file"
                ) from e
            file = LocalFile(path, st.st_size, st.st_mtime)
            if filter is not None and not filter(file):
                continue
            files.append(file)
    files.sort(key=lambda f: f.path)
    return files
