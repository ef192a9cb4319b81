"""Streaming wrappers used inline by uploads and downloads."""

import gzip
import io
import os
import zlib


CHUNK_SIZE = 256 * 1024

# zlib wbits for a gzip container
_GZIP_WBITS = 16 + zlib.MAX_WBITS


class GzipCompressReader(io.RawIOBase):
    """Readable stream yielding the gzip compression of another stream.

    Nothing is buffered beyond one compressed chunk, so arbitrarily large
    sources can be uploaded. Wrap in io.BufferedReader so that reads of
    ``n`` bytes return ``n`` bytes until EOF.
    """

    def __init__(self, source, level=6, chunk_size=CHUNK_SIZE):
        self._source = source
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, _GZIP_WBITS)
        self._chunk_size = chunk_size
        self._pending = b""
        self._eof = False

    def readable(self):
        return True

    def readinto(self, b):
        while not self._pending and not self._eof:
            chunk = self._source.read(self._chunk_size)
            if chunk:
                self._pending = self._compressor.compress(chunk)
            else:
                self._pending = self._compressor.flush()
                self._eof = True
        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


class ProgressReader(io.RawIOBase):
    """Readable stream reporting the number of bytes read to a counter."""

    def __init__(self, source, counter):
        self._source = source
        self._counter = counter
        self._finished = False

    def readable(self):
        return True

    def readinto(self, b):
        data = self._source.read(len(b))
        n = len(data)
        b[:n] = data
        if n:
            self._counter(n)
        elif not self._finished:
            self._finished = True
            self._counter.finish()
        return n

    def close(self):
        close_source = getattr(self._source, "close", None)
        if close_source is not None:
            close_source()
        super().close()


def buffered(raw):
    return io.BufferedReader(raw, buffer_size=CHUNK_SIZE)


def remaining_size(stream):
    """Return the number of unread bytes of a seekable stream, else None."""
    if not stream.seekable():
        return None
    pos = stream.tell()
    end = stream.seek(0, os.SEEK_END)
    stream.seek(pos)
    return end - pos


class GzipReader(gzip.GzipFile):
    """Streaming gunzip reader that also closes the stream it wraps.

    GzipFile leaves a passed ``fileobj`` open, which would keep the HTTP
    connection of an abandoned download checked out of the pool.
    """

    def __init__(self, source):
        self._body = source
        super().__init__(fileobj=source, mode="rb")

    def close(self):
        try:
            super().close()
        finally:
            self._body.close()
