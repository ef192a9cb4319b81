from s3api.progress import AggregateProgress
from s3api.progress import ThrottledProgress
from s3api.streams import buffered
from s3api.streams import GzipCompressReader
from s3api.streams import GzipReader
from s3api.streams import ProgressReader
from s3api.streams import remaining_size
from s3api.types import Progress

import gzip
import io


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestGzipCompressReader:
    def test_output_is_gzip(self):
        data = b"some repetitive data " * 5000
        reader = buffered(GzipCompressReader(io.BytesIO(data), chunk_size=1024))
        compressed = reader.read()
        assert len(compressed) < len(data)
        assert gzip.decompress(compressed) == data

    def test_fixed_size_reads(self):
        data = bytes(range(256)) * 400
        reader = buffered(GzipCompressReader(io.BytesIO(data), level=1))
        chunks = []
        while True:
            chunk = reader.read(1000)
            if not chunk:
                break
            chunks.append(chunk)
        assert all(len(c) == 1000 for c in chunks[:-1])
        assert gzip.decompress(b"".join(chunks)) == data

    def test_empty_source(self):
        reader = buffered(GzipCompressReader(io.BytesIO(b"")))
        assert gzip.decompress(reader.read()) == b""


class TestGzipReader:
    def test_reads_gzip(self):
        data = b"line\n" * 1000
        reader = GzipReader(io.BytesIO(gzip.compress(data)))
        assert reader.read() == data

    def test_close_before_eof_closes_source(self):
        source = io.BytesIO(gzip.compress(b"x" * 100000))
        reader = GzipReader(source)
        assert reader.read(5) == b"xxxxx"
        reader.close()
        assert source.closed

    def test_close_is_idempotent(self):
        source = io.BytesIO(gzip.compress(b"x"))
        reader = GzipReader(source)
        reader.close()
        reader.close()
        assert source.closed


class TestProgressReader:
    def test_counts_and_finishes_once(self):
        updates = []
        counter = ThrottledProgress(updates.append, total=10, interval=60)
        reader = buffered(ProgressReader(io.BytesIO(b"0123456789"), counter))
        assert reader.read() == b"0123456789"
        assert reader.read() == b""
        assert updates == [Progress(10, 10), Progress(10, 10)]

    def test_remaining_size(self):
        stream = io.BytesIO(b"abcdef")
        stream.read(2)
        assert remaining_size(stream) == 4
        assert stream.read() == b"cdef"


class TestThrottledProgress:
    def test_throttles_reports(self):
        clock = FakeClock()
        updates = []
        counter = ThrottledProgress(updates.append, total=100, interval=1, clock=clock)
        counter(10)
        counter(10)
        clock.now = 1.5
        counter(10)
        counter.finish()
        assert updates == [Progress(10, 100), Progress(30, 100), Progress(30, 100)]

    def test_loaded_never_goes_backwards(self):
        updates = []
        counter = ThrottledProgress(updates.append, interval=0)
        counter(50)
        counter(-20)
        counter(10)
        counter(30)
        assert [p.loaded for p in updates] == [50, 70]


class TestAggregateProgress:
    def test_sums_items(self):
        clock = FakeClock()
        updates = []
        aggregate = AggregateProgress(updates.append, 300, interval=0, clock=clock)
        first = aggregate.item_callback(0)
        second = aggregate.item_callback(1)
        first(Progress(50, 100))
        second(Progress(20, 200))
        assert aggregate.loaded == 70
        aggregate.complete(0, 100)
        aggregate.complete(1, 200)
        assert updates[-1] == Progress(300, 300)
        assert [p.loaded for p in updates] == [50, 70, 120, 300]

    def test_discard_failed_item(self):
        aggregate = AggregateProgress(None, 100)
        aggregate.item_callback(0)(Progress(40, 100))
        aggregate.discard(0)
        assert aggregate.loaded == 0
