from moto import mock_aws
from s3api.errors import InvalidArgumentError
from s3api.filters import make_filter
from s3api.listing import ObjectLister
from s3api.s3client import S3Client
from s3api.types import ListPage
from s3api.types import ObjectDescriptor

import boto3
import pytest


class PagingClient:
    """In-memory stand-in for S3Client.list_page."""

    def __init__(self, keys, size=10, mtime=1000.0):
        self.keys = sorted(keys)
        self.size = size
        self.mtime = mtime
        self.calls = []

    def list_page(
        self, prefix="", max_keys=1000, start_after=None, delimiter=None, bucket=None
    ):
        self.calls.append(start_after)
        keys = [
            k
            for k in self.keys
            if k.startswith(prefix) and (start_after is None or k > start_after)
        ]
        page = keys[:max_keys]
        entries = [ObjectDescriptor(k, self.size, self.mtime) for k in page]
        return ListPage(entries, [], len(keys) > max_keys)


@pytest.fixture
def s3_env():
    with mock_aws():
        boto3.client("s3", region_name="us-east-1").create_bucket(Bucket="test-bucket")
        yield


@pytest.fixture
def client(s3_env):
    return S3Client(bucket="test-bucket", region_name="us-east-1")


@pytest.fixture
def lister(client):
    return ObjectLister(client, page_size=7)


def _populate(client, keys):
    for key in keys:
        client.put_buffer(key, key.encode("utf-8"))


class TestPagination:
    def test_more_objects_than_one_page(self):
        keys = [f"data/obj-{i:05d}" for i in range(2500)]
        paging = PagingClient(keys)
        listing = ObjectLister(paging).list("data/")

        assert [f.key for f in listing.files] == keys
        assert listing.total_bytes == 2500 * 10
        assert paging.calls == [None, "data/obj-00999", "data/obj-01999"]

    def test_exact_page_multiple(self):
        keys = [f"obj-{i:03d}" for i in range(20)]
        paging = PagingClient(keys)
        listing = ObjectLister(paging, page_size=10).list()
        assert len(listing.files) == 20
        assert len(paging.calls) == 2

    def test_paginates_against_store(self, client, lister):
        keys = [f"many/file-{i:02d}.txt" for i in range(25)]
        _populate(client, keys)
        _populate(client, ["other/file.txt"])

        listing = lister.list("many/")
        assert [f.key for f in listing.files] == keys
        assert listing.total_bytes == sum(len(k) for k in keys)

    def test_empty_prefix(self, lister):
        listing = lister.list("nothing/here/")
        assert listing.files == []
        assert listing.total_bytes == 0

    def test_descriptors_carry_size_and_mtime(self, client, lister):
        client.put_buffer("one/file.bin", b"12345")
        (entry,) = lister.list("one/").files
        assert entry.size == 5
        assert entry.mtime > 0


class TestSelection:
    def test_filespec_matches_basename(self, client, lister):
        _populate(
            client, ["logs/data.json", "logs/data/nested.txt", "logs/other.json"]
        )
        listing = lister.list("logs/", filespec=r"^data")
        assert [f.key for f in listing.files] == ["logs/data.json"]

    def test_folder_markers_skipped(self, client, lister):
        client.put_buffer("tree/empty/", b"")
        client.put_buffer("tree/file.txt", b"x")
        assert [f.key for f in lister.list("tree/").files] == ["tree/file.txt"]

        listing = lister.list("tree/", empty_folders=True)
        assert [f.key for f in listing.files] == ["tree/empty/", "tree/file.txt"]

    def test_custom_filter(self, client, lister):
        client.put_buffer("sized/small.bin", b"x")
        client.put_buffer("sized/large.bin", b"x" * 2048)
        listing = lister.list("sized/", filter=make_filter(larger="1KB"))
        assert [f.key for f in listing.files] == ["sized/large.bin"]

    def test_older(self, client, lister):
        _populate(client, ["aged/a.txt", "aged/b.txt"])
        assert lister.list("aged/", older="1d").files == []
        assert len(lister.list("aged/", older=0).files) == 2

    def test_filter_and_older_are_exclusive(self, lister):
        with pytest.raises(InvalidArgumentError):
            lister.list("any/", filter=lambda f: True, older="1d")

    def test_filtering_twice_is_stable(self):
        keys = [f"f/{i:03d}.{'json' if i % 3 else 'txt'}" for i in range(30)]
        lister = ObjectLister(PagingClient(keys), page_size=4)
        first = lister.list("f/", filespec=r"\.json$")
        second = lister.list("f/", filespec=r"\.json$")
        assert first == second
        assert len(first.files) == 20


class TestWalk:
    def test_walk_visits_every_match(self):
        keys = [f"w/{i:04d}" for i in range(1234)]
        seen = []
        count = ObjectLister(PagingClient(keys), page_size=100).walk(
            seen.append, "w/"
        )
        assert count == 1234
        assert [d.key for d in seen] == keys

    def test_walk_with_filespec(self, client, lister):
        _populate(client, ["walk/a.gz", "walk/b.txt", "walk/c.gz"])
        seen = []
        assert lister.walk(seen.append, "walk/", filespec=r"\.gz$") == 2
        assert [d.key for d in seen] == ["walk/a.gz", "walk/c.gz"]

    def test_walk_requires_callable(self, lister):
        with pytest.raises(InvalidArgumentError):
            lister.walk(None, "walk/")

    def test_iterator_error_propagates(self):
        lister = ObjectLister(PagingClient(["a", "b"]))

        def explode(descriptor):
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            lister.walk(explode)


class TestFolders:
    def test_list_folders(self, client, lister):
        _populate(
            client,
            ["root/a/1.txt", "root/a/2.txt", "root/b/1.txt", "root/top.txt"],
        )
        folders, files = lister.list_folders("root")
        assert folders == ["root/a/", "root/b/"]
        assert [f.key for f in files] == ["root/top.txt"]

    def test_list_folders_with_prefix(self, s3_env):
        client = S3Client(bucket="test-bucket", prefix="ns", region_name="us-east-1")
        _populate(client, ["root/a/1.txt", "root/top.txt"])
        folders, files = ObjectLister(client).list_folders("root/")
        assert folders == ["root/a/"]
        assert [f.key for f in files] == ["root/top.txt"]
