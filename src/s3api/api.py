from s3api.bulk import BulkTransfer
from s3api.cache import RecordCache
from s3api.listing import ObjectLister
from s3api.listing import PAGE_SIZE
from s3api.records import RecordStore
from s3api.s3client import S3Client


class S3API:
    """Key/value store and bulk transfer tool over one S3 bucket.

    Wraps an S3Client via __getattr__ proxy pattern, so every single-object
    primitive (head, copy, move, get_stream, put_buffer, upload_file, ...)
    is available directly. Record, listing and bulk methods are explicitly
    defined and shadow the client's.

    ``cache`` may be True, a dict of RecordCache arguments or a RecordCache
    instance to enable the read-through record cache.
    """

    def __init__(self, client=None, cache=None, page_size=PAGE_SIZE, **client_args):
        self.client = client if client is not None else S3Client(**client_args)
        self.lister = ObjectLister(self.client, page_size=page_size)
        self.bulk = BulkTransfer(
            self.client, self.lister, progress_interval=self.client.progress_interval
        )
        if cache is True:
            cache = RecordCache()
        elif isinstance(cache, dict):
            cache = RecordCache(**cache)
        elif cache is False:
            cache = None
        self.cache = cache
        if cache is not None:
            # moves, bulk deletes and raw writes go through the client
            self.client.cache = cache
        self.records = RecordStore(self.client, cache)

    def __getattr__(self, name):
        if name == "client":
            raise AttributeError(name)
        return getattr(self.client, name)

    def __repr__(self):
        return f"<S3API bucket={self.client.bucket!r} prefix={self.client.prefix!r}>"

    def _components(self):
        components = [self.client, self.lister, self.bulk, self.records]
        if self.cache is not None:
            components.append(self.cache)
        return components

    def attach_log_agent(self, agent):
        for component in self._components():
            component.attach_log_agent(agent)

    def attach_perf_agent(self, perf):
        for component in self._components():
            component.attach_perf_agent(perf)

    # -- Key/value records --

    def get(self, key, subpath=None, bucket=None):
        return self.records.get(key, subpath=subpath, bucket=bucket)

    def put(self, key, value, pretty=False, params=None, dry=False, bucket=None):
        return self.records.put(
            key, value, pretty=pretty, params=params, dry=dry, bucket=bucket
        )

    def update(self, key, updates, create=False, dry=False, bucket=None):
        return self.records.update(
            key, updates, create=create, dry=dry, bucket=bucket
        )

    def delete(self, key, dry=False, bucket=None):
        """Delete an object, dropping any cached record for it."""
        return self.records.delete(key, dry=dry, bucket=bucket)

    # -- Listing --

    def list(self, remote_path="", **kwargs):
        return self.lister.list(remote_path, **kwargs)

    def walk(self, iterator, remote_path="", **kwargs):
        return self.lister.walk(iterator, remote_path, **kwargs)

    def list_folders(self, remote_path="", delimiter="/", bucket=None):
        return self.lister.list_folders(remote_path, delimiter=delimiter, bucket=bucket)

    # -- Bulk transfers --

    def upload_files(self, local_path=None, remote_path="", **kwargs):
        return self.bulk.upload_files(local_path, remote_path, **kwargs)

    def download_files(self, remote_path="", local_path=None, **kwargs):
        return self.bulk.download_files(remote_path, local_path, **kwargs)

    def copy_files(self, remote_path="", dest_path="", **kwargs):
        return self.bulk.copy_files(remote_path, dest_path, **kwargs)

    def move_files(self, remote_path="", dest_path="", **kwargs):
        return self.bulk.move_files(remote_path, dest_path, **kwargs)

    def delete_files(self, remote_path="", **kwargs):
        return self.bulk.delete_files(remote_path, **kwargs)
