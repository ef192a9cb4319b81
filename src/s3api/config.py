import io
import os
import ZConfig


_SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.xml")
_schema = None


class S3APIFactory:
    """ZConfig factory for S3API."""

    def __init__(self, config):
        self.config = config
        self.name = config.getSectionName()

    def open(self):
        from s3api.api import S3API
        from s3api.cache import RecordCache
        from s3api.s3client import S3Client

        config = self.config
        params = {}
        if config.acl:
            params["ACL"] = config.acl
        if config.storage_class:
            params["StorageClass"] = config.storage_class
        client = S3Client(
            bucket=config.bucket,
            prefix=config.prefix,
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            use_ssl=config.use_ssl,
            addressing_style=config.addressing_style,
            connect_timeout=config.connect_timeout,
            read_timeout=config.timeout,
            retries=config.retries,
            max_pool_connections=config.max_pool_connections,
            gzip_level=config.gzip_level,
            params=params,
        )
        cache = None
        if config.cache:
            cache = RecordCache(
                max_items=config.cache_max_items,
                max_age=config.cache_max_age,
                key_match=config.cache_key_match,
            )
        return S3API(client=client, cache=cache, page_size=config.page_size)


def get_schema():
    global _schema
    if _schema is None:
        with open(_SCHEMA_PATH) as f:
            _schema = ZConfig.loadSchemaFile(f)
    return _schema


def config_from_string(text):
    """Build an S3API from the text of an <s3api> configuration section."""
    config, _handler = ZConfig.loadConfigFile(get_schema(), io.StringIO(text))
    return config.s3api.open()


def config_from_file(path):
    with open(path) as f:
        config, _handler = ZConfig.loadConfigFile(get_schema(), f)
    return config.s3api.open()
