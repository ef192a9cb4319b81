from s3api.api import S3API
from s3api.cache import RecordCache
from s3api.driver import run_bounded
from s3api.errors import InvalidArgumentError
from s3api.errors import LocalFsError
from s3api.errors import NotFoundError
from s3api.errors import ParseError
from s3api.errors import S3APIError
from s3api.errors import StoreError
from s3api.filters import make_filter
from s3api.listing import ObjectLister
from s3api.records import DELETE
from s3api.records import RecordStore
from s3api.s3client import S3Client
from s3api.types import ListingResult
from s3api.types import ObjectDescriptor
from s3api.types import Progress


__all__ = [
    "DELETE",
    "InvalidArgumentError",
    "ListingResult",
    "LocalFsError",
    "NotFoundError",
    "ObjectDescriptor",
    "ObjectLister",
    "ParseError",
    "Progress",
    "RecordCache",
    "RecordStore",
    "S3API",
    "S3APIError",
    "S3Client",
    "StoreError",
    "make_filter",
    "run_bounded",
]
