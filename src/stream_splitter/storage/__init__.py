"""Storage abstraction for source objects and group outputs."""

from stream_splitter.storage.base import FileInfo, Storage, join_path
from stream_splitter.storage.local import LocalStorage
from stream_splitter.storage.s3 import S3Storage

__all__ = [
    "FileInfo",
    "Storage",
    "LocalStorage",
    "S3Storage",
    "join_path",
    "get_storage",
    "reset_storage",
]


_storage: Storage | None = None


def get_storage(bucket: str | None = None) -> Storage:
    """
    Get or create the storage instance configured in settings.

    ``bucket`` builds a fresh S3 storage for a different bucket (e.g. the
    bucket an event notification points at) without replacing the cached one.
    """
    global _storage
    from stream_splitter.config import get_settings

    settings = get_settings()

    if bucket is not None and settings.storage_type == "s3" and bucket != settings.storage_s3_bucket:
        return _build_s3(settings, bucket)

    if _storage is None:
        if settings.storage_type == "s3":
            _storage = _build_s3(settings, settings.storage_s3_bucket)
        else:
            _storage = LocalStorage(base_path=settings.storage_local_path)

    return _storage


def _build_s3(settings, bucket: str) -> S3Storage:
    return S3Storage(
        bucket=bucket,
        endpoint_url=settings.storage_s3_endpoint,
        region=settings.storage_s3_region,
        access_key=settings.storage_s3_access_key,
        secret_key=settings.storage_s3_secret_key,
    )


def reset_storage() -> None:
    """Reset storage instance (for testing)."""
    global _storage
    _storage = None
