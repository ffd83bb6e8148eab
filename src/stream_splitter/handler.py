"""Object-created event handler (S3 notification or Lambda trigger)."""

from typing import Any
from urllib.parse import unquote_plus

import structlog

from stream_splitter.config import Settings, get_settings
from stream_splitter.errors import ConfigError
from stream_splitter.logging import configure_logging
from stream_splitter.splitter import StreamSplitter
from stream_splitter.storage import S3Storage, Storage, get_storage
from stream_splitter.storage.base import join_path

logger = structlog.get_logger()


def handle_event(
    event: dict[str, Any],
    storage: Storage | None = None,
    source_storage: Storage | None = None,
    settings: Settings | None = None,
) -> list[dict[str, Any]]:
    """
    Split every object referenced by an S3 ObjectCreated event.

    Objects already under the output prefix are ignored so outputs written
    back to the source bucket do not trigger further runs. Without an output
    prefix that loop cannot be broken, so writing into the source bucket
    raises ``ConfigError``.
    """
    settings = settings or get_settings()
    output_prefix = join_path(settings.dest_prefix)
    results = []

    for record in event.get("Records", []):
        event_name = record.get("eventName", "")
        if event_name and not event_name.startswith("ObjectCreated"):
            logger.debug("event_ignored", event_name=event_name)
            continue

        s3 = record["s3"]
        bucket = s3["bucket"]["name"]
        key = unquote_plus(s3["object"]["key"])
        size = s3["object"].get("size")

        logger.info("object_created", bucket=bucket, key=key, size=size)

        if output_prefix and key.startswith(f"{output_prefix}/"):
            logger.info("event_skipped_output_object", key=key)
            continue

        source_bucket = settings.source_bucket or bucket
        if not output_prefix and source_bucket == _destination_bucket(storage, settings):
            raise ConfigError(
                "An output prefix is required when outputs go to the source bucket",
                bucket=source_bucket,
                key=key,
            )

        splitter = StreamSplitter.from_settings(
            settings,
            storage=storage,
            source_storage=source_storage or get_storage(bucket=source_bucket),
        )
        results.append(splitter.process(key).to_dict())

    return results


def _destination_bucket(storage: Storage | None, settings: Settings) -> str | None:
    if storage is not None:
        return storage.bucket if isinstance(storage, S3Storage) else None
    return settings.storage_s3_bucket if settings.storage_type == "s3" else None


def lambda_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """AWS Lambda entry point."""
    configure_logging()
    results = handle_event(event)
    return {"processed": len(results), "results": results}
