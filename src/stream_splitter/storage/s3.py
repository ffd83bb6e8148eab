"""S3-compatible object storage backend."""

import hashlib
from datetime import datetime
from typing import BinaryIO, Iterator

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import ClientError
import structlog

from stream_splitter.storage.base import FileInfo, Storage, join_path

logger = structlog.get_logger()

# delete_objects accepts at most 1000 keys per call
_DELETE_BATCH = 1000


class S3Storage(Storage):
    """
    S3-compatible object storage backend.

    Works with AWS S3, MinIO, LocalStack, and other S3-compatible services.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region

        if client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(signature_version="s3v4"),
            }

            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url

            if access_key and secret_key:
                client_kwargs["aws_access_key_id"] = access_key
                client_kwargs["aws_secret_access_key"] = secret_key

            client = boto3.client(**client_kwargs)

        self.client = client
        # Sinks are fed from a pipe; keep uploads on the calling thread
        self.transfer_config = TransferConfig(use_threads=False)

        logger.info(
            "s3_storage_initialized",
            bucket=bucket,
            endpoint=endpoint_url,
            region=region,
        )

    def write(self, path: str, content: bytes | str, content_type: str | None = None) -> FileInfo:
        """Write content to S3."""
        key = path.lstrip("/")

        if isinstance(content, str):
            content = content.encode("utf-8")

        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type

        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=content,
            **extra_args,
        )

        logger.info("s3_file_written", bucket=self.bucket, key=key, size=len(content))

        return FileInfo(
            path=path,
            size_bytes=len(content),
            content_type=content_type,
            last_modified=datetime.now(),
            checksum=hashlib.sha256(content).hexdigest(),
        )

    def write_stream(
        self, path: str, stream: BinaryIO, content_type: str | None = None
    ) -> FileInfo:
        """Stream to S3; multipart once the data outgrows one part."""
        key = path.lstrip("/")

        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type

        self.client.upload_fileobj(
            stream,
            self.bucket,
            key,
            ExtraArgs=extra_args if extra_args else None,
            Config=self.transfer_config,
        )

        logger.info("s3_stream_written", bucket=self.bucket, key=key)

        info = self.info(path)
        if info:
            return info

        return FileInfo(
            path=path,
            size_bytes=0,
            content_type=content_type,
            last_modified=datetime.now(),
        )

    def read(self, path: str) -> bytes:
        """Read content from S3."""
        return self.read_stream(path).read()

    def read_stream(self, path: str) -> BinaryIO:
        """Open the object body as a stream."""
        key = path.lstrip("/")

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"]
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                raise FileNotFoundError(f"File not found: {path}")
            raise

    def exists(self, path: str) -> bool:
        """Check if file exists."""
        return self.info(path) is not None

    def delete(self, path: str) -> bool:
        """Delete a file."""
        key = path.lstrip("/")

        if not self.exists(path):
            return False

        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.debug("s3_file_deleted", bucket=self.bucket, key=key)
        return True

    def delete_prefix(self, prefix: str) -> int:
        """Batch-delete every object under ``prefix/``."""
        directory = join_path(prefix)
        directory = f"{directory}/" if directory else ""

        deleted = 0
        batch: list[dict] = []
        for info in self.list(directory):
            batch.append({"Key": info.path})
            if len(batch) == _DELETE_BATCH:
                deleted += self._delete_batch(batch)
                batch = []
        if batch:
            deleted += self._delete_batch(batch)

        logger.info("s3_prefix_deleted", bucket=self.bucket, prefix=directory, deleted=deleted)
        return deleted

    def _delete_batch(self, objects: list[dict]) -> int:
        response = self.client.delete_objects(
            Bucket=self.bucket,
            Delete={"Objects": objects, "Quiet": True},
        )
        errors = response.get("Errors", [])
        if errors:
            first = errors[0]
            raise RuntimeError(
                f"Failed to delete {len(errors)} object(s), first {first.get('Key')}: "
                f"{first.get('Code')} {first.get('Message')}"
            )
        return len(objects)

    def list(self, prefix: str = "") -> Iterator[FileInfo]:
        """List files with the given prefix."""
        prefix = prefix.lstrip("/")

        paginator = self.client.get_paginator("list_objects_v2")

        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                yield FileInfo(
                    path=obj["Key"],
                    size_bytes=obj["Size"],
                    content_type=None,
                    last_modified=obj["LastModified"],
                )

    def info(self, path: str) -> FileInfo | None:
        """Get information about a file."""
        key = path.lstrip("/")

        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
            return FileInfo(
                path=path,
                size_bytes=response["ContentLength"],
                content_type=response.get("ContentType"),
                last_modified=response["LastModified"],
                checksum=response.get("ETag", "").strip('"'),
            )
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return None
            raise
