"""Stream splitter - runs one source object through the classifier and router."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from stream_splitter.config import Settings, get_settings
from stream_splitter.errors import SourceUnavailableError
from stream_splitter.policy import KeyPolicy
from stream_splitter.records import RecordReader
from stream_splitter.router import GroupRouter
from stream_splitter.storage import Storage, get_storage
from stream_splitter.storage.base import FileInfo

logger = structlog.get_logger()


@dataclass
class SplitResult:
    """Summary of a completed split."""

    source: str
    rows: int
    rows_skipped: int
    partitions: list[str] = field(default_factory=list)
    groups: dict[str, int] = field(default_factory=dict)
    cleanup_failures: list[str] = field(default_factory=list)
    files: list[FileInfo] = field(default_factory=list)
    duration_ms: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "rows": self.rows,
            "rows_skipped": self.rows_skipped,
            "partitions": self.partitions,
            "groups": self.groups,
            "cleanup_failures": self.cleanup_failures,
            "duration_ms": self.duration_ms,
        }


class StreamSplitter:
    """
    Splits one delimited source object into per-group outputs.

    The source is read from ``source_storage`` (defaults to ``storage``) and
    outputs are written under ``output_prefix`` in ``storage``. A run either
    commits every group or raises the first fatal error.
    """

    def __init__(
        self,
        storage: Storage,
        policy: KeyPolicy,
        output_prefix: str = "",
        source_storage: Storage | None = None,
        delimiter: str = ",",
        encoding: str = "utf-8-sig",
        cleanup_workers: int = 4,
        commit_workers: int = 16,
    ):
        self.storage = storage
        self.source_storage = source_storage or storage
        self.policy = policy
        self.output_prefix = output_prefix
        self.delimiter = delimiter
        self.encoding = encoding
        self.cleanup_workers = cleanup_workers
        self.commit_workers = commit_workers

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        storage: Storage | None = None,
        source_storage: Storage | None = None,
    ) -> "StreamSplitter":
        """Build a splitter from application settings."""
        settings = settings or get_settings()
        return cls(
            storage=storage or get_storage(),
            policy=KeyPolicy.from_templates(settings.partition_template, settings.group_template),
            output_prefix=settings.dest_prefix,
            source_storage=source_storage,
            delimiter=settings.delimiter,
            encoding=settings.encoding,
            cleanup_workers=settings.cleanup_workers,
            commit_workers=settings.commit_workers,
        )

    def open_source(self, source_path: str):
        """Open the source object, raising SourceUnavailableError on failure."""
        try:
            return self.source_storage.read_stream(source_path)
        except Exception as e:
            raise SourceUnavailableError(
                f"Cannot open source {source_path}: {e}",
                cause=e,
                source=source_path,
                storage=self.source_storage.name,
            ) from e

    def process(self, source_path: str) -> SplitResult:
        """
        Split ``source_path`` and wait until every group is committed.

        Raises:
            SourceUnavailableError, SourceReadError, ParseError,
            KeyDerivationError, SinkCommitError: the first fatal error
        """
        run_id = uuid.uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(run_id=run_id, source=source_path):
            return self._process(source_path)

    def _process(self, source_path: str) -> SplitResult:
        start = datetime.now()
        logger.info("split_started", output_prefix=self.output_prefix)

        stream = self.open_source(source_path)
        router = GroupRouter(
            storage=self.storage,
            policy=self.policy,
            output_prefix=self.output_prefix,
            delimiter=self.delimiter,
            cleanup_workers=self.cleanup_workers,
            commit_workers=self.commit_workers,
        )
        reader = RecordReader(stream, delimiter=self.delimiter, encoding=self.encoding)

        with router:
            try:
                for record in reader:
                    if router.failed:
                        break
                    router.route(record)
            except Exception as e:
                router.abort(e)
            else:
                if router.failed:
                    # A commit failed mid-read; stop the remaining sinks too
                    router.abort(router.completion.exception())
                else:
                    router.finish()
            finally:
                stream.close()

            logger.info("waiting_for_commits", groups=len(router.groups))
            files = router.completion.result()

        duration = (datetime.now() - start).total_seconds() * 1000
        result = SplitResult(
            source=source_path,
            rows=reader.rows_read,
            rows_skipped=reader.rows_skipped,
            partitions=sorted(router.partitions),
            groups={path: sink.rows for path, sink in router.groups.items()},
            cleanup_failures=sorted(router.cleanup_failures),
            files=files,
            duration_ms=duration,
        )
        logger.info(
            "split_completed",
            rows=result.rows,
            groups=len(result.groups),
            partitions=len(result.partitions),
            cleanup_failures=len(result.cleanup_failures),
            duration_ms=duration,
        )
        return result
