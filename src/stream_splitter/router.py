"""
Group router and completion tracker.

Routing happens synchronously on the caller's thread. For each record the
router makes sure its partition has a cleanup under way (started once per
partition), makes sure its group has a sink, and appends the record to that
sink. Each sink's commit is chained onto its partition's cleanup future, so
no group is written before stale data under its partition is gone.

``completion`` resolves once ``finish()`` has been called and every sink has
committed, or fails with the first fatal error.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime

import structlog

from stream_splitter.errors import (
    CleanupError,
    KeyDerivationError,
    RouterClosedError,
    SinkCommitError,
    SplitterError,
)
from stream_splitter.policy import KeyPolicy
from stream_splitter.records import Record
from stream_splitter.sinks import GroupSink, SinkState
from stream_splitter.storage.base import FileInfo, Storage, join_path

logger = structlog.get_logger()

CSV_CONTENT_TYPE = "text/csv"

_RESERVED_SEGMENTS = ("", ".", "..")


def _checked_partition_key(key: str) -> str:
    """A partition key must name exactly one directory under the output prefix."""
    if key in _RESERVED_SEGMENTS or "/" in key:
        raise KeyDerivationError(
            f"Partition key {key!r} is not a single path segment", partition=key
        )
    return key


def _checked_group_key(key: str) -> str:
    """A group key may nest but must stay inside its partition."""
    if any(part in _RESERVED_SEGMENTS for part in key.strip("/").split("/")):
        raise KeyDerivationError(f"Group key {key!r} is not a relative file path", group=key)
    return key


class GroupRouter:
    """
    Routes records to lazily created group sinks.

    The partition and group maps are only touched from the routing thread
    (``route``, ``finish``, ``abort``). Commit bookkeeping arrives from worker
    threads and is guarded by a lock.

    Commits hold a worker for as long as their sink is open, so with more
    groups than ``commit_workers`` the surplus commits start once earlier
    ones finish; their rows wait in memory meanwhile.
    """

    def __init__(
        self,
        storage: Storage,
        policy: KeyPolicy,
        output_prefix: str = "",
        delimiter: str = ",",
        cleanup_workers: int = 4,
        commit_workers: int = 16,
    ):
        self.storage = storage
        self.policy = policy
        self.output_prefix = join_path(output_prefix)
        self.delimiter = delimiter

        self.completion: Future = Future()
        self.cleanup_failures: dict[str, CleanupError] = {}
        self.rows_routed = 0

        self._cleanups: dict[str, Future] = {}
        self._groups: dict[str, GroupSink] = {}
        self._finished = False
        self._pending = 0
        self._lock = threading.Lock()

        self._cleanup_executor = ThreadPoolExecutor(
            max_workers=cleanup_workers, thread_name_prefix="splitter-cleanup"
        )
        self._commit_executor = ThreadPoolExecutor(
            max_workers=commit_workers, thread_name_prefix="splitter-commit"
        )

    def __enter__(self) -> "GroupRouter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None and not self._finished:
            self.abort(exc)
        self.shutdown()

    @property
    def groups(self) -> dict[str, GroupSink]:
        """Sinks by output path (read-only view for reporting)."""
        return dict(self._groups)

    @property
    def partitions(self) -> list[str]:
        return list(self._cleanups)

    @property
    def failed(self) -> bool:
        return self.completion.done() and self.completion.exception() is not None

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def route(self, record: Record) -> GroupSink:
        """Append ``record`` to its group's sink, creating sink and cleanup as needed."""
        if self._finished:
            raise RouterClosedError("Router no longer accepts records")

        partition_key = _checked_partition_key(self.policy.partition_of(record))
        group_key = _checked_group_key(self.policy.group_of(record))

        cleanup = self._cleanups.get(partition_key)
        if cleanup is None:
            cleanup = self._start_cleanup(partition_key)

        path = join_path(self.output_prefix, partition_key, group_key)
        sink = self._groups.get(path)
        if sink is None:
            sink = self._open_group(path, partition_key, group_key, record, cleanup)

        sink.write(record)
        self.rows_routed += 1
        return sink

    def finish(self) -> Future:
        """
        Mark the source as exhausted and close every sink for writing.

        No new groups can be created afterwards. Returns ``completion``.
        """
        if self._finished:
            return self.completion
        self._finished = True

        logger.info(
            "routing_finished",
            rows=self.rows_routed,
            groups=len(self._groups),
            partitions=len(self._cleanups),
        )
        for sink in self._groups.values():
            sink.close()

        with self._lock:
            self._maybe_complete()
        return self.completion

    def abort(self, error: BaseException) -> Future:
        """
        Fail the run with ``error`` and stop all open sinks.

        Sinks that have not finished committing see ``error`` on their next
        read, so nothing partial is committed from here on.
        """
        self._finished = True
        with self._lock:
            self._reject(error)
        for sink in self._groups.values():
            sink.abort(error)
        return self.completion

    def shutdown(self, wait: bool = True) -> None:
        """Release worker threads. Cleanups first, since they schedule commits."""
        self._cleanup_executor.shutdown(wait=wait)
        self._commit_executor.shutdown(wait=wait)

    # -------------------------------------------------------------------------
    # Partition cleanup
    # -------------------------------------------------------------------------

    def _start_cleanup(self, partition_key: str) -> Future:
        prefix = join_path(self.output_prefix, partition_key)
        logger.info("partition_cleanup_started", partition=partition_key, prefix=prefix)
        future = self._cleanup_executor.submit(self._cleanup, partition_key, prefix)
        self._cleanups[partition_key] = future
        return future

    def _cleanup(self, partition_key: str, prefix: str) -> int:
        """Delete stale objects. Failures are logged and reported as zero deletions."""
        start = datetime.now()
        try:
            deleted = self.storage.delete_prefix(prefix)
        except Exception as e:
            error = CleanupError(
                f"Failed to clean partition {partition_key!r}",
                cause=e,
                partition=partition_key,
                prefix=prefix,
            )
            with self._lock:
                self.cleanup_failures[partition_key] = error
            logger.warning("partition_cleanup_failed", **error.to_dict())
            return 0

        duration = (datetime.now() - start).total_seconds() * 1000
        logger.info(
            "partition_cleanup_completed",
            partition=partition_key,
            prefix=prefix,
            deleted=deleted,
            duration_ms=duration,
        )
        return deleted

    # -------------------------------------------------------------------------
    # Group sinks
    # -------------------------------------------------------------------------

    def _open_group(
        self,
        path: str,
        partition_key: str,
        group_key: str,
        record: Record,
        cleanup: Future,
    ) -> GroupSink:
        sink = GroupSink(
            path=path,
            partition_key=partition_key,
            group_key=group_key,
            fieldnames=list(record),
            delimiter=self.delimiter,
        )
        self._groups[path] = sink
        with self._lock:
            self._pending += 1

        sink.completion.add_done_callback(self._on_sink_settled)
        cleanup.add_done_callback(lambda _: self._schedule_commit(sink))

        logger.debug("group_opened", path=path, partition=partition_key, group=group_key)
        return sink

    def _schedule_commit(self, sink: GroupSink) -> None:
        try:
            self._commit_executor.submit(self._commit, sink)
        except RuntimeError as e:
            # Executor already shut down (run abandoned)
            sink.state = SinkState.FAILED
            sink.completion.set_exception(
                SinkCommitError(f"Commit for {sink.path} was never started", cause=e, path=sink.path)
            )

    def _commit(self, sink: GroupSink) -> None:
        sink.state = SinkState.COMMITTING
        start = datetime.now()
        try:
            info = self.storage.write_stream(sink.path, sink.pipe, content_type=CSV_CONTENT_TYPE)
        except Exception as e:
            sink.state = SinkState.FAILED
            sink.pipe.abort(e)
            sink.completion.set_exception(
                SinkCommitError(
                    f"Failed to commit {sink.path}",
                    cause=e,
                    path=sink.path,
                    partition=sink.partition_key,
                    rows=sink.rows,
                )
            )
            return

        sink.state = SinkState.DONE
        duration = (datetime.now() - start).total_seconds() * 1000
        logger.info(
            "group_committed",
            path=sink.path,
            rows=sink.rows,
            size=info.size_bytes,
            duration_ms=duration,
        )
        sink.completion.set_result(info)

    def _on_sink_settled(self, future: Future) -> None:
        with self._lock:
            self._pending -= 1
            error = future.exception()
            if error is not None:
                self._reject(error)
            else:
                self._maybe_complete()

    # -------------------------------------------------------------------------
    # Run completion (call with self._lock held)
    # -------------------------------------------------------------------------

    def _reject(self, error: BaseException) -> None:
        if self.completion.done():
            # First failure wins
            return
        fields = error.to_dict() if isinstance(error, SplitterError) else {"error": str(error)}
        logger.error("run_failed", **fields)
        self.completion.set_exception(error)

    def _maybe_complete(self) -> None:
        if self.completion.done() or not self._finished or self._pending:
            return
        results: list[FileInfo] = [sink.completion.result() for sink in self._groups.values()]
        self.completion.set_result(results)
