"""Group sinks - one buffered CSV output per group, drained by a background commit."""

import csv
import io
import threading
from concurrent.futures import Future
from enum import Enum

from stream_splitter.records import Record

# Rows are handed to the pipe in batches of roughly this many characters
_FLUSH_THRESHOLD = 64 * 1024


class PipeStream:
    """
    In-memory byte pipe between the routing thread and a commit worker.

    The writer side appends bytes and eventually closes. The reader side
    behaves like a blocking file: ``read(n)`` returns exactly ``n`` bytes
    unless the pipe is closed first, so upload code that sizes parts by the
    read length keeps working. Buffering is unbounded.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._cond = threading.Condition()
        self._closed = False
        self._error: BaseException | None = None
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        with self._cond:
            if self._error is not None:
                # Reader is gone; the run has already failed
                return 0
            if self._closed:
                raise ValueError("write to closed pipe")
            self._buffer.extend(data)
            self.bytes_written += len(data)
            self._cond.notify_all()
        return len(data)

    def close(self) -> None:
        """Signal EOF to the reader."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def abort(self, error: BaseException) -> None:
        """Make pending and future reads raise ``error``."""
        with self._cond:
            self._error = error
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        with self._cond:
            if size is None or size < 0:
                self._cond.wait_for(lambda: self._closed)
            else:
                self._cond.wait_for(lambda: self._closed or len(self._buffer) >= size)
            if self._error is not None:
                raise self._error

            if size is None or size < 0:
                size = len(self._buffer)
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data


class SinkState(str, Enum):
    """Lifecycle of a group sink."""

    PENDING_CLEANUP = "pending_cleanup"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class GroupSink:
    """
    Output for one group: header plus rows, serialized as delimited text.

    Rows are accepted from creation until ``close()``, whether or not the
    commit has started. ``completion`` resolves with the committed FileInfo.
    """

    def __init__(
        self,
        path: str,
        partition_key: str,
        group_key: str,
        fieldnames: list[str],
        delimiter: str = ",",
        encoding: str = "utf-8",
    ):
        self.path = path
        self.partition_key = partition_key
        self.group_key = group_key
        self.fieldnames = list(fieldnames)
        self.encoding = encoding
        self.rows = 0
        self.state = SinkState.PENDING_CLEANUP
        self.pipe = PipeStream()
        self.completion: Future = Future()

        self._text = io.StringIO()
        self._writer = csv.writer(self._text, delimiter=delimiter, lineterminator="\n")
        self._writer.writerow(self.fieldnames)

    @property
    def closed(self) -> bool:
        return self.pipe.closed

    def write(self, record: Record) -> None:
        """Append one record, in this sink's header order."""
        self._writer.writerow([record.get(name, "") for name in self.fieldnames])
        self.rows += 1
        if self._text.tell() >= _FLUSH_THRESHOLD:
            self._flush()

    def close(self) -> None:
        """Flush buffered rows and signal end of data to the commit."""
        if self.pipe.closed:
            return
        self._flush()
        self.pipe.close()

    def abort(self, error: BaseException) -> None:
        """Stop accepting rows and fail the pending commit read."""
        self.pipe.abort(error)

    def _flush(self) -> None:
        text = self._text.getvalue()
        if text:
            self.pipe.write(text.encode(self.encoding))
            self._text.seek(0)
            self._text.truncate()
