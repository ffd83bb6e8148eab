"""Stream Splitter - route records of one large delimited file into per-group outputs."""

from stream_splitter.errors import (
    CleanupError,
    ParseError,
    SinkCommitError,
    SourceReadError,
    SourceUnavailableError,
    SplitterError,
)
from stream_splitter.policy import KeyPolicy
from stream_splitter.records import Record, iter_records
from stream_splitter.router import GroupRouter
from stream_splitter.splitter import SplitResult, StreamSplitter

__version__ = "0.1.0"

__all__ = [
    "CleanupError",
    "GroupRouter",
    "KeyPolicy",
    "ParseError",
    "Record",
    "SinkCommitError",
    "SourceReadError",
    "SourceUnavailableError",
    "SplitResult",
    "SplitterError",
    "StreamSplitter",
    "iter_records",
]
