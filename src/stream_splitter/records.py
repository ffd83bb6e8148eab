"""
Record classifier - turns a delimited byte stream into field-named records.

The first non-empty row is the header. Each later non-empty row is zipped
positionally against it. Blank rows are skipped; a row whose width differs
from the header, or broken quoting, is a ParseError that ends the run.
"""

import codecs
import csv
import io
from typing import IO, Iterator

import structlog

from stream_splitter.errors import ParseError, SourceReadError

logger = structlog.get_logger()

Record = dict[str, str]


def _text_stream(stream: IO, encoding: str) -> IO[str]:
    if isinstance(stream, io.TextIOBase):
        return stream
    if isinstance(stream, io.IOBase):
        return io.TextIOWrapper(stream, encoding=encoding, newline="")
    # Duck-typed bodies (e.g. HTTP response bodies) only promise read()
    return codecs.getreader(encoding)(stream)


class RecordReader:
    """
    Lazy, forward-only iterator of records over one source stream.

    Attributes:
        fieldnames: Header fields, populated once the header row is read
        rows_read: Data rows turned into records
        rows_skipped: Blank rows skipped after the header
    """

    def __init__(self, stream: IO, delimiter: str = ",", encoding: str = "utf-8-sig"):
        self.delimiter = delimiter
        self.encoding = encoding
        self.fieldnames: list[str] | None = None
        self.rows_read = 0
        self.rows_skipped = 0
        self._reader = csv.reader(
            _text_stream(stream, encoding),
            delimiter=delimiter,
            strict=True,
        )

    def __iter__(self) -> Iterator[Record]:
        while True:
            row = self._next_row()
            if row is None:
                return
            if not row:
                if self.fieldnames is not None:
                    self.rows_skipped += 1
                continue

            if self.fieldnames is None:
                self.fieldnames = row
                logger.debug("header_read", fields=row)
                continue

            if len(row) != len(self.fieldnames):
                raise ParseError(
                    f"Row has {len(row)} fields, header has {len(self.fieldnames)}",
                    line=self._reader.line_num,
                    expected=len(self.fieldnames),
                    found=len(row),
                )

            self.rows_read += 1
            yield dict(zip(self.fieldnames, row))

    def _next_row(self) -> list[str] | None:
        try:
            return next(self._reader)
        except StopIteration:
            return None
        except csv.Error as e:
            raise ParseError(
                f"Malformed row: {e}", line=self._reader.line_num, cause=e
            ) from e
        except UnicodeDecodeError as e:
            raise ParseError(
                f"Undecodable input ({self.encoding}): {e}",
                line=self._reader.line_num,
                cause=e,
            ) from e
        except Exception as e:
            raise SourceReadError(
                f"Source stream failed: {e}", line=self._reader.line_num, cause=e
            ) from e


def iter_records(stream: IO, delimiter: str = ",", encoding: str = "utf-8-sig") -> Iterator[Record]:
    """Yield records from ``stream``. See RecordReader."""
    return iter(RecordReader(stream, delimiter=delimiter, encoding=encoding))
