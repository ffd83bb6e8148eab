"""Output validation - checks that a split reproduced every source row exactly once."""

import csv
import io
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

import structlog

from stream_splitter.storage.base import Storage, join_path

logger = structlog.get_logger()

Row = tuple[str, ...]


@dataclass
class ValidationReport:
    """Counts from comparing source rows against output rows (headers excluded)."""

    same_lines: int = 0
    duplicates: int = 0
    new_lines: int = 0
    missing_lines: int = 0
    files_checked: int = 0

    @property
    def ok(self) -> bool:
        return not (self.duplicates or self.new_lines or self.missing_lines)

    def to_dict(self) -> dict:
        return {
            "same_lines": self.same_lines,
            "duplicates": self.duplicates,
            "new_lines": self.new_lines,
            "missing_lines": self.missing_lines,
            "files_checked": self.files_checked,
            "ok": self.ok,
        }


def data_rows(text: str, delimiter: str = ",") -> list[Row]:
    """Parse delimited text and return its non-empty rows minus the header."""
    rows = [tuple(row) for row in csv.reader(io.StringIO(text, newline=""), delimiter=delimiter) if row]
    return rows[1:]


def compare_outputs(
    source_rows: Iterable[Row],
    output_files: Iterable[tuple[str, Iterable[Row]]],
) -> ValidationReport:
    """
    Compare the multiset of source rows with rows found in output files.

    Args:
        source_rows: Data rows of the source
        output_files: (name, data rows) per output file

    Returns:
        ValidationReport; each discrepancy is also logged
    """
    expected = Counter(source_rows)
    seen: Counter = Counter()
    report = ValidationReport()

    for name, rows in output_files:
        report.files_checked += 1
        for row in rows:
            if seen[row] < expected[row]:
                seen[row] += 1
                report.same_lines += 1
            elif row in expected:
                logger.warning("duplicate_line", file=name, row=list(row))
                report.duplicates += 1
            else:
                logger.warning("new_line", file=name, row=list(row))
                report.new_lines += 1

    for row, count in (expected - seen).items():
        logger.warning("missing_line", row=list(row), count=count)
        report.missing_lines += count

    return report


def validate_split(
    storage: Storage,
    source_path: str,
    output_prefix: str,
    source_storage: Storage | None = None,
    delimiter: str = ",",
    encoding: str = "utf-8-sig",
) -> ValidationReport:
    """Validate every output under ``output_prefix`` against the source object."""
    source_storage = source_storage or storage
    source_rows = data_rows(source_storage.read(source_path).decode(encoding), delimiter)

    prefix = join_path(output_prefix)
    prefix = f"{prefix}/" if prefix else ""

    def outputs():
        for info in storage.list(prefix):
            if info.path == source_path:
                continue
            yield info.path, data_rows(storage.read(info.path).decode("utf-8"), delimiter)

    report = compare_outputs(source_rows, outputs())
    logger.info("validation_completed", source=source_path, **report.to_dict())
    return report
