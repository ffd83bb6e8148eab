"""Tests for the fake roster generator."""

import csv
import io
import random
from datetime import date

import pytest

from stream_splitter.fixtures import (
    CLASSES_PER_DAY,
    HEADERS,
    SIZES,
    generate_roster,
    roster_csv,
    semester_for,
    write_roster,
)


class TestSemester:
    def test_fall_after_june(self):
        assert semester_for(date(2024, 7, 1)) == "Fall-2024"

    def test_spring_until_june(self):
        assert semester_for(date(2025, 6, 30)) == "Spring-2025"


class TestGenerateRoster:
    """Tests for generate_roster."""

    def test_row_count(self):
        size = SIZES["small"]
        rows = list(generate_roster(size, rng=random.Random(1)))

        assert len(rows) == size.school_count * 4 * size.student_count * CLASSES_PER_DAY

    def test_row_shape(self):
        rows = list(generate_roster(SIZES["small"], rng=random.Random(2), today=date(2024, 2, 1)))

        for row in rows:
            assert len(row) == len(HEADERS)
            assert row[1] == "Spring-2024"
            assert row[2] in {"9th-Grade", "10th-Grade", "11th-Grade", "12th-Grade"}
            score = int(row[6])
            assert score == 0 or 70 <= score <= 100

    def test_seeded_output_is_reproducible(self):
        today = date(2024, 9, 1)
        first = roster_csv(SIZES["small"], rng=random.Random(3), today=today)
        second = roster_csv(SIZES["small"], rng=random.Random(3), today=today)

        assert first == second

    def test_csv_has_header(self):
        text = roster_csv(SIZES["small"], rng=random.Random(4))
        reader = csv.reader(io.StringIO(text))

        assert next(reader) == HEADERS


class TestWriteRoster:
    def test_writes_file(self, tmp_path):
        path = write_roster(tmp_path / "fixtures" / "master-data-small.csv", size="small", seed=5)

        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == ",".join(HEADERS)
        assert len(lines) == 1 + 3 * 4 * 15 * CLASSES_PER_DAY

    def test_unknown_size(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown size"):
            write_roster(tmp_path / "x.csv", size="huge")
