"""Tests for end-to-end splitting."""

import io
import random
from datetime import date

import pytest

from stream_splitter.config import Settings
from stream_splitter.errors import (
    KeyDerivationError,
    ParseError,
    SinkCommitError,
    SourceReadError,
    SourceUnavailableError,
)
from stream_splitter.fixtures import SIZES, roster_csv
from stream_splitter.policy import KeyPolicy, roster_policy
from stream_splitter.splitter import StreamSplitter
from stream_splitter.validation import validate_split


class FailingBody(io.RawIOBase):
    """Body that yields one chunk, then raises."""

    def __init__(self, payload: bytes):
        self._payload = payload
        self._served = False
        self.closed_called = False

    def readable(self):
        return True

    def readinto(self, buffer):
        if self._served:
            raise ConnectionResetError("connection reset by peer")
        self._served = True
        buffer[: len(self._payload)] = self._payload
        return len(self._payload)

    def close(self):
        self.closed_called = True
        super().close()


class TestStreamSplitter:
    """Tests for StreamSplitter.process()."""

    def test_semester_grade_scenario(self, recording_storage, sample_csv, semester_policy):
        """Test the School/Semester/Grade sample splits into two groups."""
        recording_storage.write("incoming/sample.csv", sample_csv)
        splitter = StreamSplitter(recording_storage, semester_policy, output_prefix="out")

        result = splitter.process("incoming/sample.csv")

        assert result.rows == 3
        assert result.groups == {"out/Fall/Fall/9": 2, "out/Spring/Spring/9": 1}
        assert result.partitions == ["Fall", "Spring"]
        assert sorted(recording_storage.calls("delete_start")) == ["out/Fall", "out/Spring"]
        assert recording_storage.read_text("out/Fall/Fall/9") == (
            "School,Semester,Grade\nA,Fall,9\nB,Fall,9\n"
        )
        assert recording_storage.read_text("out/Spring/Spring/9") == (
            "School,Semester,Grade\nA,Spring,9\n"
        )

    def test_roster_round_trip(self, local_storage):
        """Test every roster row lands in exactly one output file."""
        text = roster_csv(SIZES["small"], rng=random.Random(7), today=date(2024, 9, 1))
        local_storage.write("incoming/master-data-small.csv", text)
        splitter = StreamSplitter(local_storage, roster_policy(), output_prefix="output")

        result = splitter.process("incoming/master-data-small.csv")

        assert result.partitions == ["Fall-2024"]
        assert result.rows == 3 * 4 * 15 * 5
        assert sum(result.groups.values()) == result.rows
        assert all(path.startswith("output/Fall-2024/") for path in result.groups)

        report = validate_split(local_storage, "incoming/master-data-small.csv", "output")
        assert report.ok
        assert report.same_lines == result.rows

    def test_rerun_replaces_partition(self, local_storage, semester_policy):
        """Test a second run drops groups that no longer exist in the partition."""
        local_storage.write("in.csv", "School,Semester,Grade\nA,Fall,9\nA,Fall,10\n")
        splitter = StreamSplitter(local_storage, semester_policy, output_prefix="out")
        splitter.process("in.csv")
        assert local_storage.exists("out/Fall/Fall/10")

        local_storage.write("in.csv", "School,Semester,Grade\nA,Fall,9\n")
        splitter.process("in.csv")

        assert not local_storage.exists("out/Fall/Fall/10")
        assert local_storage.read_text("out/Fall/Fall/9") == "School,Semester,Grade\nA,Fall,9\n"

    def test_cleanup_failure_still_commits(self, make_storage, sample_csv, semester_policy):
        """Test a failed delete for Fall is logged and Fall groups still commit."""
        storage = make_storage(fail_delete=("out/Fall",))
        storage.write("in.csv", sample_csv)

        result = StreamSplitter(storage, semester_policy, output_prefix="out").process("in.csv")

        assert result.cleanup_failures == ["Fall"]
        assert storage.exists("out/Fall/Fall/9")
        assert storage.exists("out/Spring/Spring/9")

    def test_missing_source(self, local_storage, semester_policy):
        """Test a missing source raises SourceUnavailableError."""
        splitter = StreamSplitter(local_storage, semester_policy)

        with pytest.raises(SourceUnavailableError) as exc_info:
            splitter.process("nope.csv")

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_read_error_mid_stream(self, recording_storage, semester_policy, monkeypatch):
        """Test a read error fails the run and commits nothing."""
        body = FailingBody(b"School,Semester,Grade\nA,Fall,9\n")
        monkeypatch.setattr(recording_storage, "read_stream", lambda path: body)
        splitter = StreamSplitter(recording_storage, semester_policy, output_prefix="out")

        with pytest.raises(SourceReadError):
            splitter.process("in.csv")

        assert recording_storage.calls("commit_end") == []
        assert not recording_storage.exists("out/Fall/Fall/9")
        assert body.closed_called

    def test_parse_error_aborts(self, recording_storage, semester_policy):
        """Test a malformed row fails the run without committing earlier groups."""
        recording_storage.write("in.csv", "School,Semester,Grade\nA,Fall,9\nB,Spring\n")
        splitter = StreamSplitter(recording_storage, semester_policy, output_prefix="out")

        with pytest.raises(ParseError):
            splitter.process("in.csv")

        assert recording_storage.calls("commit_end") == []
        assert recording_storage.calls("delete_start") == ["out/Fall"]

    def test_key_error_aborts(self, local_storage):
        """Test a policy referencing a missing column fails the run."""
        local_storage.write("in.csv", "School,Grade\nA,9\n")
        splitter = StreamSplitter(local_storage, KeyPolicy.from_templates("{Semester}", "{Grade}"))

        with pytest.raises(KeyDerivationError):
            splitter.process("in.csv")

    def test_commit_failure_fails_run(self, make_storage, sample_csv, semester_policy):
        """Test a failed commit surfaces as SinkCommitError."""
        storage = make_storage(fail_write=("out/Spring",))
        storage.write("in.csv", sample_csv)

        with pytest.raises(SinkCommitError):
            StreamSplitter(storage, semester_policy, output_prefix="out").process("in.csv")

    def test_separate_source_storage(self, local_storage, tmp_path, semester_policy, sample_csv):
        """Test the source can come from a different storage than the outputs."""
        from stream_splitter.storage import LocalStorage

        source = LocalStorage(tmp_path / "source")
        source.write("drop/in.csv", sample_csv)
        splitter = StreamSplitter(local_storage, semester_policy, source_storage=source)

        result = splitter.process("drop/in.csv")

        assert len(result.groups) == 2
        assert not local_storage.exists("drop/in.csv")

    def test_from_settings(self, local_storage):
        """Test settings drive prefix, delimiter and key templates."""
        settings = Settings(
            dest_prefix="/split/",
            delimiter=";",
            partition_template="{term}",
            group_template="{room}.csv",
        )
        local_storage.write("in.csv", "term;room;name\nT1;R1;x\nT1;R2;y\n")

        result = StreamSplitter.from_settings(settings, storage=local_storage).process("in.csv")

        assert result.groups == {"split/T1/R1.csv": 1, "split/T1/R2.csv": 1}
        assert local_storage.read_text("split/T1/R1.csv") == "term;room;name\nT1;R1;x\n"

    def test_result_to_dict(self, local_storage, sample_csv, semester_policy):
        """Test the summary is JSON friendly."""
        local_storage.write("in.csv", sample_csv)

        summary = StreamSplitter(local_storage, semester_policy).process("in.csv").to_dict()

        assert summary["rows"] == 3
        assert summary["source"] == "in.csv"
        assert "files" not in summary
