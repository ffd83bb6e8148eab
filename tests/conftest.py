"""Pytest configuration and fixtures."""

import os
import threading

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("SPLITTER_STORAGE_TYPE", "local")
os.environ.setdefault("SPLITTER_STORAGE_LOCAL_PATH", "/tmp/splitter_test_storage")

from stream_splitter.config import reset_settings
from stream_splitter.policy import KeyPolicy
from stream_splitter.storage import LocalStorage, reset_storage


SAMPLE_CSV = (
    "School,Semester,Grade\n"
    "A,Fall,9\n"
    "B,Fall,9\n"
    "A,Spring,9\n"
)


class RecordingStorage(LocalStorage):
    """
    LocalStorage that records the order of cleanups and commits.

    ``fail_delete`` / ``fail_write`` take path prefixes whose operations raise.
    ``delete_gate`` holds every delete until the event is set.
    """

    def __init__(self, base_path, fail_delete=(), fail_write=(), delete_gate=None):
        super().__init__(base_path)
        self.events: list[tuple[str, str]] = []
        self.fail_delete = tuple(fail_delete)
        self.fail_write = tuple(fail_write)
        self.delete_gate = delete_gate
        self._events_lock = threading.Lock()

    def _record(self, kind: str, path: str) -> None:
        with self._events_lock:
            self.events.append((kind, path))

    def calls(self, kind: str) -> list[str]:
        with self._events_lock:
            return [path for k, path in self.events if k == kind]

    def delete_prefix(self, prefix):
        if self.delete_gate is not None:
            self.delete_gate.wait(timeout=5)
        self._record("delete_start", prefix)
        try:
            if any(prefix.startswith(p) for p in self.fail_delete):
                raise PermissionError(f"denied: {prefix}")
            return super().delete_prefix(prefix)
        finally:
            self._record("delete_end", prefix)

    def write_stream(self, path, stream, content_type=None):
        self._record("commit_start", path)
        if any(path.startswith(p) for p in self.fail_write):
            raise OSError(f"disk full: {path}")
        info = super().write_stream(path, stream, content_type)
        self._record("commit_end", path)
        return info


@pytest.fixture(autouse=True)
def reset_globals():
    """Fresh settings and storage per test."""
    reset_settings()
    reset_storage()
    yield
    reset_settings()
    reset_storage()


@pytest.fixture
def storage_dir(tmp_path):
    path = tmp_path / "storage"
    path.mkdir()
    return path


@pytest.fixture
def local_storage(storage_dir):
    return LocalStorage(storage_dir)


@pytest.fixture
def recording_storage(storage_dir):
    return RecordingStorage(storage_dir)


@pytest.fixture
def make_storage(storage_dir):
    """Build a RecordingStorage with failure or gating options."""

    def factory(**kwargs):
        return RecordingStorage(storage_dir, **kwargs)

    return factory


@pytest.fixture
def sample_csv():
    return SAMPLE_CSV


@pytest.fixture
def semester_policy():
    """Partition by Semester, group by Semester/Grade."""
    return KeyPolicy.from_templates("{Semester}", "{Semester}/{Grade}")
