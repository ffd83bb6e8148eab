"""Local filesystem storage backend."""

import hashlib
import mimetypes
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterator

import structlog

from stream_splitter.storage.base import FileInfo, Storage

logger = structlog.get_logger()

_CHUNK_SIZE = 1024 * 1024


class LocalStorage(Storage):
    """
    Local filesystem storage backend.

    Stores files in a configurable base directory with
    the path structure preserved.
    """

    name = "local"

    def __init__(self, base_path: str | Path = "./data"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info("local_storage_initialized", base_path=str(self.base_path))

    def _resolve_path(self, path: str) -> Path:
        """Resolve a storage path to absolute filesystem path."""
        clean_path = Path(path).as_posix().lstrip("/")
        full_path = self.base_path / clean_path

        # Security: ensure path is within base_path
        try:
            full_path.resolve().relative_to(self.base_path)
        except ValueError:
            raise ValueError(f"Invalid path: {path} (outside base directory)")

        return full_path

    def _detect_content_type(self, path: str) -> str | None:
        """Detect content type from file extension."""
        content_type, _ = mimetypes.guess_type(path)
        return content_type

    def write(self, path: str, content: bytes | str, content_type: str | None = None) -> FileInfo:
        """Write content to local filesystem."""
        full_path = self._resolve_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        if isinstance(content, str):
            content = content.encode("utf-8")

        full_path.write_bytes(content)

        if content_type is None:
            content_type = self._detect_content_type(path)

        logger.info("file_written", path=path, size=len(content))

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
        """
        Copy a stream to the local filesystem.

        Data lands in a temporary file beside the target and is renamed into
        place once the stream is exhausted, so readers never see a partial file.
        """
        full_path = self._resolve_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        digest = hashlib.sha256()
        size = 0
        fd, tmp_name = tempfile.mkstemp(dir=full_path.parent, prefix=".", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = stream.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                    digest.update(chunk)
                    size += len(chunk)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp_name, full_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        if content_type is None:
            content_type = self._detect_content_type(path)

        logger.info("file_stream_written", path=path, size=size)

        return FileInfo(
            path=path,
            size_bytes=size,
            content_type=content_type,
            last_modified=datetime.now(),
            checksum=digest.hexdigest(),
        )

    def read(self, path: str) -> bytes:
        """Read content from local filesystem."""
        full_path = self._resolve_path(path)

        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        return full_path.read_bytes()

    def read_stream(self, path: str) -> BinaryIO:
        """Open the file for streaming reads."""
        full_path = self._resolve_path(path)

        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        return full_path.open("rb")

    def exists(self, path: str) -> bool:
        """Check if file exists."""
        full_path = self._resolve_path(path)
        return full_path.exists() and full_path.is_file()

    def delete(self, path: str) -> bool:
        """Delete a file."""
        full_path = self._resolve_path(path)

        if not full_path.exists():
            return False

        full_path.unlink()
        logger.debug("file_deleted", path=path)
        return True

    def delete_prefix(self, prefix: str) -> int:
        """Remove the directory tree under ``prefix``."""
        deleted = super().delete_prefix(prefix)

        directory = self._resolve_path(prefix)
        if directory != self.base_path and directory.is_dir():
            shutil.rmtree(directory)

        logger.info("prefix_deleted", prefix=prefix, deleted=deleted)
        return deleted

    def list(self, prefix: str = "") -> Iterator[FileInfo]:
        """List files with the given prefix."""
        if prefix:
            search_path = self._resolve_path(prefix)
            if search_path.is_file():
                info = self.info(prefix)
                if info:
                    yield info
                return
            search_dir = search_path if search_path.is_dir() else search_path.parent
        else:
            search_dir = self.base_path

        if not search_dir.exists():
            return

        for file_path in sorted(search_dir.rglob("*")):
            if file_path.is_file() and not file_path.name.endswith(".part"):
                rel_path = file_path.relative_to(self.base_path).as_posix()
                if rel_path.startswith(prefix.lstrip("/")):
                    stat = file_path.stat()
                    yield FileInfo(
                        path=rel_path,
                        size_bytes=stat.st_size,
                        content_type=None,
                        last_modified=datetime.fromtimestamp(stat.st_mtime),
                    )

    def info(self, path: str) -> FileInfo | None:
        """Get information about a file."""
        full_path = self._resolve_path(path)

        if not full_path.exists() or not full_path.is_file():
            return None

        stat = full_path.stat()
        return FileInfo(
            path=path,
            size_bytes=stat.st_size,
            content_type=self._detect_content_type(path),
            last_modified=datetime.fromtimestamp(stat.st_mtime),
        )
