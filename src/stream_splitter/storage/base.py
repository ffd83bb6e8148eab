"""Base storage interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Iterator


@dataclass
class FileInfo:
    """Information about a stored file."""

    path: str
    size_bytes: int
    content_type: str | None
    last_modified: datetime | None
    checksum: str | None = None
    metadata: dict | None = None


def join_path(*parts: str) -> str:
    """Join storage path components with '/', dropping empty ones."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


class Storage(ABC):
    """Abstract base class for storage backends."""

    name: str = "base"

    @abstractmethod
    def write(self, path: str, content: bytes | str, content_type: str | None = None) -> FileInfo:
        """
        Write content to storage.

        Args:
            path: Storage path (e.g., "output/Fall-2024/Lincoln High School/9th-Grade/Math-Algebra.csv")
            content: File content (bytes or string)
            content_type: Optional MIME type

        Returns:
            FileInfo with details about the stored file
        """
        ...

    @abstractmethod
    def write_stream(
        self, path: str, stream: BinaryIO, content_type: str | None = None
    ) -> FileInfo:
        """
        Write a stream to storage.

        Reads until the stream reports EOF, so the caller may still be
        producing data when this starts. The object is only visible once
        the whole stream has been committed.

        Args:
            path: Storage path
            stream: Binary stream to write
            content_type: Optional MIME type

        Returns:
            FileInfo with details about the stored file
        """
        ...

    @abstractmethod
    def read(self, path: str) -> bytes:
        """
        Read content from storage.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        ...

    @abstractmethod
    def read_stream(self, path: str) -> BinaryIO:
        """
        Open content as a binary stream. The caller closes it.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a file exists."""
        ...

    @abstractmethod
    def delete(self, path: str) -> bool:
        """
        Delete a file.

        Returns:
            True if deleted, False if didn't exist
        """
        ...

    @abstractmethod
    def list(self, prefix: str = "") -> Iterator[FileInfo]:
        """
        List files with the given prefix.

        Args:
            prefix: Path prefix to filter by

        Yields:
            FileInfo for each matching file
        """
        ...

    @abstractmethod
    def info(self, path: str) -> FileInfo | None:
        """
        Get information about a file.

        Returns:
            FileInfo or None if file doesn't exist
        """
        ...

    def delete_prefix(self, prefix: str) -> int:
        """
        Delete every file stored under ``prefix`` treated as a directory.

        ``"Fall"`` removes ``Fall/a.csv`` but not ``Fall-2024/a.csv``.

        Returns:
            Number of files deleted (0 when nothing was there)
        """
        directory = join_path(prefix) + "/"
        deleted = 0
        # Materialize first; deleting while listing confuses some backends
        for info in list(self.list(directory)):
            if self.delete(info.path):
                deleted += 1
        return deleted

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        """Read content as text."""
        return self.read(path).decode(encoding)

    def write_text(self, path: str, content: str, encoding: str = "utf-8") -> FileInfo:
        """Write text content."""
        return self.write(path, content.encode(encoding), content_type="text/plain")
