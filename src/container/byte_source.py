"""Random-access byte sources backing open archives.

This module exposes positional reads over files and in-memory buffers.
Reads are serialized so concurrent loaders can share one source.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import BinaryIO, Protocol

from core.errors import ArchiveClosedError


class ByteSource(Protocol):
    """Positional reader over an archive's raw bytes."""

    name: str

    @property
    def size(self) -> int:
        """Total number of bytes available."""
        ...

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to ``size`` bytes starting at ``offset``."""
        ...

    def close(self) -> None:
        """Release the underlying resource."""
        ...


class FileByteSource:
    """File-backed byte source with a lock around seek and read."""

    def __init__(self, path: Path) -> None:
        self.name = str(path)
        self._lock = threading.Lock()
        self._file: BinaryIO | None = path.open("rb")
        try:
            self._size = os.fstat(self._file.fileno()).st_size
        except OSError:
            self._file.close()
            raise

    @property
    def size(self) -> int:
        return self._size

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to ``size`` bytes starting at ``offset``.

        Args:
            offset: Absolute file offset.
            size: Number of bytes requested.

        Returns:
            The bytes read, shorter than requested at end of file.

        Raises:
            ArchiveClosedError: If the source was closed.
        """
        with self._lock:
            if self._file is None:
                raise ArchiveClosedError(
                    f"Byte source {self.name} is closed. Reopen the archive before reading."
                )
            self._file.seek(offset)
            return self._file.read(size)

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None


class BytesByteSource:
    """In-memory byte source."""

    def __init__(self, payload: bytes, name: str = "<memory>") -> None:
        self.name = name
        self._payload = payload

    @property
    def size(self) -> int:
        return len(self._payload)

    def read_at(self, offset: int, size: int) -> bytes:
        return self._payload[offset : offset + size]

    def close(self) -> None:
        self._payload = b""
