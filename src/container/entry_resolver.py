"""Path lookup over an archive's flat files table.

This module maps archive-relative paths to file entries, reconstructs the
directory tree implied by entry paths, and validates that an entry's
folder range exists before any bytes are read.
"""

from __future__ import annotations

from core.constants import ARCHIVE_PATH_SEPARATOR
from core.errors import ResolutionError
from core.types import ArchiveIndex, FileEntry


class EntryResolver:
    """Read-only path index for one archive.

    The resolver is built once per open archive and shared between threads.
    Anti-items and unnamed entries are ignored. When two entries share a
    path, the later one wins.
    """

    def __init__(self, index: ArchiveIndex) -> None:
        self._index = index
        self._files: dict[str, FileEntry] = {}
        self._directories: set[str] = set()
        for entry in index.files:
            if entry.is_anti or not entry.path:
                continue
            for depth in range(1, len(entry.path)):
                self._directories.add(ARCHIVE_PATH_SEPARATOR.join(entry.path[:depth]))
            if entry.is_directory:
                self._directories.add(entry.name)
            else:
                self._files[entry.name] = entry

    def lookup(self, path: str) -> FileEntry | None:
        """Return the file entry stored at an archive-relative path."""
        return self._files.get(normalize_archive_path(path))

    def is_directory(self, path: str) -> bool:
        """Check whether a path is an explicit or implied directory."""
        return normalize_archive_path(path) in self._directories

    def file_paths(self) -> tuple[str, ...]:
        """Return every file path in sorted order."""
        return tuple(sorted(self._files))

    def locate(self, entry: FileEntry) -> tuple[int, int, int]:
        """Resolve a stream entry to its folder range.

        Args:
            entry: File entry with a stream.

        Returns:
            Tuple of folder index, offset, and size.

        Raises:
            ResolutionError: If the entry has no stream or points outside
                its folder's decoded output.
        """
        folder_index = entry.folder_index
        if not entry.has_stream or folder_index is None:
            raise ResolutionError(f"Entry {entry.name} has no stream to read.")
        if folder_index >= len(self._index.folders):
            raise ResolutionError(
                f"Entry {entry.name} references folder {folder_index}, but the archive "
                f"has {len(self._index.folders)}. The archive index is corrupted."
            )
        folder = self._index.folders[folder_index]
        if entry.offset + entry.size > folder.unpack_size:
            raise ResolutionError(
                f"Entry {entry.name} spans bytes {entry.offset}..{entry.offset + entry.size} "
                f"of folder {folder_index}, which unpacks to {folder.unpack_size} bytes. "
                "The archive index is corrupted."
            )
        return folder_index, entry.offset, entry.size


def normalize_archive_path(path: str) -> str:
    """Normalize separators and strip leading/trailing slashes."""
    segments = path.replace("\\", ARCHIVE_PATH_SEPARATOR).split(ARCHIVE_PATH_SEPARATOR)
    return ARCHIVE_PATH_SEPARATOR.join(segment for segment in segments if segment not in ("", "."))
