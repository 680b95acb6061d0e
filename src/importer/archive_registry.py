"""Process-wide registry of archives opened through the path hook.

Every path entry that names the same archive file shares one handle, so
one decode cache serves the archive root and all of its package
search locations.
"""

from __future__ import annotations

import os
import stat
import threading

from container.archive_handle import ArchiveHandle
from container.signature import has_signature_magic
from core.constants import ARCHIVE_PATH_SEPARATOR, SIGNATURE_MAGIC
from core.errors import ArchiveImportError, FormatError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)
_ARCHIVES: dict[str, ArchiveHandle] = {}
_ARCHIVES_LOCK = threading.Lock()


def split_archive_path(path: str) -> tuple[str, str]:
    """Split a path entry into archive file and inner prefix.

    Args:
        path: ``sys.path`` entry such as ``/x/lib.7z`` or ``/x/lib.7z/pkg``.

    Returns:
        Archive file path and an inner prefix that is empty or ends in ``/``.

    Raises:
        ArchiveImportError: If no existing regular file is on the path.
    """
    archive_path = path
    prefix_parts: list[str] = []
    while True:
        try:
            mode = os.stat(archive_path).st_mode
        except (OSError, ValueError):
            parent, tail = os.path.split(archive_path)
            if parent == archive_path or not tail:
                raise ArchiveImportError("not an archive file", path=path) from None
            prefix_parts.insert(0, tail)
            archive_path = parent
            continue
        if not stat.S_ISREG(mode):
            raise ArchiveImportError("not an archive file", path=path)
        break
    prefix = ARCHIVE_PATH_SEPARATOR.join(prefix_parts)
    if prefix:
        prefix += ARCHIVE_PATH_SEPARATOR
    return archive_path, prefix


def get_archive(archive_path: str) -> ArchiveHandle:
    """Return the shared handle for an archive, opening it on first use.

    Args:
        archive_path: Archive file path.

    Returns:
        Open archive handle.

    Raises:
        ArchiveImportError: If the file is unreadable or not a valid archive.
    """
    with _ARCHIVES_LOCK:
        handle = _ARCHIVES.get(archive_path)
        if handle is not None and not handle.closed:
            return handle
        handle = _open_archive(archive_path)
        _ARCHIVES[archive_path] = handle
        return handle


def release_archive(archive_path: str) -> None:
    """Close and forget one shared archive handle."""
    with _ARCHIVES_LOCK:
        handle = _ARCHIVES.pop(archive_path, None)
    if handle is not None:
        handle.close()


def release_archives() -> None:
    """Close and forget every shared archive handle."""
    with _ARCHIVES_LOCK:
        handles = list(_ARCHIVES.values())
        _ARCHIVES.clear()
    for handle in handles:
        handle.close()


def open_archive_paths() -> tuple[str, ...]:
    """Return archive paths with a live shared handle."""
    with _ARCHIVES_LOCK:
        return tuple(sorted(path for path, handle in _ARCHIVES.items() if not handle.closed))


def _open_archive(archive_path: str) -> ArchiveHandle:
    """Open one archive, converting failures into import errors."""
    try:
        with open(archive_path, "rb") as archive_file:
            prefix = archive_file.read(len(SIGNATURE_MAGIC))
    except OSError as error:
        raise ArchiveImportError(f"can't read archive: {error}", path=archive_path) from error
    if not has_signature_magic(prefix):
        raise ArchiveImportError("not an archive file", path=archive_path)
    try:
        return ArchiveHandle.open(archive_path)
    except (OSError, FormatError) as error:
        _LOGGER.warning("path_hook_rejected", archive=archive_path, error=str(error))
        raise ArchiveImportError(
            f"Archive {archive_path} could not be opened: {error}",
            path=archive_path,
        ) from error
