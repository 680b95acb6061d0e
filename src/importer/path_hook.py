"""Registration of the archive finder with the host import system."""

from __future__ import annotations

import sys

from importer.archive_registry import release_archives
from importer.finder import ArchiveFinder


def install() -> None:
    """Register ``ArchiveFinder`` as the first ``sys.path_hooks`` entry.

    Installing twice is a no-op. Cached path importers are cleared so
    archive entries already on ``sys.path`` are picked up.
    """
    if ArchiveFinder not in sys.path_hooks:
        sys.path_hooks.insert(0, ArchiveFinder)
    sys.path_importer_cache.clear()


def uninstall() -> None:
    """Remove the hook, its cached finders, and every shared archive handle."""
    while ArchiveFinder in sys.path_hooks:
        sys.path_hooks.remove(ArchiveFinder)
    for path, finder in list(sys.path_importer_cache.items()):
        if isinstance(finder, ArchiveFinder):
            del sys.path_importer_cache[path]
    release_archives()


def is_installed() -> bool:
    return ArchiveFinder in sys.path_hooks
