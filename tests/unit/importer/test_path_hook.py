"""Unit tests for path hook registration."""

from __future__ import annotations

import sys
from pathlib import Path

from importer.archive_registry import open_archive_paths
from importer.finder import ArchiveFinder
from importer.path_hook import install, is_installed, uninstall
from tests.archive_builder import ArchiveBuilder, copy_folder


def test_install_registers_hook_once() -> None:
    """Installing twice should leave a single hook at the front."""
    try:
        install()
        install()
        hooks = [hook for hook in sys.path_hooks if hook is ArchiveFinder]
        first_hook = sys.path_hooks[0]
    finally:
        uninstall()

    assert hooks == [ArchiveFinder] and first_hook is ArchiveFinder


def test_uninstall_drops_cached_finders_and_handles(tmp_path: Path) -> None:
    """Uninstalling should forget archive finders and close shared handles."""
    builder = ArchiveBuilder().add_folder(copy_folder([("m.py", b"m = 1\n")]))
    archive = str(builder.write(tmp_path / "a.7z"))
    install()
    sys.path_importer_cache[archive] = ArchiveFinder(archive)

    uninstall()

    assert not is_installed() and (
        archive not in sys.path_importer_cache and open_archive_paths() == ()
    )
