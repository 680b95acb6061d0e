"""Unit tests for archive path lookup."""

from __future__ import annotations

import pytest

from container.entry_resolver import EntryResolver, normalize_archive_path
from core.errors import ResolutionError
from core.types import ArchiveIndex, CoderNode, FileEntry, FolderDescriptor


def _index(*files: FileEntry) -> ArchiveIndex:
    folder = FolderDescriptor(
        coders=(CoderNode(b"\x00"),),
        bind_pairs=(),
        packed_streams=(0,),
        unpack_sizes=(10,),
    )
    return ArchiveIndex(folders=(folder,), files=files)


def test_lookup_finds_file_by_normalized_path() -> None:
    """Lookups should accept backslashes and redundant separators."""
    entry = FileEntry(path=("pak", "module2.py"), has_stream=True, folder_index=0, size=4)
    resolver = EntryResolver(_index(entry))

    found = resolver.lookup("\\pak//module2.py")

    assert found is entry


def test_is_directory_includes_implied_parents() -> None:
    """Directories implied by file paths should be reported without explicit entries."""
    entry = FileEntry(path=("ns", "inner", "mod.py"), has_stream=True, folder_index=0, size=4)
    resolver = EntryResolver(_index(entry))

    implied = tuple(resolver.is_directory(path) for path in ("ns", "ns/inner", "ns/inner/mod.py"))

    assert implied == (True, True, False)


def test_anti_items_are_ignored() -> None:
    """Deletion markers should not be visible as files or directories."""
    anti = FileEntry(path=("gone", "mod.py"), has_stream=False, is_empty_file=True, is_anti=True)
    resolver = EntryResolver(_index(anti))

    visible = (resolver.lookup("gone/mod.py"), resolver.is_directory("gone"))

    assert visible == (None, False)


def test_later_duplicate_path_wins() -> None:
    """When two entries share a path, the later one should be returned."""
    first = FileEntry(path=("a.py",), has_stream=True, folder_index=0, size=2)
    second = FileEntry(path=("a.py",), has_stream=True, folder_index=0, offset=2, size=3)
    resolver = EntryResolver(_index(first, second))

    found = resolver.lookup("a.py")

    assert found is second


def test_locate_rejects_range_outside_folder() -> None:
    """Entries extending past the folder output should raise a resolution error."""
    entry = FileEntry(path=("a.py",), has_stream=True, folder_index=0, offset=8, size=4)
    resolver = EntryResolver(_index(entry))

    with pytest.raises(ResolutionError, match="corrupted"):
        resolver.locate(entry)


def test_locate_rejects_missing_folder() -> None:
    """Entries naming a folder the index lacks should raise a resolution error."""
    entry = FileEntry(path=("a.py",), has_stream=True, folder_index=3, size=1)
    resolver = EntryResolver(_index(entry))

    with pytest.raises(ResolutionError, match="folder 3"):
        resolver.locate(entry)


def test_normalize_archive_path_strips_dot_segments() -> None:
    """Path normalization should drop empty and current-directory segments."""
    normalized = normalize_archive_path("./pak/./module2.py/")

    assert normalized == "pak/module2.py"


def test_file_paths_lists_each_path_once() -> None:
    """Duplicate names should collapse to one sorted path."""
    first = FileEntry(path=("b.py",), has_stream=True, folder_index=0, size=2)
    duplicate = FileEntry(path=("b.py",), has_stream=True, folder_index=0, offset=2, size=2)
    other = FileEntry(path=("a.py",), has_stream=True, folder_index=0, offset=4, size=2)
    resolver = EntryResolver(_index(first, duplicate, other))

    paths = resolver.file_paths()

    assert paths == ("a.py", "b.py") and resolver.lookup("b.py") is duplicate
