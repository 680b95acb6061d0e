"""Unit tests for archive module resolution."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from core.errors import ArchiveImportError
from importer.archive_registry import open_archive_paths
from importer.finder import ArchiveFinder
from tests.archive_builder import ArchiveBuilder, bytecode_bytes, copy_folder, lzma2_folder


def _write_archive(tmp_path: Path, files: list[tuple[str, bytes]], name: str = "lib.7z") -> Path:
    return ArchiveBuilder().add_folder(lzma2_folder(files)).write(tmp_path / name)


def test_find_unit_prefers_package_over_module(tmp_path: Path) -> None:
    """A package directory should win over a same-named module file."""
    archive = _write_archive(tmp_path, [("pak.py", b"kind = 'module'\n"), ("pak/__init__.py", b"")])
    finder = ArchiveFinder(archive)

    unit = finder.find_unit("pak")

    assert (unit.entry_path, unit.is_package, unit.search_root) == ("pak/__init__.py", True, "pak")


def test_find_unit_prefers_bytecode_over_source(tmp_path: Path) -> None:
    """Bytecode candidates should be tried before source at the same path."""
    archive = _write_archive(
        tmp_path,
        [
            ("module1.py", b"imported = True\n"),
            ("module1.pyc", bytecode_bytes("imported = True\n")),
        ],
    )
    finder = ArchiveFinder(archive)

    unit = finder.find_unit("module1")

    assert (unit.entry_path, unit.is_bytecode) == ("module1.pyc", True)


def test_find_unit_skips_bytecode_when_disabled(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Disabling bytecode should resolve straight to source entries."""
    monkeypatch.setenv("SEVENIMPORT_ALLOW_BYTECODE", "false")
    archive = _write_archive(
        tmp_path,
        [
            ("module1.py", b"imported = True\n"),
            ("module1.pyc", bytecode_bytes("imported = True\n")),
        ],
    )
    finder = ArchiveFinder(archive)

    unit = finder.find_unit("module1")

    assert unit.entry_path == "module1.py"


def test_find_spec_sets_origin_and_search_location(tmp_path: Path) -> None:
    """Package specs should point submodule search at the package directory."""
    files = [("pak/__init__.py", b""), ("pak/module2.py", b"imported = True\n")]
    archive = _write_archive(tmp_path, files)
    finder = ArchiveFinder(archive)

    spec = finder.find_spec("pak")

    assert (spec.origin, spec.submodule_search_locations, spec.loader is finder.loader) == (
        f"{archive}{os.sep}pak{os.sep}__init__.py",
        [f"{archive}{os.sep}pak"],
        True,
    )


def test_find_spec_returns_none_for_missing_module(tmp_path: Path) -> None:
    """Absent modules should be a plain negative result."""
    finder = ArchiveFinder(_write_archive(tmp_path, [("module1.py", b"imported = True\n")]))

    spec = finder.find_spec("missing")

    assert spec is None


def test_find_spec_returns_namespace_portion_for_directory(tmp_path: Path) -> None:
    """Directories without an init entry should become namespace portions."""
    archive = _write_archive(tmp_path, [("ns/mod.py", b"value = 3\n")])
    finder = ArchiveFinder(archive)

    spec = finder.find_spec("ns")

    assert (spec.loader, spec.submodule_search_locations) == (None, [f"{archive}{os.sep}ns"])


def test_finder_resolves_inner_prefix(tmp_path: Path) -> None:
    """Path entries below the archive file should search that directory."""
    files = [("pak/__init__.py", b""), ("pak/module2.py", b"imported = True\n")]
    archive = _write_archive(tmp_path, files)
    finder = ArchiveFinder(f"{archive}{os.sep}pak")

    unit = finder.find_unit("pak.module2")

    assert (finder.prefix, unit.entry_path, unit.is_package) == ("pak/", "pak/module2.py", False)


def test_finders_share_one_archive_handle(tmp_path: Path) -> None:
    """Finders for the archive root and a package share the same handle."""
    archive = _write_archive(tmp_path, [("pak/__init__.py", b""), ("pak/module2.py", b"x = 1\n")])

    root_finder = ArchiveFinder(archive)
    package_finder = ArchiveFinder(f"{archive}{os.sep}pak")

    assert root_finder.handle is package_finder.handle


def test_finder_rejects_directory(tmp_path: Path) -> None:
    """Plain directories should be left to other path hooks."""
    with pytest.raises(ArchiveImportError):
        ArchiveFinder(tmp_path)


def test_finder_rejects_non_archive_file(tmp_path: Path) -> None:
    """Files without the 7z signature should be rejected with an import error."""
    text_file = tmp_path / "readme.txt"
    text_file.write_text("not an archive\n", encoding="utf-8")

    with pytest.raises(ArchiveImportError, match="not an archive"):
        ArchiveFinder(text_file)


def test_finder_rejects_corrupt_archive(tmp_path: Path) -> None:
    """Archives with a damaged header should raise an import error naming the archive."""
    payload = bytearray(ArchiveBuilder().add_folder(copy_folder([("a.py", b"a = 1\n")])).build())
    payload[-2] ^= 0xFF
    archive = tmp_path / "broken.7z"
    archive.write_bytes(bytes(payload))

    with pytest.raises(ArchiveImportError, match="could not be opened"):
        ArchiveFinder(archive)


def test_invalidate_caches_releases_shared_handle(tmp_path: Path) -> None:
    """Invalidation should close the handle and reopen it lazily."""
    archive = _write_archive(tmp_path, [("module1.py", b"imported = True\n")])
    finder = ArchiveFinder(archive)
    first_handle = finder.handle

    finder.invalidate_caches()
    released = open_archive_paths()
    unit = finder.find_unit("module1")

    assert released == () and first_handle.closed and (
        unit is not None and finder.handle is not first_handle
    )


def test_finder_repr_names_archive_and_prefix(tmp_path: Path) -> None:
    """The finder repr should show the archive path and prefix."""
    archive = _write_archive(tmp_path, [("pak/__init__.py", b"")])

    finder = ArchiveFinder(f"{archive}{os.sep}pak")

    assert repr(finder) == f'<ArchiveFinder "{archive}{os.sep}pak/">'
