"""Unit tests for CLI command handling."""

from __future__ import annotations

from pathlib import Path

from cli.main import main
from core.constants import FILE_ATTRIBUTE_UNIX_EXTENSION
from tests.archive_builder import ArchiveBuilder, copy_folder, lzma2_folder, method_folder


def _archive(tmp_path: Path) -> Path:
    builder = (
        ArchiveBuilder()
        .add_folder(
            lzma2_folder([("pak/__init__.py", b""), ("pak/module2.py", b"imported = True\n")])
        )
        .add_folder(copy_folder([("module1.py", b"imported = True\n")]))
        .add_directory("pak")
    )
    return builder.write(tmp_path / "lib.7z")


def test_cli_list_prints_one_line_per_entry(tmp_path: Path, capsys) -> None:
    """CLI list should print kind, size, folder, and path for every entry."""
    archive = _archive(tmp_path)

    exit_code = main(["list", str(archive)])
    lines = capsys.readouterr().out.strip().splitlines()

    assert exit_code == 0 and [line.split() for line in lines] == [
        ["file", "0", "0", "pak/__init__.py"],
        ["file", "16", "0", "pak/module2.py"],
        ["file", "16", "1", "module1.py"],
        ["dir", "0", "-", "pak"],
    ]


def test_cli_list_long_shows_mode_and_modification_time(tmp_path: Path, capsys) -> None:
    """CLI list --long should add unix mode and modification time columns."""
    archive = (
        ArchiveBuilder()
        .add_folder(copy_folder([("module1.py", b"imported = True\n")]))
        .add_directory("pak")
        .set_metadata(
            "module1.py",
            attributes=FILE_ATTRIBUTE_UNIX_EXTENSION | (0o100644 << 16),
            modified_ticks=(11644473600 + 86400) * 10_000_000,
        )
        .write(tmp_path / "meta.7z")
    )

    exit_code = main(["list", "--long", str(archive)])
    lines = capsys.readouterr().out.strip().splitlines()

    assert exit_code == 0 and [line.split() for line in lines] == [
        ["file", "16", "0", "0o644", "1970-01-02T00:00:00+00:00", "module1.py"],
        ["dir", "0", "-", "-", "-", "pak"],
    ]


def test_cli_test_reports_ok_folders(tmp_path: Path, capsys) -> None:
    """CLI test should exit zero when every folder verifies."""
    archive = _archive(tmp_path)

    exit_code = main(["test", str(archive)])
    output = capsys.readouterr().out

    assert exit_code == 0 and "folders=2 failed=0" in output


def test_cli_test_fails_for_unsupported_folder(tmp_path: Path, capsys) -> None:
    """CLI test should exit non-zero and name the failing folder."""
    builder = ArchiveBuilder().add_folder(method_folder(b"\x7f", [("a.py", b"a = 1\n")]))
    archive = builder.write(tmp_path / "odd.7z")

    exit_code = main(["test", str(archive)])
    output = capsys.readouterr().out

    assert exit_code == 1 and "folder=0 entries=1 status=failed" in output


def test_cli_find_resolves_submodule(tmp_path: Path, capsys) -> None:
    """CLI find should walk package search locations to the submodule entry."""
    archive = _archive(tmp_path)

    exit_code = main(["find", str(archive), "pak.module2"])
    output = capsys.readouterr().out

    assert exit_code == 0 and "entry=pak/module2.py" in output and "is_package=false" in output


def test_cli_find_reports_missing_module(tmp_path: Path, capsys) -> None:
    """CLI find should exit non-zero for absent modules."""
    archive = _archive(tmp_path)

    exit_code = main(["find", str(archive), "pak.missing"])
    output = capsys.readouterr().out

    assert exit_code == 1 and "module=pak.missing status=not_found" in output


def test_cli_cat_writes_entry_bytes(tmp_path: Path, capsysbinary) -> None:
    """CLI cat should write raw entry bytes to stdout."""
    archive = _archive(tmp_path)

    exit_code = main(["cat", str(archive), "pak/module2.py"])
    output = capsysbinary.readouterr().out

    assert exit_code == 0 and output == b"imported = True\n"


def test_cli_reports_format_errors(tmp_path: Path, capsys) -> None:
    """CLI should print a one-line error and exit 1 for non-archives."""
    not_archive = tmp_path / "plain.txt"
    not_archive.write_bytes(b"x" * 64)

    exit_code = main(["list", str(not_archive)])
    error_output = capsys.readouterr().err

    assert exit_code == 1 and error_output.startswith("error=Missing 7z signature")
