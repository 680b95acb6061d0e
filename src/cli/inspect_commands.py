"""Archive inspection command wiring for the sevenimport CLI."""

from __future__ import annotations

import argparse
import sys
from typing import Any

from container.archive_handle import open_archive
from core.types import FileEntry
from importer.archive_registry import release_archives
from importer.finder import ArchiveFinder


def add_list_command(subparsers: Any) -> None:
    """Register list subcommand."""
    parser = subparsers.add_parser("list", help="List archive entries")
    parser.add_argument("archive", help="Path to a .7z archive")
    parser.add_argument(
        "--long",
        action="store_true",
        help="Also show unix mode and modification time",
    )


def add_test_command(subparsers: Any) -> None:
    """Register test subcommand."""
    parser = subparsers.add_parser("test", help="Decode every folder and verify CRCs")
    parser.add_argument("archive", help="Path to a .7z archive")


def add_find_command(subparsers: Any) -> None:
    """Register find subcommand."""
    parser = subparsers.add_parser("find", help="Resolve a dotted module name inside an archive")
    parser.add_argument("archive", help="Path to a .7z archive, optionally with an inner prefix")
    parser.add_argument("module", help="Dotted module name, e.g. pak.module2")


def add_cat_command(subparsers: Any) -> None:
    """Register cat subcommand."""
    parser = subparsers.add_parser("cat", help="Write one entry's bytes to stdout")
    parser.add_argument("archive", help="Path to a .7z archive")
    parser.add_argument("path", help="Archive-relative entry path")


def run_list_command(args: argparse.Namespace) -> int:
    """Print one line per entry: kind, size, folder, path.

    With ``--long`` the unix mode and modification time precede the path.
    """
    with open_archive(args.archive) as handle:
        for entry in handle.index.files:
            print(_format_entry(entry, long_format=args.long))
    return 0


def run_test_command(args: argparse.Namespace) -> int:
    """Verify every folder and print per-folder status."""
    with open_archive(args.archive) as handle:
        results = handle.verify()
    failed_count = 0
    for result in results:
        if result.ok:
            print(f"folder={result.folder_index} entries={result.entry_count} status=ok")
        else:
            failed_count += 1
            print(
                f"folder={result.folder_index} entries={result.entry_count} "
                f"status=failed error={result.error}"
            )
    print(f"folders={len(results)} failed={failed_count}")
    return 0 if failed_count == 0 else 1


def run_find_command(args: argparse.Namespace) -> int:
    """Resolve a module through the finder chain and print the result."""
    try:
        return _print_resolution(args.archive, args.module)
    finally:
        release_archives()


def run_cat_command(args: argparse.Namespace) -> int:
    """Write one entry's bytes to stdout."""
    with open_archive(args.archive) as handle:
        payload = handle.read_path(args.path)
    sys.stdout.buffer.write(payload)
    sys.stdout.flush()
    return 0


def _print_resolution(archive: str, module: str) -> int:
    """Walk package search locations segment by segment."""
    finder = ArchiveFinder(archive)
    parts = module.split(".")
    for depth in range(1, len(parts) + 1):
        fullname = ".".join(parts[:depth])
        spec = finder.find_spec(fullname)
        if spec is None:
            print(f"module={fullname} status=not_found")
            return 1
        if depth == len(parts):
            break
        locations = spec.submodule_search_locations
        if not locations:
            print(f"module={fullname} status=not_a_package")
            return 1
        finder = ArchiveFinder(locations[0])
    unit = finder.find_unit(module)
    if unit is None:
        print(f"module={module} status=namespace")
        print(f"search_location={spec.submodule_search_locations[0]}")
        return 0
    print(f"module={module} status=found")
    print(f"entry={unit.entry_path}")
    print(f"is_package={str(unit.is_package).lower()}")
    print(f"is_bytecode={str(unit.is_bytecode).lower()}")
    print(f"origin={finder.location(unit.entry_path)}")
    if unit.search_root is not None:
        print(f"search_location={finder.location(unit.search_root)}")
    return 0


def _format_entry(entry: FileEntry, long_format: bool = False) -> str:
    if entry.is_anti:
        kind = "anti"
    elif entry.is_directory:
        kind = "dir"
    else:
        kind = "file"
    folder = "-" if entry.folder_index is None else str(entry.folder_index)
    if not long_format:
        return f"{kind:<4} {entry.size:>10} {folder:>6} {entry.name}"
    mode = "-" if entry.unix_mode is None else oct(entry.unix_mode & 0o7777)
    modified = "-" if entry.modified_at is None else entry.modified_at.isoformat()
    return f"{kind:<4} {entry.size:>10} {folder:>6} {mode:>7} {modified:<25} {entry.name}"
