"""sevenimport CLI entry points.

This module exposes archive inspection commands for debugging imports.
It maps argparse commands onto archive handle and finder calls.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from cli.inspect_commands import (
    add_cat_command,
    add_find_command,
    add_list_command,
    add_test_command,
    run_cat_command,
    run_find_command,
    run_list_command,
    run_test_command,
)
from core.errors import ArchiveImportError, DecodeError, FormatError, SevenImportConfigError


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="sevenimport",
        description="Inspect 7z archives used as Python import sources",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    add_list_command(subparsers)
    add_test_command(subparsers)
    add_find_command(subparsers)
    add_cat_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the sevenimport CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return _dispatch(parser, args)
    except (FormatError, DecodeError, ArchiveImportError, SevenImportConfigError, OSError) as error:
        print(f"error={error}", file=sys.stderr)
        return 1


def _dispatch(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    """Route parsed args to a command handler."""
    handlers: dict[str, Any] = {
        "list": run_list_command,
        "test": run_test_command,
        "find": run_find_command,
        "cat": run_cat_command,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.error(f"Unsupported command: {args.command}")
        return 2
    return int(handler(args))
