"""Path-entry finder for archive-backed ``sys.path`` entries.

This module resolves qualified module names against one archive and an
optional in-archive prefix, using a fixed candidate search order:
package bytecode, package source, module bytecode, module source.
"""

from __future__ import annotations

from importlib.machinery import ModuleSpec
import os
from typing import Iterator

from container.archive_handle import ArchiveHandle
from core.constants import ARCHIVE_PATH_SEPARATOR, MODULE_SEARCH_ORDER
from core.types import LoadUnit
from importer.archive_registry import get_archive, release_archive, split_archive_path
from importer.loader import ArchiveLoader


class ArchiveFinder:
    """``sys.path_hooks`` entry that imports modules out of a 7z archive.

    Attributes:
        archive: Path of the archive file.
        prefix: In-archive directory searched by this finder, empty or
            ending in ``/``.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Bind the finder to an archive path entry.

        Args:
            path: Archive file path, optionally followed by an inner prefix.

        Raises:
            ArchiveImportError: If the path does not name a readable archive.
        """
        self.archive, self.prefix = split_archive_path(os.fspath(path))
        get_archive(self.archive)
        self._loader = ArchiveLoader(self)

    @property
    def handle(self) -> ArchiveHandle:
        """Shared handle of the archive, reopened if it was released."""
        return get_archive(self.archive)

    @property
    def loader(self) -> ArchiveLoader:
        return self._loader

    def iter_units(self, fullname: str) -> Iterator[LoadUnit]:
        """Yield every candidate entry for a module, in search order.

        Args:
            fullname: Dotted module name.

        Yields:
            Load units whose entries exist in the archive.

        Raises:
            ResolutionError: If a matching entry points outside the index.
        """
        handle = self.handle
        base_path = self._base_path(fullname)
        for candidate in MODULE_SEARCH_ORDER:
            if candidate.is_bytecode and not handle.config.allow_bytecode:
                continue
            entry_path = base_path + candidate.suffix
            entry = handle.resolver.lookup(entry_path)
            if entry is None:
                continue
            if entry.has_stream:
                handle.resolver.locate(entry)
            yield LoadUnit(
                fullname=fullname,
                entry_path=entry_path,
                is_package=candidate.is_package,
                is_bytecode=candidate.is_bytecode,
                entry=entry,
                search_root=base_path if candidate.is_package else None,
                handle=handle,
            )

    def find_unit(self, fullname: str) -> LoadUnit | None:
        """Return the first candidate for a module, or ``None`` when absent."""
        return next(self.iter_units(fullname), None)

    def find_spec(self, fullname: str, target: object = None) -> ModuleSpec | None:
        """Return an ``importlib`` spec for a module stored in the archive.

        Args:
            fullname: Dotted module name.
            target: Unused; part of the finder protocol.

        Returns:
            Module spec, a namespace portion spec, or ``None`` when the
            module is not in this archive location.
        """
        unit = self.find_unit(fullname)
        base_path = self._base_path(fullname)
        if unit is None:
            if not self.handle.resolver.is_directory(base_path):
                return None
            spec = ModuleSpec(fullname, None, is_package=True)
            spec.submodule_search_locations = [self.location(base_path)]
            return spec
        spec = ModuleSpec(
            fullname,
            self._loader,
            origin=self.location(unit.entry_path),
            is_package=unit.is_package,
        )
        spec.has_location = True
        if unit.is_package:
            spec.submodule_search_locations = [self.location(base_path)]
        return spec

    def invalidate_caches(self) -> None:
        """Drop the shared handle so the archive is reparsed on next use."""
        release_archive(self.archive)

    def location(self, entry_path: str) -> str:
        """Return the filesystem-style location of an archive-relative path."""
        return self.archive + os.sep + entry_path.replace(ARCHIVE_PATH_SEPARATOR, os.sep)

    def __repr__(self) -> str:
        return f'<ArchiveFinder "{self.archive}{os.sep}{self.prefix}">'

    def _base_path(self, fullname: str) -> str:
        return self.prefix + fullname.rpartition(".")[2]
