"""Loader phase of archive-backed imports.

This module reads resolved load units through the archive's decode cache
and turns their bytes into code objects for the host import system.
"""

from __future__ import annotations

import errno
import importlib.util
import marshal
import os
import types
from typing import TYPE_CHECKING

from core.constants import ARCHIVE_PATH_SEPARATOR, BYTECODE_HEADER_SIZE
from core.errors import (
    ArchiveClosedError,
    ArchiveImportError,
    DecodeError,
    LoadError,
    UnreadableEntryError,
)
from core.logging_config import get_logger
from core.types import LoadedModule, LoadUnit

if TYPE_CHECKING:
    from importer.finder import ArchiveFinder

_LOGGER = get_logger(__name__)


class ArchiveLoader:
    """``importlib`` loader serving modules found by one ``ArchiveFinder``."""

    def __init__(self, finder: ArchiveFinder) -> None:
        self._finder = finder

    def load(self, unit: LoadUnit) -> LoadedModule:
        """Read the bytes behind a load unit.

        Args:
            unit: Resolution result from the finder.

        Returns:
            Decoded bytes with package flag and origin.

        Raises:
            UnreadableEntryError: If the backing folder fails to decode.
            ResolutionError: If the entry points outside the index.
            ArchiveClosedError: If the handle the unit was resolved against
                has been closed.
        """
        handle = unit.handle if unit.handle is not None else self._finder.handle
        if handle.closed:
            raise ArchiveClosedError(
                f"Module {unit.fullname} was resolved against {handle.name}, which has "
                "since been closed. Resolve the module again before loading it."
            )
        try:
            data = handle.read_entry(unit.entry)
        except DecodeError as error:
            raise UnreadableEntryError(
                f"Module {unit.fullname} cannot be loaded: entry {unit.entry_path} in "
                f"{handle.name} is unreadable ({error}). Repair or rebuild the archive.",
                cause=error,
            ) from error
        _LOGGER.debug(
            "module_loaded",
            module=unit.fullname,
            entry=unit.entry_path,
            size=len(data),
            bytecode=unit.is_bytecode,
        )
        return LoadedModule(
            data=data,
            is_package=unit.is_package,
            origin=self._finder.location(unit.entry_path),
            unit=unit,
        )

    def create_module(self, spec: object) -> None:
        """Use the default module creation semantics."""
        return None

    def exec_module(self, module: types.ModuleType) -> None:
        """Execute a module's code in its namespace."""
        code = self.get_code(module.__name__)
        exec(code, module.__dict__)

    def get_code(self, fullname: str) -> types.CodeType:
        """Return the code object for a module.

        Bytecode candidates whose header does not match the running
        interpreter are skipped in favour of the next candidate.

        Raises:
            ArchiveImportError: If no usable candidate exists.
            LoadError: If a candidate cannot be read or compiled.
        """
        for unit in self._finder.iter_units(fullname):
            loaded = self.load(unit)
            if not unit.is_bytecode:
                return _compile_source(loaded)
            code = _unmarshal_bytecode(loaded)
            if code is not None:
                return code
        raise ArchiveImportError(f"can't find module {fullname!r}", name=fullname)

    def get_source(self, fullname: str) -> str | None:
        """Return decoded source text, or ``None`` for bytecode-only modules.

        Raises:
            ArchiveImportError: If the module is not in the archive.
        """
        found = False
        for unit in self._finder.iter_units(fullname):
            found = True
            if not unit.is_bytecode:
                return importlib.util.decode_source(self.load(unit).data)
        if not found:
            raise ArchiveImportError(f"can't find module {fullname!r}", name=fullname)
        return None

    def get_data(self, pathname: str) -> bytes:
        """Return the bytes of an archive entry.

        Args:
            pathname: Location under the archive path or an archive-relative path.

        Raises:
            OSError: If no file entry exists at the path.
        """
        archive_root = self._finder.archive + os.sep
        if pathname.startswith(archive_root):
            pathname = pathname[len(archive_root) :]
        entry_path = pathname.replace(os.sep, ARCHIVE_PATH_SEPARATOR)
        handle = self._finder.handle
        entry = handle.resolver.lookup(entry_path)
        if entry is None:
            raise OSError(errno.ENOENT, "Archive entry not found", pathname)
        try:
            return handle.read_entry(entry)
        except DecodeError as error:
            raise UnreadableEntryError(
                f"Entry {entry_path} in {handle.name} is unreadable ({error}). "
                "Repair or rebuild the archive.",
                cause=error,
            ) from error

    def get_filename(self, fullname: str) -> str:
        """Return the origin path of a module."""
        return self._finder.location(self._require_unit(fullname).entry_path)

    def is_package(self, fullname: str) -> bool:
        """Report whether a module resolves to a package ``__init__``."""
        return self._require_unit(fullname).is_package

    def _require_unit(self, fullname: str) -> LoadUnit:
        unit = self._finder.find_unit(fullname)
        if unit is None:
            raise ArchiveImportError(f"can't find module {fullname!r}", name=fullname)
        return unit

    def __repr__(self) -> str:
        return f"<ArchiveLoader for {self._finder!r}>"


def _compile_source(loaded: LoadedModule) -> types.CodeType:
    """Compile module source with the loader's origin as filename."""
    try:
        return compile(loaded.data, loaded.origin, "exec", dont_inherit=True)
    except (SyntaxError, ValueError) as error:
        raise LoadError(
            f"Module {loaded.unit.fullname} source in {loaded.unit.entry_path} does not compile: "
            f"{error}. Fix the module source and rebuild the archive."
        ) from error


def _unmarshal_bytecode(loaded: LoadedModule) -> types.CodeType | None:
    """Return a code object, or ``None`` when the header is for another interpreter.

    Raises:
        LoadError: If the payload after a valid header is not a code object.
    """
    data = loaded.data
    if len(data) < BYTECODE_HEADER_SIZE or data[:4] != importlib.util.MAGIC_NUMBER:
        _LOGGER.info(
            "bytecode_rejected",
            module=loaded.unit.fullname,
            entry=loaded.unit.entry_path,
            reason="bad_magic",
        )
        return None
    try:
        code = marshal.loads(data[BYTECODE_HEADER_SIZE:])
    except (EOFError, ValueError, TypeError) as error:
        raise LoadError(
            f"Module {loaded.unit.fullname} bytecode in {loaded.unit.entry_path} is damaged: "
            f"{error}. Recompile the module and rebuild the archive."
        ) from error
    if not isinstance(code, types.CodeType):
        raise LoadError(
            f"Module {loaded.unit.fullname} bytecode in {loaded.unit.entry_path} is not a code "
            "object. Recompile the module and rebuild the archive."
        )
    return code
