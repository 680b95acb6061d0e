"""sevenimport public API.

Import modules and packages directly out of 7z archives::

    import sys
    import sevenimport

    sevenimport.install()
    sys.path.insert(0, "/opt/app/libs.7z")
    import module1
"""

from __future__ import annotations

from container.archive_handle import ArchiveHandle, FolderCheckResult, open_archive
from core.config import SevenImportConfig
from core.errors import (
    ArchiveClosedError,
    ArchiveImportError,
    BadSignatureError,
    CodecError,
    CorruptHeaderError,
    CrcMismatchError,
    DecodeError,
    FormatError,
    IndexMismatchError,
    InvalidGraphError,
    LoadError,
    ResolutionError,
    SevenImportConfigError,
    SevenImportDependencyError,
    SevenImportError,
    UnreadableEntryError,
    UnsupportedCoderError,
)
from decoding.codec_registry import CodecRegistry, build_default_registry
from importer.finder import ArchiveFinder
from importer.loader import ArchiveLoader
from importer.path_hook import install, is_installed, uninstall

__all__ = [
    "ArchiveClosedError",
    "ArchiveFinder",
    "ArchiveHandle",
    "ArchiveImportError",
    "ArchiveLoader",
    "BadSignatureError",
    "CodecError",
    "CodecRegistry",
    "CorruptHeaderError",
    "CrcMismatchError",
    "DecodeError",
    "FolderCheckResult",
    "FormatError",
    "IndexMismatchError",
    "InvalidGraphError",
    "LoadError",
    "ResolutionError",
    "SevenImportConfig",
    "SevenImportConfigError",
    "SevenImportDependencyError",
    "SevenImportError",
    "UnreadableEntryError",
    "UnsupportedCoderError",
    "build_default_registry",
    "install",
    "is_installed",
    "open_archive",
    "uninstall",
]
