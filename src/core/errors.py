"""sevenimport exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Format errors make an archive unusable, decode errors are scoped to one
folder, and load errors are what the host import system sees.
"""

from __future__ import annotations


class SevenImportError(Exception):
    """Base exception for all sevenimport failures."""


class SevenImportConfigError(SevenImportError):
    """Raised for invalid runtime configuration."""


class SevenImportDependencyError(SevenImportError):
    """Raised when an optional codec library is missing."""


class FormatError(SevenImportError):
    """Raised for malformed or unrecognized containers."""


class BadSignatureError(FormatError):
    """Raised when the fixed signature header does not validate."""


class CorruptHeaderError(FormatError):
    """Raised when the metadata header cannot be read or decoded."""


class IndexMismatchError(FormatError):
    """Raised when header sections disagree with each other."""


class DecodeError(SevenImportError):
    """Raised when one folder cannot be decoded.

    Attributes:
        folder_index: Folder that failed, when known.
    """

    def __init__(self, message: str, folder_index: int | None = None) -> None:
        super().__init__(message)
        self.folder_index = folder_index


class InvalidGraphError(DecodeError):
    """Raised for structurally invalid coder graphs."""


class UnsupportedCoderError(DecodeError):
    """Raised when no codec is registered for a coder method id.

    Attributes:
        method_id: Raw method id bytes of the coder.
    """

    def __init__(
        self,
        message: str,
        method_id: bytes,
        folder_index: int | None = None,
    ) -> None:
        super().__init__(message, folder_index)
        self.method_id = method_id


class CrcMismatchError(DecodeError):
    """Raised when decoded bytes do not match their declared CRC.

    Attributes:
        expected: CRC recorded in the archive header.
        actual: CRC computed over the decoded bytes.
    """

    def __init__(
        self,
        message: str,
        expected: int,
        actual: int,
        folder_index: int | None = None,
    ) -> None:
        super().__init__(message, folder_index)
        self.expected = expected
        self.actual = actual


class CodecError(DecodeError):
    """Raised when a codec rejects its input or misreports its output."""


class ArchiveImportError(SevenImportError, ImportError):
    """Raised to the host import system for archive-backed imports."""


class LoadError(ArchiveImportError):
    """Raised when a resolved module cannot be loaded."""


class UnreadableEntryError(LoadError):
    """Raised when a module's backing folder fails to decode.

    Attributes:
        cause: Decode failure that made the entry unreadable.
    """

    def __init__(self, message: str, cause: DecodeError) -> None:
        super().__init__(message)
        self.cause = cause


class ResolutionError(LoadError):
    """Raised when the index points at data it does not contain."""


class ArchiveClosedError(LoadError):
    """Raised when a closed archive handle is used."""
