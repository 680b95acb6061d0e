"""Shared typed models.

This module defines immutable data models produced by the container
parser and consumed by the folder decoder, entry resolver, and loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from core.constants import (
    ARCHIVE_PATH_SEPARATOR,
    FILE_ATTRIBUTE_DIRECTORY,
    FILE_ATTRIBUTE_UNIX_EXTENSION,
)

if TYPE_CHECKING:
    from container.archive_handle import ArchiveHandle


@dataclass(frozen=True)
class PackStream:
    """Packed (still encoded) byte range in the archive file.

    Attributes:
        offset: Absolute file offset of the first byte.
        size: Number of packed bytes.
        crc: Optional CRC32 of the packed bytes.
    """

    offset: int
    size: int
    crc: int | None = None


@dataclass(frozen=True)
class CoderNode:
    """One filter or compression stage inside a folder.

    Attributes:
        method_id: Raw coder method id bytes.
        num_in_streams: Number of input streams the coder consumes.
        num_out_streams: Number of output streams the coder produces.
        properties: Coder property bytes, format defined per method.
    """

    method_id: bytes
    num_in_streams: int = 1
    num_out_streams: int = 1
    properties: bytes = b""


@dataclass(frozen=True)
class BindPair:
    """Edge feeding one coder output stream into another coder input.

    Attributes:
        in_index: Folder-global input stream index.
        out_index: Folder-global output stream index.
    """

    in_index: int
    out_index: int


@dataclass(frozen=True)
class SubstreamDescriptor:
    """One file's byte range within a folder's decoded output.

    Attributes:
        offset: Offset inside the decoded folder buffer.
        size: Number of bytes.
        crc: Optional CRC32 of the range.
    """

    offset: int
    size: int
    crc: int | None = None


@dataclass(frozen=True)
class FolderDescriptor:
    """Unit of solid compression described as a coder graph.

    Attributes:
        coders: Coder nodes in header order.
        bind_pairs: Coder-to-coder stream bindings.
        packed_streams: Input stream indices fed by pack streams, in file order.
        unpack_sizes: Decoded size of every output stream, in stream order.
        crc: Optional CRC32 of the folder's final output.
        first_pack_stream: Index of this folder's first pack stream.
        substreams: File ranges carved from the decoded output.
    """

    coders: tuple[CoderNode, ...]
    bind_pairs: tuple[BindPair, ...]
    packed_streams: tuple[int, ...]
    unpack_sizes: tuple[int, ...] = ()
    crc: int | None = None
    first_pack_stream: int = 0
    substreams: tuple[SubstreamDescriptor, ...] = ()

    @property
    def num_in_streams(self) -> int:
        """Total input streams across all coders."""
        return sum(coder.num_in_streams for coder in self.coders)

    @property
    def num_out_streams(self) -> int:
        """Total output streams across all coders."""
        return sum(coder.num_out_streams for coder in self.coders)

    @property
    def final_out_index(self) -> int | None:
        """Return the single output stream not consumed by a bind pair."""
        bound_outputs = {pair.out_index for pair in self.bind_pairs}
        unbound = [index for index in range(self.num_out_streams) if index not in bound_outputs]
        if len(unbound) != 1:
            return None
        return unbound[0]

    @property
    def unpack_size(self) -> int:
        """Decoded size of the folder's final output stream."""
        final_index = self.final_out_index
        if final_index is None or final_index >= len(self.unpack_sizes):
            return 0
        return self.unpack_sizes[final_index]


@dataclass(frozen=True)
class FileEntry:
    """One entry from the archive's flat files table.

    Attributes:
        path: Path segments inside the archive.
        has_stream: ``False`` for directories and zero-byte files.
        is_empty_file: Stream-less entry that is a file, not a directory.
        is_anti: Entry marks a deletion and carries no content.
        attributes: Windows attribute bits, optionally with a unix mode.
        modified_at: Modification time when recorded.
        folder_index: Backing folder for stream entries.
        offset: Offset inside the folder's decoded output.
        size: Decoded size in bytes.
        crc: Optional CRC32 of the decoded bytes.
    """

    path: tuple[str, ...]
    has_stream: bool
    is_empty_file: bool = False
    is_anti: bool = False
    attributes: int | None = None
    modified_at: datetime | None = None
    folder_index: int | None = None
    offset: int = 0
    size: int = 0
    crc: int | None = None

    @property
    def name(self) -> str:
        """Archive-relative path joined with ``/``."""
        return ARCHIVE_PATH_SEPARATOR.join(self.path)

    @property
    def is_directory(self) -> bool:
        """Whether the entry describes a directory."""
        if self.has_stream:
            return False
        if self.attributes is not None and self.attributes & FILE_ATTRIBUTE_DIRECTORY:
            return True
        return not self.is_empty_file

    @property
    def unix_mode(self) -> int | None:
        """Unix mode bits stored in the high attribute word, if any."""
        if self.attributes is None or not self.attributes & FILE_ATTRIBUTE_UNIX_EXTENSION:
            return None
        return self.attributes >> 16


@dataclass(frozen=True)
class ArchiveIndex:
    """Parsed archive header.

    Attributes:
        pack_streams: Packed byte ranges in file order.
        folders: Folder descriptors in header order.
        files: File entries in header order.
    """

    pack_streams: tuple[PackStream, ...] = ()
    folders: tuple[FolderDescriptor, ...] = ()
    files: tuple[FileEntry, ...] = ()

    def pack_streams_for(self, folder_index: int) -> tuple[PackStream, ...]:
        """Return the pack streams consumed by one folder.

        Args:
            folder_index: Folder position in ``folders``.

        Returns:
            Pack streams in the order the folder consumes them.
        """
        folder = self.folders[folder_index]
        start = folder.first_pack_stream
        return self.pack_streams[start : start + len(folder.packed_streams)]


@dataclass(frozen=True)
class LoadUnit:
    """Qualified module name resolved to one archive entry.

    Attributes:
        fullname: Dotted module name.
        entry_path: Archive-relative path of the load target.
        is_package: Whether the unit is a package ``__init__``.
        is_bytecode: Whether the load target holds compiled bytecode.
        entry: Backing file entry.
        search_root: Archive-relative package directory for submodule search.
        handle: Archive handle the unit was resolved against; closing it
            invalidates the unit.
    """

    fullname: str
    entry_path: str
    is_package: bool
    is_bytecode: bool
    entry: FileEntry
    search_root: str | None = None
    handle: ArchiveHandle | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class LoadedModule:
    """Loader phase result handed to the host runtime.

    Attributes:
        data: Decoded entry bytes.
        is_package: Whether the module is a package.
        origin: Location string used for ``__file__``.
        unit: Resolution result the bytes were loaded for.
    """

    data: bytes
    is_package: bool
    origin: str
    unit: LoadUnit = field(repr=False)
