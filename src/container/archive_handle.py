"""Open archive handle lifecycle.

This module opens a byte source, parses it once into an archive index,
and serves entry reads through the shared decode cache. Closing a handle
evicts its cache and releases the byte source.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from container.archive_parser import parse_archive
from container.byte_source import ByteSource, BytesByteSource, FileByteSource
from container.entry_resolver import EntryResolver
from core.config import SevenImportConfig
from core.errors import ArchiveClosedError, DecodeError
from core.logging_config import get_logger
from core.types import ArchiveIndex, FileEntry
from decoding.codec_registry import CodecRegistry, build_default_registry
from decoding.decode_cache import DecodeCache
from decoding.folder_decoder import decode_folder, verify_substream_crc

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class FolderCheckResult:
    """Outcome of verifying one folder and its substreams.

    Attributes:
        folder_index: Checked folder.
        entry_count: Number of file entries backed by the folder.
        error: Failure description, ``None`` when the folder verified.
    """

    folder_index: int
    entry_count: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ArchiveHandle:
    """One open archive: byte source, index, resolver, and decode cache."""

    def __init__(
        self,
        source: ByteSource,
        index: ArchiveIndex,
        config: SevenImportConfig | None = None,
        registry: CodecRegistry | None = None,
    ) -> None:
        """Wrap an already parsed archive.

        Args:
            source: Byte source the index was parsed from.
            index: Parsed archive index.
            config: Runtime configuration.
            registry: Codec registry used for folder decoding.
        """
        self._source = source
        self._index = index
        self._config = config or SevenImportConfig.from_env()
        self._registry = registry or build_default_registry()
        self._resolver = EntryResolver(index)
        self._cache = DecodeCache(
            source.name,
            retain_entries=self._config.retain_decoded_folders,
            on_drained=source.close,
        )

    @classmethod
    def open(
        cls,
        path: str | os.PathLike[str],
        config: SevenImportConfig | None = None,
        registry: CodecRegistry | None = None,
    ) -> "ArchiveHandle":
        """Open and parse an archive file.

        Args:
            path: Archive file path.
            config: Runtime configuration.
            registry: Codec registry.

        Returns:
            Open archive handle.

        Raises:
            OSError: If the file cannot be opened.
            FormatError: If the container is malformed.
        """
        return cls._from_source(FileByteSource(Path(path)), config, registry)

    @classmethod
    def from_bytes(
        cls,
        payload: bytes,
        name: str = "<memory>",
        config: SevenImportConfig | None = None,
        registry: CodecRegistry | None = None,
    ) -> "ArchiveHandle":
        """Open an archive held in memory."""
        return cls._from_source(BytesByteSource(payload, name), config, registry)

    @classmethod
    def _from_source(
        cls,
        source: ByteSource,
        config: SevenImportConfig | None,
        registry: CodecRegistry | None,
    ) -> "ArchiveHandle":
        registry = registry or build_default_registry()
        try:
            index = parse_archive(source, registry)
        except Exception:
            source.close()
            raise
        handle = cls(source, index, config, registry)
        _LOGGER.info(
            "archive_opened",
            archive=source.name,
            folders=len(index.folders),
            files=len(index.files),
        )
        return handle

    @property
    def name(self) -> str:
        return self._source.name

    @property
    def index(self) -> ArchiveIndex:
        return self._index

    @property
    def resolver(self) -> EntryResolver:
        return self._resolver

    @property
    def config(self) -> SevenImportConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._cache.closed

    def cached_folders(self) -> tuple[int, ...]:
        """Return indices of folders currently held in the decode cache."""
        return self._cache.cached_folders()

    def read_entry(self, entry: FileEntry) -> bytes:
        """Return an entry's decoded bytes.

        Args:
            entry: File entry from this handle's index.

        Returns:
            Entry bytes; empty for stream-less entries.

        Raises:
            ArchiveClosedError: If the handle was closed.
            ResolutionError: If the entry's range is not in the index.
            DecodeError: If the backing folder or the substream fails.
        """
        if self.closed:
            raise ArchiveClosedError(
                f"Archive {self.name} is closed. Reopen it before reading entries."
            )
        if not entry.has_stream:
            return b""
        folder_index, offset, size = self._resolver.locate(entry)
        with self._cache.borrow(folder_index, lambda: self._decode(folder_index)) as folder_data:
            payload = folder_data[offset : offset + size]
        if self._config.verify_crc:
            verify_substream_crc(payload, entry.crc, f"Entry {entry.name}", folder_index)
        return payload

    def read_path(self, path: str) -> bytes:
        """Return the bytes of the file stored at an archive-relative path.

        Raises:
            FileNotFoundError: If no file exists at the path.
        """
        entry = self._resolver.lookup(path)
        if entry is None:
            raise FileNotFoundError(f"No entry {path!r} in archive {self.name}.")
        return self.read_entry(entry)

    def verify(self) -> tuple[FolderCheckResult, ...]:
        """Decode every folder and check every substream CRC.

        Returns:
            One result per folder, in folder order.
        """
        entries_by_folder: dict[int, list[FileEntry]] = {}
        for entry in self._index.files:
            if entry.folder_index is not None:
                entries_by_folder.setdefault(entry.folder_index, []).append(entry)
        results: list[FolderCheckResult] = []
        for folder_index in range(len(self._index.folders)):
            entries = entries_by_folder.get(folder_index, [])
            error: str | None = None
            try:
                if entries:
                    for entry in entries:
                        self.read_entry(entry)
                else:
                    with self._cache.borrow(folder_index, lambda: self._decode(folder_index)):
                        pass
            except DecodeError as failure:
                error = str(failure)
            results.append(FolderCheckResult(folder_index, len(entries), error))
        return tuple(results)

    def close(self) -> None:
        """Evict cached folders and release the byte source.

        A decode already running finishes for its callers; the byte source
        is released once the last one completes.
        """
        if self.closed:
            return
        in_flight = self._cache.in_flight()
        self._cache.close()
        _LOGGER.info("archive_closed", archive=self.name, in_flight_folders=list(in_flight))

    def __enter__(self) -> "ArchiveHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<ArchiveHandle {self.name!r} {state}>"

    def _decode(self, folder_index: int) -> bytes:
        try:
            return decode_folder(
                self._index,
                folder_index,
                self._source,
                self._registry,
                verify_crc=self._config.verify_crc,
            )
        except DecodeError as error:
            _LOGGER.warning(
                "folder_decode_failed",
                archive=self.name,
                folder_index=folder_index,
                error=str(error),
            )
            raise


def open_archive(
    path: str | os.PathLike[str],
    config: SevenImportConfig | None = None,
    registry: CodecRegistry | None = None,
) -> ArchiveHandle:
    """Open an archive file; see ``ArchiveHandle.open``."""
    return ArchiveHandle.open(path, config, registry)
