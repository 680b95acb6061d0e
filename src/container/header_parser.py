"""Metadata header parsing.

This module turns the property-tagged 7z metadata block into typed
folder and file descriptors. It reads pack info, coder graphs,
substream splits, and the files table, then assembles an ArchiveIndex.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from core.constants import (
    CODER_HAS_ALTERNATIVES,
    CODER_HAS_PROPERTIES,
    CODER_ID_SIZE_MASK,
    CODER_IS_COMPLEX,
    PROPERTY_ADDITIONAL_STREAMS_INFO,
    PROPERTY_ANTI,
    PROPERTY_ARCHIVE_PROPERTIES,
    PROPERTY_ATTRIBUTES,
    PROPERTY_CODERS_UNPACK_SIZE,
    PROPERTY_CRC,
    PROPERTY_EMPTY_FILE,
    PROPERTY_EMPTY_STREAM,
    PROPERTY_END,
    PROPERTY_FILES_INFO,
    PROPERTY_FOLDER,
    PROPERTY_MAIN_STREAMS_INFO,
    PROPERTY_MODIFICATION_TIME,
    PROPERTY_NAME,
    PROPERTY_NUM_UNPACK_STREAM,
    PROPERTY_PACK_INFO,
    PROPERTY_SIZE,
    PROPERTY_SUBSTREAMS_INFO,
    PROPERTY_UNPACK_INFO,
    SIGNATURE_HEADER_SIZE,
)
from core.errors import CorruptHeaderError, IndexMismatchError
from core.types import (
    ArchiveIndex,
    BindPair,
    CoderNode,
    FileEntry,
    FolderDescriptor,
    PackStream,
    SubstreamDescriptor,
)
from container.byte_reader import ByteReader

_MAX_CODERS_PER_FOLDER = 64
_MAX_STREAMS_PER_CODER = 64
_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class StreamsInfo:
    """Pack ranges and folders declared by one streams-info block.

    Attributes:
        pack_streams: Packed byte ranges with absolute offsets.
        folders: Folders with unpack sizes and substreams assigned.
    """

    pack_streams: tuple[PackStream, ...] = ()
    folders: tuple[FolderDescriptor, ...] = ()


@dataclass(frozen=True)
class _FileRecord:
    """Files-table row before stream assignment."""

    path: tuple[str, ...]
    has_stream: bool
    is_empty_file: bool
    is_anti: bool
    attributes: int | None
    modified_at: datetime | None


def read_header(reader: ByteReader) -> ArchiveIndex:
    """Parse a plain header body that follows the ``kHeader`` id.

    Args:
        reader: Reader positioned after the header property id.

    Returns:
        Assembled archive index.

    Raises:
        CorruptHeaderError: If the header is malformed.
        IndexMismatchError: If files and substreams disagree.
    """
    property_id = reader.read_number()
    if property_id == PROPERTY_ARCHIVE_PROPERTIES:
        _skip_archive_properties(reader)
        property_id = reader.read_number()
    if property_id == PROPERTY_ADDITIONAL_STREAMS_INFO:
        read_streams_info(reader)
        property_id = reader.read_number()
    streams = StreamsInfo()
    if property_id == PROPERTY_MAIN_STREAMS_INFO:
        streams = read_streams_info(reader)
        property_id = reader.read_number()
    records: tuple[_FileRecord, ...] = ()
    if property_id == PROPERTY_FILES_INFO:
        records = _read_files_info(reader)
        property_id = reader.read_number()
    _expect(property_id, PROPERTY_END, "header")
    return ArchiveIndex(
        pack_streams=streams.pack_streams,
        folders=streams.folders,
        files=_assign_streams(records, streams.folders),
    )


def read_streams_info(reader: ByteReader) -> StreamsInfo:
    """Parse a streams-info block (pack info, unpack info, substreams).

    Args:
        reader: Reader positioned after the streams-info property id.

    Returns:
        Parsed pack streams and folders.
    """
    pack_streams: tuple[PackStream, ...] = ()
    folders: tuple[FolderDescriptor, ...] = ()
    property_id = reader.read_number()
    if property_id == PROPERTY_PACK_INFO:
        pack_streams = _read_pack_info(reader)
        property_id = reader.read_number()
    if property_id == PROPERTY_UNPACK_INFO:
        folders = _read_unpack_info(reader)
        property_id = reader.read_number()
    folders = _assign_pack_streams(folders, len(pack_streams))
    if property_id == PROPERTY_SUBSTREAMS_INFO:
        folders = _read_substreams_info(reader, folders)
        property_id = reader.read_number()
    else:
        folders = tuple(_with_single_substream(folder) for folder in folders)
    _expect(property_id, PROPERTY_END, "streams info")
    return StreamsInfo(pack_streams=pack_streams, folders=folders)


def _read_pack_info(reader: ByteReader) -> tuple[PackStream, ...]:
    """Parse pack position, sizes, and optional CRCs."""
    pack_position = reader.read_number()
    count = reader.read_count()
    sizes: tuple[int, ...] = (0,) * count
    crcs: tuple[int | None, ...] = (None,) * count
    property_id = reader.read_number()
    if property_id == PROPERTY_SIZE:
        sizes = tuple(reader.read_number() for _ in range(count))
        property_id = reader.read_number()
    if property_id == PROPERTY_CRC:
        crcs = reader.read_digests(count)
        property_id = reader.read_number()
    _skip_until_end(reader, property_id)
    offset = SIGNATURE_HEADER_SIZE + pack_position
    pack_streams: list[PackStream] = []
    for size, crc in zip(sizes, crcs):
        pack_streams.append(PackStream(offset=offset, size=size, crc=crc))
        offset += size
    return tuple(pack_streams)


def _read_unpack_info(reader: ByteReader) -> tuple[FolderDescriptor, ...]:
    """Parse folder coder graphs, unpack sizes, and folder CRCs."""
    _expect(reader.read_number(), PROPERTY_FOLDER, "unpack info")
    count = reader.read_count()
    if reader.read_byte() != 0:
        raise CorruptHeaderError(
            "Unsupported unpack info: folders stored in an external data stream. "
            "Re-create the archive with a standard 7z tool."
        )
    folders = [_read_folder(reader) for _ in range(count)]
    _expect(reader.read_number(), PROPERTY_CODERS_UNPACK_SIZE, "unpack info")
    folders = [
        replace(
            folder,
            unpack_sizes=tuple(reader.read_number() for _ in range(folder.num_out_streams)),
        )
        for folder in folders
    ]
    property_id = reader.read_number()
    if property_id == PROPERTY_CRC:
        crcs = reader.read_digests(count)
        folders = [replace(folder, crc=crc) for folder, crc in zip(folders, crcs)]
        property_id = reader.read_number()
    _skip_until_end(reader, property_id)
    return tuple(folders)


def _read_folder(reader: ByteReader) -> FolderDescriptor:
    """Parse one folder's coders, bind pairs, and packed stream indices."""
    coder_count = reader.read_count(_MAX_CODERS_PER_FOLDER)
    if coder_count == 0:
        raise CorruptHeaderError(
            "Invalid folder: no coders declared. The archive header is damaged."
        )
    coders: list[CoderNode] = []
    for _ in range(coder_count):
        flags = reader.read_byte()
        if flags & CODER_HAS_ALTERNATIVES:
            raise CorruptHeaderError(
                "Unsupported folder: alternative coder methods are not readable. "
                "Re-create the archive with a standard 7z tool."
            )
        method_id = reader.read_bytes(flags & CODER_ID_SIZE_MASK)
        num_in_streams = 1
        num_out_streams = 1
        if flags & CODER_IS_COMPLEX:
            num_in_streams = reader.read_count(_MAX_STREAMS_PER_CODER)
            num_out_streams = reader.read_count(_MAX_STREAMS_PER_CODER)
        properties = b""
        if flags & CODER_HAS_PROPERTIES:
            properties = reader.read_bytes(reader.read_count())
        coders.append(CoderNode(method_id, num_in_streams, num_out_streams, properties))
    num_in_total = sum(coder.num_in_streams for coder in coders)
    num_out_total = sum(coder.num_out_streams for coder in coders)
    if num_out_total == 0:
        raise CorruptHeaderError("Invalid folder: coders declare no output streams.")
    bind_pairs = tuple(
        BindPair(in_index=reader.read_number(), out_index=reader.read_number())
        for _ in range(num_out_total - 1)
    )
    packed_count = num_in_total - len(bind_pairs)
    if packed_count < 1:
        raise CorruptHeaderError(
            f"Invalid folder: {num_in_total} input stream(s) cannot satisfy "
            f"{len(bind_pairs)} bind pair(s) and at least one pack stream."
        )
    if packed_count == 1:
        bound_inputs = {pair.in_index for pair in bind_pairs}
        unbound = [index for index in range(num_in_total) if index not in bound_inputs]
        if not unbound:
            raise CorruptHeaderError(
                "Invalid folder: every input stream is bound; no pack stream input."
            )
        packed_streams: tuple[int, ...] = (unbound[0],)
    else:
        packed_streams = tuple(reader.read_number() for _ in range(packed_count))
    return FolderDescriptor(
        coders=tuple(coders),
        bind_pairs=bind_pairs,
        packed_streams=packed_streams,
    )


def _assign_pack_streams(
    folders: tuple[FolderDescriptor, ...],
    pack_stream_count: int,
) -> tuple[FolderDescriptor, ...]:
    """Record each folder's first pack stream and check the total."""
    assigned: list[FolderDescriptor] = []
    next_pack_stream = 0
    for folder in folders:
        assigned.append(replace(folder, first_pack_stream=next_pack_stream))
        next_pack_stream += len(folder.packed_streams)
    if next_pack_stream > pack_stream_count:
        raise IndexMismatchError(
            f"Folders consume {next_pack_stream} pack stream(s) but the header declares "
            f"{pack_stream_count}. The archive index is inconsistent."
        )
    return tuple(assigned)


def _read_substreams_info(
    reader: ByteReader,
    folders: tuple[FolderDescriptor, ...],
) -> tuple[FolderDescriptor, ...]:
    """Parse per-folder substream counts, sizes, and CRCs."""
    counts = [1] * len(folders)
    property_id = reader.read_number()
    if property_id == PROPERTY_NUM_UNPACK_STREAM:
        counts = [reader.read_count(reader.remaining + 1) for _ in folders]
        property_id = reader.read_number()
    sizes_per_folder: list[list[int]] = []
    has_sizes = property_id == PROPERTY_SIZE
    for folder, count in zip(folders, counts):
        sizes_per_folder.append(_read_substream_sizes(reader, folder, count, has_sizes))
    if has_sizes:
        property_id = reader.read_number()
    unknown_crc_count = sum(
        count
        for folder, count in zip(folders, counts)
        if not (count == 1 and folder.crc is not None)
    )
    digests: tuple[int | None, ...] = (None,) * unknown_crc_count
    while property_id != PROPERTY_END:
        if property_id == PROPERTY_CRC:
            digests = reader.read_digests(unknown_crc_count)
        else:
            reader.skip(reader.read_number())
        property_id = reader.read_number()
    digest_iterator = iter(digests)
    updated: list[FolderDescriptor] = []
    for folder, sizes in zip(folders, sizes_per_folder):
        if len(sizes) == 1 and folder.crc is not None:
            crcs: list[int | None] = [folder.crc]
        else:
            crcs = [next(digest_iterator) for _ in sizes]
        updated.append(replace(folder, substreams=_substreams_from_sizes(sizes, crcs)))
    return tuple(updated)


def _read_substream_sizes(
    reader: ByteReader,
    folder: FolderDescriptor,
    count: int,
    has_sizes: bool,
) -> list[int]:
    """Read one folder's substream sizes; the last is implied."""
    if count == 0:
        return []
    if count > 1 and not has_sizes:
        raise CorruptHeaderError(
            f"Invalid substreams info: folder declares {count} substreams without sizes."
        )
    sizes = [reader.read_number() for _ in range(count - 1)] if has_sizes else []
    remainder = folder.unpack_size - sum(sizes)
    if remainder < 0:
        raise IndexMismatchError(
            f"Substream sizes total {sum(sizes)} bytes, more than the folder's "
            f"{folder.unpack_size} unpacked bytes. The archive index is inconsistent."
        )
    sizes.append(remainder)
    return sizes


def _substreams_from_sizes(
    sizes: list[int],
    crcs: list[int | None],
) -> tuple[SubstreamDescriptor, ...]:
    substreams: list[SubstreamDescriptor] = []
    offset = 0
    for size, crc in zip(sizes, crcs):
        substreams.append(SubstreamDescriptor(offset=offset, size=size, crc=crc))
        offset += size
    return tuple(substreams)


def _with_single_substream(folder: FolderDescriptor) -> FolderDescriptor:
    """Default split when substreams info is absent: one file per folder."""
    substream = SubstreamDescriptor(offset=0, size=folder.unpack_size, crc=folder.crc)
    return replace(folder, substreams=(substream,))


def _read_files_info(reader: ByteReader) -> tuple[_FileRecord, ...]:
    """Parse the files table into rows."""
    count = reader.read_count()
    empty_stream: tuple[bool, ...] = (False,) * count
    empty_file: tuple[bool, ...] = ()
    anti: tuple[bool, ...] = ()
    names: tuple[str, ...] | None = None
    attributes: tuple[int | None, ...] = (None,) * count
    modified: tuple[datetime | None, ...] = (None,) * count
    while True:
        property_id = reader.read_number()
        if property_id == PROPERTY_END:
            break
        payload = reader.sub_reader(reader.read_number(), f"files property 0x{property_id:02x}")
        empty_count = sum(empty_stream)
        if property_id == PROPERTY_EMPTY_STREAM:
            empty_stream = payload.read_bit_vector(count)
        elif property_id == PROPERTY_EMPTY_FILE:
            empty_file = payload.read_bit_vector(empty_count)
        elif property_id == PROPERTY_ANTI:
            anti = payload.read_bit_vector(empty_count)
        elif property_id == PROPERTY_NAME:
            names = _read_names(payload, count)
        elif property_id == PROPERTY_ATTRIBUTES:
            attributes = _read_external_values(payload, count, _read_attribute)
        elif property_id == PROPERTY_MODIFICATION_TIME:
            modified = _read_external_values(payload, count, _read_filetime)
    if names is None:
        if count:
            raise CorruptHeaderError("Invalid files info: entries have no names.")
        names = ()
    records: list[_FileRecord] = []
    empty_position = 0
    for index in range(count):
        is_empty_file = False
        is_anti = False
        if empty_stream[index]:
            if empty_position < len(empty_file):
                is_empty_file = empty_file[empty_position]
            if empty_position < len(anti):
                is_anti = anti[empty_position]
            empty_position += 1
        records.append(
            _FileRecord(
                path=_split_path(names[index]),
                has_stream=not empty_stream[index],
                is_empty_file=is_empty_file,
                is_anti=is_anti,
                attributes=attributes[index],
                modified_at=modified[index],
            )
        )
    return tuple(records)


def _read_names(payload: ByteReader, count: int) -> tuple[str, ...]:
    """Decode NUL-terminated UTF-16LE names."""
    if payload.read_byte() != 0:
        raise CorruptHeaderError(
            "Unsupported files info: names stored in an external data stream."
        )
    raw_names = payload.read_bytes(payload.remaining)
    try:
        decoded = raw_names.decode("utf-16-le")
    except UnicodeDecodeError as error:
        raise CorruptHeaderError(f"Invalid file name encoding: {error.reason}.") from error
    names = decoded.split("\x00")
    if names and names[-1] == "":
        names.pop()
    if len(names) != count:
        raise CorruptHeaderError(
            f"Invalid files info: {len(names)} name(s) for {count} entries."
        )
    return tuple(names)


def _read_external_values(
    payload: ByteReader,
    count: int,
    read_value: Callable[[ByteReader], Any],
) -> tuple[Any, ...]:
    """Read a defined vector, external flag, and one value per defined item."""
    defined = payload.read_defined_vector(count)
    if payload.read_byte() != 0:
        raise CorruptHeaderError(
            "Unsupported files info: properties stored in an external data stream."
        )
    return tuple(read_value(payload) if is_defined else None for is_defined in defined)


def _read_attribute(payload: ByteReader) -> int:
    return payload.read_uint32()


def _read_filetime(payload: ByteReader) -> datetime:
    """Convert a FILETIME (100 ns ticks since 1601) to UTC datetime."""
    ticks = payload.read_uint64()
    try:
        return _FILETIME_EPOCH + timedelta(microseconds=ticks // 10)
    except OverflowError as error:
        raise CorruptHeaderError(f"Invalid file timestamp {ticks}.") from error


def _split_path(name: str) -> tuple[str, ...]:
    """Split an archive name on either separator, dropping empty parts."""
    segments = name.replace("\\", "/").split("/")
    return tuple(segment for segment in segments if segment not in ("", "."))


def _assign_streams(
    records: tuple[_FileRecord, ...],
    folders: tuple[FolderDescriptor, ...],
) -> tuple[FileEntry, ...]:
    """Attach folder substreams to stream entries in order.

    Raises:
        IndexMismatchError: If stream entries and substreams differ in count.
    """
    locations = [
        (folder_index, substream)
        for folder_index, folder in enumerate(folders)
        for substream in folder.substreams
    ]
    stream_count = sum(1 for record in records if record.has_stream)
    if stream_count != len(locations):
        raise IndexMismatchError(
            f"Files table lists {stream_count} stream entries but folders declare "
            f"{len(locations)} substreams. The archive index is inconsistent."
        )
    location_iterator = iter(locations)
    entries: list[FileEntry] = []
    for record in records:
        entry = FileEntry(
            path=record.path,
            has_stream=record.has_stream,
            is_empty_file=record.is_empty_file,
            is_anti=record.is_anti,
            attributes=record.attributes,
            modified_at=record.modified_at,
        )
        if record.has_stream:
            folder_index, substream = next(location_iterator)
            entry = replace(
                entry,
                folder_index=folder_index,
                offset=substream.offset,
                size=substream.size,
                crc=substream.crc,
            )
        entries.append(entry)
    return tuple(entries)


def _skip_archive_properties(reader: ByteReader) -> None:
    while True:
        property_type = reader.read_number()
        if property_type == PROPERTY_END:
            return
        reader.skip(reader.read_number())


def _skip_until_end(reader: ByteReader, property_id: int) -> None:
    """Skip size-prefixed properties this reader does not interpret."""
    while property_id != PROPERTY_END:
        reader.skip(reader.read_number())
        property_id = reader.read_number()


def _expect(actual: int, expected: int, section: str) -> None:
    if actual != expected:
        raise CorruptHeaderError(
            f"Invalid {section}: expected property 0x{expected:02x}, found 0x{actual:02x}. "
            "The archive header is damaged."
        )
