"""Unit tests for archive index construction."""

from __future__ import annotations

import struct
import zlib

import pytest

from container.archive_parser import parse_archive
from container.byte_source import BytesByteSource
from core.errors import CorruptHeaderError, DecodeError, IndexMismatchError
from core.types import ArchiveIndex
from tests.archive_builder import (
    ArchiveBuilder,
    copy_folder,
    delta_lzma2_folder,
    lzma2_folder,
)


def _parse(payload: bytes) -> ArchiveIndex:
    return parse_archive(BytesByteSource(payload, "test.7z"))


def test_parse_archive_maps_solid_folder_substreams_to_entries() -> None:
    """Files in one solid folder should receive consecutive substream ranges."""
    builder = ArchiveBuilder().add_folder(
        lzma2_folder([("pak/__init__.py", b""), ("pak/module2.py", b"imported = True\n")])
    )

    index = _parse(builder.build())
    layout = [(entry.name, entry.folder_index, entry.offset, entry.size) for entry in index.files]

    assert layout == [
        ("pak/__init__.py", 0, 0, 0),
        ("pak/module2.py", 0, 0, 16),
    ]


def test_parse_archive_records_substream_crcs() -> None:
    """Each stream entry should carry the CRC of its own bytes."""
    content = b"imported = True\n"
    files = [("a.py", b"a = 1\n"), ("module1.py", content)]
    builder = ArchiveBuilder().add_folder(copy_folder(files))

    index = _parse(builder.build())

    assert index.files[1].crc == zlib.crc32(content)


def test_parse_archive_uses_folder_crc_for_single_substream() -> None:
    """A one-file folder with a folder CRC should reuse it for the entry."""
    builder = ArchiveBuilder().add_folder(lzma2_folder([("module1.py", b"imported = True\n")]))

    index = _parse(builder.build())

    assert index.files[0].crc == index.folders[0].crc == zlib.crc32(b"imported = True\n")


def test_parse_archive_reads_coder_graph_with_bind_pair() -> None:
    """A two-coder folder should expose its bind pair and packed input."""
    builder = ArchiveBuilder().add_folder(delta_lzma2_folder([("data.bin", bytes(range(64)))]))

    folder = _parse(builder.build()).folders[0]

    assert (
        [pair.in_index for pair in folder.bind_pairs],
        [pair.out_index for pair in folder.bind_pairs],
        folder.packed_streams,
        folder.unpack_size,
    ) == ([0], [1], (1,), 64)


def test_parse_archive_computes_absolute_pack_offsets() -> None:
    """Pack streams should be located after the signature header in file order."""
    builder = (
        ArchiveBuilder()
        .add_folder(copy_folder([("a.py", b"a = 1\n")]))
        .add_folder(copy_folder([("b.py", b"b = 22\n")]))
    )

    index = _parse(builder.build())

    assert [(stream.offset, stream.size) for stream in index.pack_streams] == [(32, 6), (38, 7)]


def test_parse_archive_marks_directories_and_empty_files() -> None:
    """Stream-less entries should be split into directories and empty files."""
    builder = (
        ArchiveBuilder()
        .add_folder(copy_folder([("pak/module2.py", b"imported = True\n")]))
        .add_directory("pak")
        .add_empty_file("pak/__init__.py")
    )

    index = _parse(builder.build())

    assert [(entry.name, entry.is_directory, entry.has_stream) for entry in index.files] == [
        ("pak/module2.py", False, True),
        ("pak", True, False),
        ("pak/__init__.py", False, False),
    ]


def test_parse_archive_decodes_encoded_header() -> None:
    """A compressed header should be decoded and parsed like a plain one."""
    builder = ArchiveBuilder().add_folder(
        copy_folder([("module1.py", b"imported = True\n"), ("other.py", b"x = 2\n")])
    )

    plain_index = _parse(builder.build())
    encoded_index = _parse(builder.build(encode_header=True))

    assert encoded_index.files == plain_index.files and encoded_index.folders == plain_index.folders


def test_parse_archive_rejects_damaged_encoded_header_stream() -> None:
    """A damaged compressed header should surface as a header error caused by the decode."""
    builder = ArchiveBuilder().add_folder(copy_folder([("module1.py", b"imported = True\n")]))
    payload = bytearray(builder.build(encode_header=True))
    payload[builder.pack_offset(len(builder.folders))] ^= 0xFF

    with pytest.raises(CorruptHeaderError) as error_info:
        _parse(bytes(payload))

    assert isinstance(error_info.value.__cause__, DecodeError)


def test_parse_archive_returns_empty_index_for_empty_archive() -> None:
    """An archive without a next header should parse to an empty index."""
    payload = _sealed(b"", b"")

    index = _parse(payload)

    assert index == ArchiveIndex()


def test_parse_archive_rejects_next_header_crc_mismatch() -> None:
    """A damaged metadata block should fail its CRC check."""
    payload = bytearray(ArchiveBuilder().add_folder(copy_folder([("a.py", b"a = 1\n")])).build())
    payload[-2] ^= 0xFF

    with pytest.raises(CorruptHeaderError, match="Next header CRC mismatch"):
        _parse(bytes(payload))


def test_parse_archive_rejects_unknown_header_property() -> None:
    """A metadata block that is neither plain nor encoded should be rejected."""
    payload = _sealed(b"", b"\x05\x00")

    with pytest.raises(CorruptHeaderError, match="expected header or encoded header"):
        _parse(payload)


def test_parse_archive_rejects_file_count_that_disagrees_with_substreams() -> None:
    """Substream counts that do not fit the folder should be an index mismatch."""
    packed = b"a = 1\nb = 2\n"
    builder = ArchiveBuilder().add_folder(copy_folder([("a.py", b"a = 1\n"), ("b.py", b"b = 2\n")]))
    header = bytearray(_metadata_of(builder))
    header[header.index(b"\x0d\x02") + 1] = 3

    with pytest.raises(IndexMismatchError):
        _parse(_sealed(packed, bytes(header)))


def _metadata_of(builder: ArchiveBuilder) -> bytes:
    payload = builder.build()
    next_header_size = struct.unpack_from("<Q", payload, 20)[0]
    return payload[len(payload) - next_header_size :]


def _sealed(packed: bytes, header_block: bytes) -> bytes:
    """Build a signature header around packed data and a metadata block."""
    start_header = struct.pack("<QQI", len(packed), len(header_block), zlib.crc32(header_block))
    start_crc = struct.pack("<I", zlib.crc32(start_header))
    signature = b"7z\xbc\xaf\x27\x1c\x00\x04" + start_crc + start_header
    return signature + packed + header_block
