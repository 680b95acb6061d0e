"""Archive index construction.

This module validates the signature header, reads the metadata block and,
when the metadata is itself compressed, decodes it with the regular folder
decoder before parsing the real header.
"""

from __future__ import annotations

import zlib

from container.byte_reader import ByteReader
from container.byte_source import ByteSource
from container.header_parser import read_header, read_streams_info
from container.signature import parse_signature_header
from core.constants import PROPERTY_ENCODED_HEADER, PROPERTY_HEADER, SIGNATURE_HEADER_SIZE
from core.errors import CorruptHeaderError, DecodeError
from core.logging_config import get_logger
from core.types import ArchiveIndex
from decoding.codec_registry import CodecRegistry, build_default_registry
from decoding.folder_decoder import decode_folder

_LOGGER = get_logger(__name__)
_MAX_HEADER_ENCODING_DEPTH = 4


def parse_archive(source: ByteSource, registry: CodecRegistry | None = None) -> ArchiveIndex:
    """Parse an archive's headers into an immutable index.

    Args:
        source: Byte source positioned anywhere; reads are positional.
        registry: Codec registry used for encoded headers.

    Returns:
        Parsed archive index.

    Raises:
        BadSignatureError: If the signature header is invalid.
        CorruptHeaderError: If the metadata block is damaged or undecodable.
        IndexMismatchError: If header sections disagree.
    """
    signature = parse_signature_header(source.read_at(0, SIGNATURE_HEADER_SIZE), source.size)
    if signature.next_header_size == 0:
        return ArchiveIndex()
    payload = source.read_at(signature.next_header_position, signature.next_header_size)
    if len(payload) != signature.next_header_size:
        raise CorruptHeaderError(
            f"Next header is truncated: read {len(payload)} of {signature.next_header_size} bytes."
        )
    actual_crc = zlib.crc32(payload)
    if actual_crc != signature.next_header_crc:
        raise CorruptHeaderError(
            f"Next header CRC mismatch: expected {signature.next_header_crc:08x}, "
            f"got {actual_crc:08x}. The archive header is damaged."
        )
    return parse_header_block(payload, source, registry or build_default_registry())


def parse_header_block(payload: bytes, source: ByteSource, registry: CodecRegistry) -> ArchiveIndex:
    """Parse a plain or encoded header block.

    Args:
        payload: Metadata bytes starting with a header property id.
        source: Byte source holding any packed header streams.
        registry: Codec registry for encoded headers.

    Returns:
        Parsed archive index.
    """
    for _ in range(_MAX_HEADER_ENCODING_DEPTH):
        reader = ByteReader(payload)
        property_id = reader.read_number()
        if property_id == PROPERTY_HEADER:
            return read_header(reader)
        if property_id != PROPERTY_ENCODED_HEADER:
            raise CorruptHeaderError(
                f"Invalid header: expected header or encoded header, found property "
                f"0x{property_id:02x}. The archive header is damaged."
            )
        payload = _decode_encoded_header(reader, source, registry)
    raise CorruptHeaderError(
        f"Header is encoded more than {_MAX_HEADER_ENCODING_DEPTH} times. "
        "The archive header is damaged."
    )


def _decode_encoded_header(
    reader: ByteReader,
    source: ByteSource,
    registry: CodecRegistry,
) -> bytes:
    """Decode a compressed header through a header-only index.

    Raises:
        CorruptHeaderError: If the header folder fails to decode or verify.
    """
    streams = read_streams_info(reader)
    if not streams.folders:
        raise CorruptHeaderError(
            "Encoded header declares no folders. The archive header is damaged."
        )
    header_index = ArchiveIndex(pack_streams=streams.pack_streams, folders=streams.folders)
    parts: list[bytes] = []
    for folder_index in range(len(header_index.folders)):
        try:
            parts.append(
                decode_folder(header_index, folder_index, source, registry, verify_crc=True)
            )
        except DecodeError as error:
            raise CorruptHeaderError(
                f"Encoded header folder {folder_index} failed to decode: {error}"
            ) from error
    payload = b"".join(parts)
    _LOGGER.debug("encoded_header_decoded", folders=len(parts), header_size=len(payload))
    return payload
