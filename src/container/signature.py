"""Fixed signature header parsing.

This module validates the 32-byte header at offset 0 of a 7z container
and locates the metadata block it points to.
"""

from __future__ import annotations

from dataclasses import dataclass
import zlib

from core.constants import (
    SIGNATURE_HEADER_SIZE,
    SIGNATURE_MAGIC,
    START_HEADER_SIZE,
    SUPPORTED_MAJOR_VERSION,
)
from core.errors import BadSignatureError


@dataclass(frozen=True)
class SignatureHeader:
    """Decoded signature header.

    Attributes:
        major_version: Format major version.
        minor_version: Format minor version.
        next_header_offset: Metadata offset relative to the end of this header.
        next_header_size: Metadata size in bytes.
        next_header_crc: CRC32 of the metadata block.
    """

    major_version: int
    minor_version: int
    next_header_offset: int
    next_header_size: int
    next_header_crc: int

    @property
    def next_header_position(self) -> int:
        """Absolute file offset of the metadata block."""
        return SIGNATURE_HEADER_SIZE + self.next_header_offset


def has_signature_magic(prefix: bytes) -> bool:
    """Check whether bytes start with the 7z magic."""
    return prefix[: len(SIGNATURE_MAGIC)] == SIGNATURE_MAGIC


def parse_signature_header(payload: bytes, archive_size: int) -> SignatureHeader:
    """Validate and decode the signature header.

    Args:
        payload: First bytes of the archive, at least 32 when valid.
        archive_size: Total archive size used to bound the metadata range.

    Returns:
        Decoded signature header.

    Raises:
        BadSignatureError: If magic, version, CRC, or ranges are invalid.
    """
    if len(payload) < SIGNATURE_HEADER_SIZE:
        raise BadSignatureError(
            f"Archive is {len(payload)} bytes, shorter than the "
            f"{SIGNATURE_HEADER_SIZE}-byte signature header."
        )
    if not has_signature_magic(payload):
        raise BadSignatureError(
            f"Missing 7z signature: found {payload[: len(SIGNATURE_MAGIC)].hex()}. "
            "Verify the path points at a 7z archive."
        )
    major_version = payload[6]
    minor_version = payload[7]
    if major_version != SUPPORTED_MAJOR_VERSION:
        raise BadSignatureError(
            f"Unsupported 7z format version {major_version}.{minor_version}. "
            f"Only major version {SUPPORTED_MAJOR_VERSION} archives are readable."
        )
    start_header_crc = int.from_bytes(payload[8:12], "little")
    start_header = payload[12 : 12 + START_HEADER_SIZE]
    actual_crc = zlib.crc32(start_header)
    if actual_crc != start_header_crc:
        raise BadSignatureError(
            f"Start header CRC mismatch: expected {start_header_crc:08x}, got {actual_crc:08x}. "
            "The archive signature is damaged."
        )
    header = SignatureHeader(
        major_version=major_version,
        minor_version=minor_version,
        next_header_offset=int.from_bytes(start_header[0:8], "little"),
        next_header_size=int.from_bytes(start_header[8:16], "little"),
        next_header_crc=int.from_bytes(start_header[16:20], "little"),
    )
    header_end = header.next_header_position + header.next_header_size
    if header.next_header_size and header_end > archive_size:
        raise BadSignatureError(
            f"Next header range {header.next_header_position}..{header_end} lies outside "
            f"the {archive_size}-byte archive. The file is truncated."
        )
    return header
