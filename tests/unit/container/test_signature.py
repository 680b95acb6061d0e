"""Unit tests for signature header validation."""

from __future__ import annotations

import pytest

from container.signature import parse_signature_header
from core.errors import BadSignatureError
from tests.archive_builder import ArchiveBuilder, copy_folder


def _archive_bytes() -> bytes:
    return ArchiveBuilder().add_folder(copy_folder([("a.py", b"x = 1\n")])).build()


def test_parse_signature_header_reads_next_header_range() -> None:
    """A valid signature should locate the metadata block after the packed data."""
    payload = _archive_bytes()

    header = parse_signature_header(payload[:32], len(payload))

    assert header.next_header_position == 32 + len(b"x = 1\n") and header.major_version == 0


def test_parse_signature_header_rejects_bad_magic() -> None:
    """Files without the 7z magic should be rejected."""
    payload = b"PK\x03\x04" + _archive_bytes()[4:]

    with pytest.raises(BadSignatureError, match="Missing 7z signature"):
        parse_signature_header(payload[:32], len(payload))


def test_parse_signature_header_rejects_short_input() -> None:
    """Inputs shorter than the signature header should be rejected."""
    with pytest.raises(BadSignatureError):
        parse_signature_header(b"7z\xbc\xaf\x27\x1c", 6)


def test_parse_signature_header_rejects_start_header_crc_mismatch() -> None:
    """A damaged start header should fail its CRC check."""
    payload = bytearray(_archive_bytes())
    payload[12] ^= 0xFF

    with pytest.raises(BadSignatureError, match="Start header CRC mismatch"):
        parse_signature_header(bytes(payload[:32]), len(payload))


def test_parse_signature_header_rejects_unsupported_major_version() -> None:
    """Only major version zero archives should be accepted."""
    payload = bytearray(_archive_bytes())
    payload[6] = 1

    with pytest.raises(BadSignatureError, match="Unsupported 7z format version"):
        parse_signature_header(bytes(payload[:32]), len(payload))


def test_parse_signature_header_rejects_truncated_archive() -> None:
    """A next header range past the end of file should be rejected."""
    payload = _archive_bytes()

    with pytest.raises(BadSignatureError, match="truncated"):
        parse_signature_header(payload[:32], len(payload) - 1)
