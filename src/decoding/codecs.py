"""Codec adapters for the built-in coder methods.

This module adapts stdlib ``lzma``/``zlib``/``bz2`` and the optional
``pyppmd``/``pybcj`` libraries to the registry's decode contract.
Property bytes are decoded here; algorithm bodies live in the libraries.
"""

from __future__ import annotations

import bz2
import lzma
from typing import Any, Callable, Sequence
import zlib

from core.errors import CodecError, SevenImportDependencyError

_MIN_DICT_SIZE = 1 << 12
_MAX_DICT_SIZE = (1 << 30) + (1 << 29)
_LZMA2_DICT_BITS_MAX = 40


def decode_copy(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    return bytes(inputs[0])


def decode_lzma(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    """Decode a raw LZMA stream.

    The first property byte packs ``(pb * 5 + lp) * 9 + lc``; the next four
    bytes are the little-endian dictionary size.
    """
    if len(properties) < 5:
        raise CodecError(f"LZMA properties must be 5 bytes, got {len(properties)}.")
    packed = properties[0]
    if packed >= 9 * 5 * 5:
        raise CodecError(f"Invalid LZMA properties byte 0x{packed:02x}.")
    lc = packed % 9
    lp = (packed // 9) % 5
    pb = packed // 45
    dict_size = int.from_bytes(properties[1:5], "little")
    filters = [
        {
            "id": lzma.FILTER_LZMA1,
            "dict_size": _effective_dict_size(dict_size, output_size),
            "lc": lc,
            "lp": lp,
            "pb": pb,
        }
    ]
    return _decompress_raw(inputs[0], output_size, filters, "LZMA")


def decode_lzma2(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    """Decode a raw LZMA2 stream; one property byte encodes the dictionary."""
    if len(properties) < 1:
        raise CodecError("LZMA2 properties must be 1 byte, got none.")
    dict_bits = properties[0] & 0x3F
    if dict_bits > _LZMA2_DICT_BITS_MAX:
        raise CodecError(f"Invalid LZMA2 dictionary property 0x{properties[0]:02x}.")
    if dict_bits == _LZMA2_DICT_BITS_MAX:
        dict_size = 0xFFFFFFFF
    else:
        dict_size = (2 | (dict_bits & 1)) << (dict_bits // 2 + 11)
    filters = [{"id": lzma.FILTER_LZMA2, "dict_size": _effective_dict_size(dict_size, output_size)}]
    return _decompress_raw(inputs[0], output_size, filters, "LZMA2")


def decode_ppmd(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    """Decode a PPMd variant H stream (order byte plus memory size)."""
    if len(properties) < 5:
        raise CodecError(f"PPMd properties must be 5 bytes, got {len(properties)}.")
    order = properties[0]
    memory_size = int.from_bytes(properties[1:5], "little")
    pyppmd = _import_pyppmd()
    try:
        decoder = pyppmd.Ppmd7Decoder(order, memory_size)
        return decoder.decode(inputs[0], output_size)
    except (ValueError, RuntimeError, EOFError) as error:
        raise CodecError(f"PPMd decode failed: {error}.") from error


def decode_deflate(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    try:
        return zlib.decompress(inputs[0], -zlib.MAX_WBITS)
    except zlib.error as error:
        raise CodecError(f"Deflate decode failed: {error}.") from error


def decode_bzip2(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    try:
        return bz2.decompress(inputs[0])
    except (OSError, ValueError, EOFError) as error:
        raise CodecError(f"BZip2 decode failed: {error}.") from error


def decode_delta(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    """Undo a byte-wise delta filter; the property byte is distance minus one."""
    distance = properties[0] + 1 if properties else 1
    buffer = bytearray(inputs[0])
    for position in range(distance, len(buffer)):
        buffer[position] = (buffer[position] + buffer[position - distance]) & 0xFF
    return bytes(buffer)


def branch_codec(decoder_name: str) -> Callable[[Sequence[bytes], int, bytes], bytes]:
    """Build a codec for one ``pybcj`` branch-converter class.

    Args:
        decoder_name: Class name in the ``bcj`` module, e.g. ``BCJDecoder``.

    Returns:
        Decode callable for the registry.
    """

    def decode_branch(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
        bcj = _import_bcj()
        decoder = getattr(bcj, decoder_name)(output_size)
        return decoder.decode(inputs[0])

    return decode_branch


def _decompress_raw(
    payload: bytes,
    output_size: int,
    filters: list[dict[str, Any]],
    codec_name: str,
) -> bytes:
    """Run a raw-format liblzma decoder up to the declared size."""
    try:
        decompressor = lzma.LZMADecompressor(format=lzma.FORMAT_RAW, filters=filters)
        return decompressor.decompress(payload, max_length=output_size)
    except lzma.LZMAError as error:
        raise CodecError(f"{codec_name} decode failed: {error}.") from error


def _effective_dict_size(declared_size: int, output_size: int) -> int:
    """Bound the decoder dictionary; matches never reach past the output."""
    return max(_MIN_DICT_SIZE, min(declared_size, output_size, _MAX_DICT_SIZE))


def _import_pyppmd() -> Any:
    """Import the PPMd codec library."""
    try:
        import pyppmd
    except ImportError as error:
        raise SevenImportDependencyError(
            "PPMd folders require pyppmd, but it is not installed. Install pyppmd to read them."
        ) from error
    return pyppmd


def _import_bcj() -> Any:
    """Import the branch-converter codec library."""
    try:
        import bcj
    except ImportError as error:
        raise SevenImportDependencyError(
            "Branch-filter folders require pybcj, but it is not installed. "
            "Install pybcj to read them."
        ) from error
    return bcj
