"""Codec registry keyed by coder method id.

This module maps 7z method ids onto decode callables with one fixed
contract: ``(input streams, output size, properties) -> output bytes``.
The folder decoder only ever dispatches through a registry instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from core.constants import (
    BCJ2_INPUT_STREAMS,
    METHOD_BCJ2,
    METHOD_BCJ_ARM,
    METHOD_BCJ_ARMT,
    METHOD_BCJ_IA64,
    METHOD_BCJ_PPC,
    METHOD_BCJ_SPARC,
    METHOD_BCJ_X86,
    METHOD_BZIP2,
    METHOD_COPY,
    METHOD_DEFLATE,
    METHOD_DELTA,
    METHOD_LZMA,
    METHOD_LZMA2,
    METHOD_PPMD,
)
from core.errors import CodecError, SevenImportDependencyError, UnsupportedCoderError
from decoding import codecs
from decoding.bcj2 import decode_bcj2

Codec = Callable[[Sequence[bytes], int, bytes], bytes]


@dataclass(frozen=True)
class CodecRegistration:
    """Registered codec.

    Attributes:
        method_id: Coder method id bytes.
        name: Human-readable codec name.
        decode: Decode callable.
        num_in_streams: Number of input streams the codec expects.
    """

    method_id: bytes
    name: str
    decode: Codec
    num_in_streams: int = 1


class CodecRegistry:
    """Method-id to codec lookup table."""

    def __init__(self) -> None:
        self._codecs: dict[bytes, CodecRegistration] = {}

    def register(
        self,
        method_id: bytes,
        name: str,
        decode: Codec,
        num_in_streams: int = 1,
    ) -> None:
        """Register or replace the codec for a method id.

        Args:
            method_id: Coder method id bytes.
            name: Human-readable codec name.
            decode: Decode callable.
            num_in_streams: Number of input streams the codec expects.
        """
        self._codecs[bytes(method_id)] = CodecRegistration(
            method_id=bytes(method_id),
            name=name,
            decode=decode,
            num_in_streams=num_in_streams,
        )

    def lookup(self, method_id: bytes) -> CodecRegistration | None:
        return self._codecs.get(bytes(method_id))

    def describe(self, method_id: bytes) -> str:
        """Return the codec name, or the hex method id when unknown."""
        registration = self.lookup(method_id)
        if registration is None:
            return f"0x{method_id.hex() or '(empty)'}"
        return registration.name

    def decode(
        self,
        method_id: bytes,
        inputs: Sequence[bytes],
        output_size: int,
        properties: bytes,
    ) -> bytes:
        """Decode input streams with the codec registered for a method id.

        Args:
            method_id: Coder method id bytes.
            inputs: Input streams in declared order.
            output_size: Declared decoded size.
            properties: Coder property bytes.

        Returns:
            Decoded bytes of exactly ``output_size`` length.

        Raises:
            UnsupportedCoderError: If no usable codec exists for the id.
            CodecError: If the codec fails or returns the wrong size.
        """
        registration = self.lookup(method_id)
        if registration is None:
            raise UnsupportedCoderError(
                f"Unsupported coder 0x{method_id.hex()}: "
                "no codec is registered for this method id.",
                method_id=method_id,
            )
        if len(inputs) != registration.num_in_streams:
            raise CodecError(
                f"Coder {registration.name} expects {registration.num_in_streams} input stream(s), "
                f"got {len(inputs)}."
            )
        try:
            output = registration.decode(inputs, output_size, properties)
        except SevenImportDependencyError as error:
            raise UnsupportedCoderError(
                f"Unsupported coder {registration.name} (0x{method_id.hex()}): {error}",
                method_id=method_id,
            ) from error
        if len(output) != output_size:
            raise CodecError(
                f"Coder {registration.name} produced {len(output)} bytes, expected {output_size}. "
                "The packed data is damaged or truncated."
            )
        return output


def build_default_registry() -> CodecRegistry:
    """Create a registry with every built-in codec.

    Returns:
        Registry covering copy, LZMA, LZMA2, PPMd, Deflate, BZip2,
        delta, the BCJ branch filters, and BCJ2.
    """
    registry = CodecRegistry()
    registry.register(METHOD_COPY, "Copy", codecs.decode_copy)
    registry.register(METHOD_LZMA, "LZMA", codecs.decode_lzma)
    registry.register(METHOD_LZMA2, "LZMA2", codecs.decode_lzma2)
    registry.register(METHOD_PPMD, "PPMd", codecs.decode_ppmd)
    registry.register(METHOD_DEFLATE, "Deflate", codecs.decode_deflate)
    registry.register(METHOD_BZIP2, "BZip2", codecs.decode_bzip2)
    registry.register(METHOD_DELTA, "Delta", codecs.decode_delta)
    registry.register(METHOD_BCJ_X86, "BCJ", codecs.branch_codec("BCJDecoder"))
    registry.register(METHOD_BCJ_PPC, "PPC", codecs.branch_codec("PPCDecoder"))
    registry.register(METHOD_BCJ_ARM, "ARM", codecs.branch_codec("ARMDecoder"))
    registry.register(METHOD_BCJ_ARMT, "ARMT", codecs.branch_codec("ARMTDecoder"))
    registry.register(METHOD_BCJ_SPARC, "SPARC", codecs.branch_codec("SparcDecoder"))
    registry.register(METHOD_BCJ_IA64, "IA64", codecs.branch_codec("IA64Decoder"))
    registry.register(METHOD_BCJ2, "BCJ2", decode_bcj2, num_in_streams=BCJ2_INPUT_STREAMS)
    return registry
