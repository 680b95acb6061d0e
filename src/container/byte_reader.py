"""Cursor over 7z header bytes.

This module decodes the primitive encodings used by 7z metadata:
variable-length numbers, bit vectors, and CRC digest lists.
"""

from __future__ import annotations

from core.errors import CorruptHeaderError


class ByteReader:
    """Sequential reader over one header buffer."""

    def __init__(self, payload: bytes, context: str = "header") -> None:
        self._payload = payload
        self._position = 0
        self._context = context

    @property
    def position(self) -> int:
        return self._position

    @property
    def remaining(self) -> int:
        return len(self._payload) - self._position

    def read_byte(self) -> int:
        """Read one unsigned byte."""
        if self._position >= len(self._payload):
            raise self._truncated(1)
        value = self._payload[self._position]
        self._position += 1
        return value

    def read_bytes(self, size: int) -> bytes:
        """Read exactly ``size`` bytes."""
        if size < 0 or self._position + size > len(self._payload):
            raise self._truncated(size)
        value = self._payload[self._position : self._position + size]
        self._position += size
        return value

    def skip(self, size: int) -> None:
        self.read_bytes(size)

    def read_uint32(self) -> int:
        return int.from_bytes(self.read_bytes(4), "little")

    def read_uint64(self) -> int:
        return int.from_bytes(self.read_bytes(8), "little")

    def read_number(self) -> int:
        """Read a 7z variable-length UINT64.

        The leading one bits of the first byte count the extra little-endian
        bytes; the remaining low bits of the first byte are the high part.

        Returns:
            Decoded unsigned integer.
        """
        first = self.read_byte()
        mask = 0x80
        value = 0
        for extra_bytes in range(8):
            if first & mask == 0:
                high_part = first & (mask - 1)
                return value | (high_part << (8 * extra_bytes))
            value |= self.read_byte() << (8 * extra_bytes)
            mask >>= 1
        return value

    def read_count(self, limit: int | None = None) -> int:
        """Read a number used as an item count and bound it.

        Args:
            limit: Optional inclusive upper bound; defaults to remaining bytes.

        Returns:
            Decoded count.

        Raises:
            CorruptHeaderError: If the count cannot fit the header.
        """
        value = self.read_number()
        bound = self.remaining if limit is None else limit
        if value > max(bound, 0):
            raise CorruptHeaderError(
                f"Invalid {self._context}: count {value} exceeds the available {bound}. "
                "The archive header is damaged."
            )
        return value

    def read_bit_vector(self, count: int) -> tuple[bool, ...]:
        """Read ``count`` bits packed most-significant bit first."""
        packed = self.read_bytes((count + 7) // 8)
        return tuple(bool(packed[index >> 3] & (0x80 >> (index & 7))) for index in range(count))

    def read_defined_vector(self, count: int) -> tuple[bool, ...]:
        """Read an all-defined flag followed by an optional bit vector."""
        all_defined = self.read_byte()
        if all_defined:
            return (True,) * count
        return self.read_bit_vector(count)

    def read_digests(self, count: int) -> tuple[int | None, ...]:
        """Read a CRC digest list with its defined vector.

        Args:
            count: Number of items the digests describe.

        Returns:
            One CRC or ``None`` per item.
        """
        defined = self.read_defined_vector(count)
        return tuple(self.read_uint32() if is_defined else None for is_defined in defined)

    def sub_reader(self, size: int, context: str) -> "ByteReader":
        """Split off a reader over the next ``size`` bytes."""
        return ByteReader(self.read_bytes(size), context)

    def _truncated(self, size: int) -> CorruptHeaderError:
        return CorruptHeaderError(
            f"Truncated {self._context}: needed {size} byte(s) at offset {self._position} "
            f"of {len(self._payload)}. The archive header is damaged or incomplete."
        )
