"""BCJ2 branch-filter decoder.

BCJ2 rebuilds x86 code from four streams: the main byte stream, big-endian
CALL targets, big-endian JUMP targets, and a range-coded stream that tells
which E8/E9/Jcc opcodes were converted.
"""

from __future__ import annotations

from typing import Sequence

from core.errors import CodecError

_NUM_BIT_MODEL_TOTAL_BITS = 11
_BIT_MODEL_TOTAL = 1 << _NUM_BIT_MODEL_TOTAL_BITS
_NUM_MOVE_BITS = 5
_TOP_VALUE = 1 << 24
_UINT32_MASK = 0xFFFFFFFF
_RANGE_CODER_INIT_BYTES = 5


class _RangeDecoder:
    """Binary range decoder over the BCJ2 selector stream."""

    def __init__(self, payload: bytes) -> None:
        if len(payload) < _RANGE_CODER_INIT_BYTES:
            raise CodecError("BCJ2 range coder stream is shorter than its 5-byte preamble.")
        self._payload = payload
        self._position = _RANGE_CODER_INIT_BYTES
        self._range = _UINT32_MASK
        self._code = int.from_bytes(payload[1:_RANGE_CODER_INIT_BYTES], "big")

    def decode_bit(self, probabilities: list[int], index: int) -> int:
        probability = probabilities[index]
        bound = (self._range >> _NUM_BIT_MODEL_TOTAL_BITS) * probability
        if self._code < bound:
            self._range = bound
            probabilities[index] = probability + (
                (_BIT_MODEL_TOTAL - probability) >> _NUM_MOVE_BITS
            )
            bit = 0
        else:
            self._range -= bound
            self._code -= bound
            probabilities[index] = probability - (probability >> _NUM_MOVE_BITS)
            bit = 1
        if self._range < _TOP_VALUE:
            self._range = (self._range << 8) & _UINT32_MASK
            self._code = ((self._code << 8) | self._next_byte()) & _UINT32_MASK
        return bit

    def _next_byte(self) -> int:
        if self._position >= len(self._payload):
            raise CodecError("BCJ2 range coder stream ended early.")
        value = self._payload[self._position]
        self._position += 1
        return value


def _is_jump(previous_byte: int, current_byte: int) -> bool:
    if (current_byte & 0xFE) == 0xE8:
        return True
    return previous_byte == 0x0F and (current_byte & 0xF0) == 0x80


def decode_bcj2(inputs: Sequence[bytes], output_size: int, properties: bytes) -> bytes:
    """Decode BCJ2 streams into ``output_size`` bytes.

    Args:
        inputs: Main, call, jump, and range-coder streams in that order.
        output_size: Declared decoded size.
        properties: Unused; BCJ2 carries no properties.

    Returns:
        Reconstructed x86 byte stream.

    Raises:
        CodecError: If any stream ends before the output is complete.
    """
    main_stream, call_stream, jump_stream, selector_stream = inputs
    range_decoder = _RangeDecoder(selector_stream)
    # 256 contexts for E8 keyed by previous byte, one for E9, one for Jcc.
    probabilities = [_BIT_MODEL_TOTAL >> 1] * (256 + 2)
    output = bytearray()
    main_position = 0
    call_position = 0
    jump_position = 0
    previous_byte = 0
    while len(output) < output_size:
        if main_position >= len(main_stream):
            raise CodecError(
                f"BCJ2 main stream ended after {len(output)} of {output_size} bytes."
            )
        current_byte = main_stream[main_position]
        main_position += 1
        output.append(current_byte)
        if not _is_jump(previous_byte, current_byte):
            previous_byte = current_byte
            continue
        if len(output) == output_size:
            break
        if current_byte == 0xE8:
            probability_index = previous_byte
        elif current_byte == 0xE9:
            probability_index = 256
        else:
            probability_index = 257
        if range_decoder.decode_bit(probabilities, probability_index) == 0:
            previous_byte = current_byte
            continue
        if current_byte == 0xE8:
            target = call_stream[call_position : call_position + 4]
            call_position += 4
        else:
            target = jump_stream[jump_position : jump_position + 4]
            jump_position += 4
        if len(target) < 4:
            raise CodecError("BCJ2 call/jump stream ended early.")
        destination = (int.from_bytes(target, "big") - (len(output) + 4)) & _UINT32_MASK
        output += destination.to_bytes(4, "little")
        previous_byte = destination >> 24
    return bytes(output[:output_size])
