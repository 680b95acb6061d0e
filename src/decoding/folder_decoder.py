"""Folder decoding over an explicit coder graph.

This module validates a folder's coders and bind pairs as node and edge
lists, orders coders with a topological sort, and runs them through the
codec registry. The final output is verified against the folder CRC.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import zlib

from container.byte_source import ByteSource
from core.errors import CodecError, CrcMismatchError, DecodeError, InvalidGraphError
from core.logging_config import get_logger
from core.types import ArchiveIndex, FolderDescriptor
from decoding.codec_registry import CodecRegistry

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class CoderGraph:
    """Validated stream layout and execution order of one folder.

    Attributes:
        in_offsets: First folder-global input stream of each coder.
        out_offsets: First folder-global output stream of each coder.
        in_sources: Output stream feeding each input stream, or ``None``
            when a pack stream feeds it.
        pack_inputs: Pack stream position feeding each input stream, or ``None``.
        final_out_index: The folder's single unbound output stream.
        order: Coder indices in execution order.
    """

    in_offsets: tuple[int, ...]
    out_offsets: tuple[int, ...]
    in_sources: tuple[int | None, ...]
    pack_inputs: tuple[int | None, ...]
    final_out_index: int
    order: tuple[int, ...]


def build_coder_graph(folder: FolderDescriptor, folder_index: int) -> CoderGraph:
    """Validate a folder's bindings and compute a coder execution order.

    Args:
        folder: Folder descriptor.
        folder_index: Folder position, used in error messages.

    Returns:
        Validated coder graph.

    Raises:
        InvalidGraphError: If bindings are out of range, ambiguous, leave
            inputs unfed, leave more than one output unbound, or form a cycle.
    """
    in_offsets: list[int] = []
    out_offsets: list[int] = []
    in_owner: list[int] = []
    out_owner: list[int] = []
    for coder_index, coder in enumerate(folder.coders):
        if coder.num_out_streams != 1:
            raise _graph_error(
                folder_index,
                f"coder {coder_index} declares {coder.num_out_streams} output streams; "
                "only single-output coders are decodable",
            )
        in_offsets.append(len(in_owner))
        out_offsets.append(len(out_owner))
        in_owner.extend([coder_index] * coder.num_in_streams)
        out_owner.extend([coder_index] * coder.num_out_streams)
    if len(folder.unpack_sizes) != len(out_owner):
        raise _graph_error(
            folder_index,
            f"{len(folder.unpack_sizes)} unpack sizes for {len(out_owner)} output streams",
        )
    in_sources: list[int | None] = [None] * len(in_owner)
    pack_inputs: list[int | None] = [None] * len(in_owner)
    bound_outputs: set[int] = set()
    for pair in folder.bind_pairs:
        label = f"bind pair {pair.in_index}<-{pair.out_index}"
        if pair.in_index >= len(in_owner) or pair.out_index >= len(out_owner):
            raise _graph_error(folder_index, f"{label} is out of range")
        if in_sources[pair.in_index] is not None or pair.out_index in bound_outputs:
            raise _graph_error(folder_index, f"{label} is bound twice")
        in_sources[pair.in_index] = pair.out_index
        bound_outputs.add(pair.out_index)
    for pack_position, in_index in enumerate(folder.packed_streams):
        if in_index >= len(in_owner):
            raise _graph_error(folder_index, f"pack stream input {in_index} is out of range")
        if in_sources[in_index] is not None or pack_inputs[in_index] is not None:
            raise _graph_error(folder_index, f"input stream {in_index} is fed twice")
        pack_inputs[in_index] = pack_position
    unfed = [
        index
        for index in range(len(in_owner))
        if in_sources[index] is None and pack_inputs[index] is None
    ]
    if unfed:
        raise _graph_error(folder_index, f"input stream(s) {unfed} have no source")
    unbound = [index for index in range(len(out_owner)) if index not in bound_outputs]
    if len(unbound) != 1:
        raise _graph_error(
            folder_index, f"expected one unbound output stream, found {len(unbound)}"
        )
    order = _topological_order(folder, folder_index, in_owner, out_owner, in_sources)
    return CoderGraph(
        in_offsets=tuple(in_offsets),
        out_offsets=tuple(out_offsets),
        in_sources=tuple(in_sources),
        pack_inputs=tuple(pack_inputs),
        final_out_index=unbound[0],
        order=order,
    )


def decode_folder(
    index: ArchiveIndex,
    folder_index: int,
    source: ByteSource,
    registry: CodecRegistry,
    verify_crc: bool = True,
) -> bytes:
    """Decode one folder to its final output.

    Args:
        index: Archive index holding the folder and its pack streams.
        folder_index: Folder position in ``index.folders``.
        source: Byte source of the archive.
        registry: Codec lookup table.
        verify_crc: Check pack and folder CRCs when declared.

    Returns:
        The folder's decoded bytes.

    Raises:
        DecodeError: If the graph is invalid, a coder is unsupported, a
            codec fails, or a CRC does not match.
    """
    folder = index.folders[folder_index]
    graph = build_coder_graph(folder, folder_index)
    packed = _read_pack_streams(index, folder_index, source, verify_crc)
    outputs: dict[int, bytes] = {}
    for coder_index in graph.order:
        coder = folder.coders[coder_index]
        first_input = graph.in_offsets[coder_index]
        inputs: list[bytes] = []
        for in_index in range(first_input, first_input + coder.num_in_streams):
            pack_position = graph.pack_inputs[in_index]
            if pack_position is not None:
                inputs.append(packed[pack_position])
            else:
                inputs.append(outputs.pop(graph.in_sources[in_index]))
        out_index = graph.out_offsets[coder_index]
        try:
            outputs[out_index] = registry.decode(
                coder.method_id,
                inputs,
                folder.unpack_sizes[out_index],
                coder.properties,
            )
        except DecodeError as error:
            error.folder_index = folder_index
            raise
    result = outputs[graph.final_out_index]
    if verify_crc and folder.crc is not None:
        _verify_crc(result, folder.crc, f"Folder {folder_index}", folder_index)
    _LOGGER.debug(
        "folder_decoded",
        folder_index=folder_index,
        unpack_size=len(result),
        coders=[registry.describe(coder.method_id) for coder in folder.coders],
    )
    return result


def verify_substream_crc(
    payload: bytes,
    expected_crc: int | None,
    label: str,
    folder_index: int | None,
) -> None:
    """Check one substream slice against its declared CRC.

    Raises:
        CrcMismatchError: If the CRC is declared and differs.
    """
    if expected_crc is not None:
        _verify_crc(payload, expected_crc, label, folder_index)


def _topological_order(
    folder: FolderDescriptor,
    folder_index: int,
    in_owner: list[int],
    out_owner: list[int],
    in_sources: list[int | None],
) -> tuple[int, ...]:
    """Kahn's algorithm over coder-to-coder edges."""
    coder_count = len(folder.coders)
    successors: list[list[int]] = [[] for _ in range(coder_count)]
    indegree = [0] * coder_count
    for in_index, out_index in enumerate(in_sources):
        if out_index is None:
            continue
        producer = out_owner[out_index]
        consumer = in_owner[in_index]
        successors[producer].append(consumer)
        indegree[consumer] += 1
    ready = deque(index for index in range(coder_count) if indegree[index] == 0)
    order: list[int] = []
    while ready:
        coder_index = ready.popleft()
        order.append(coder_index)
        for successor in successors[coder_index]:
            indegree[successor] -= 1
            if indegree[successor] == 0:
                ready.append(successor)
    if len(order) != coder_count:
        raise _graph_error(folder_index, "coder bindings form a cycle")
    return tuple(order)


def _read_pack_streams(
    index: ArchiveIndex,
    folder_index: int,
    source: ByteSource,
    verify_crc: bool,
) -> list[bytes]:
    """Read the packed inputs of one folder from the byte source."""
    folder = index.folders[folder_index]
    pack_streams = index.pack_streams_for(folder_index)
    if len(pack_streams) != len(folder.packed_streams):
        raise CodecError(
            f"Folder {folder_index} needs {len(folder.packed_streams)} pack stream(s), "
            f"the index provides {len(pack_streams)}.",
            folder_index,
        )
    payloads: list[bytes] = []
    for position, pack_stream in enumerate(pack_streams):
        payload = source.read_at(pack_stream.offset, pack_stream.size)
        if len(payload) != pack_stream.size:
            raise CodecError(
                f"Folder {folder_index} pack stream {position} is truncated: read "
                f"{len(payload)} of {pack_stream.size} bytes at offset {pack_stream.offset}.",
                folder_index,
            )
        if verify_crc and pack_stream.crc is not None:
            label = f"Folder {folder_index} pack stream {position}"
            _verify_crc(payload, pack_stream.crc, label, folder_index)
        payloads.append(payload)
    return payloads


def _verify_crc(payload: bytes, expected_crc: int, label: str, folder_index: int | None) -> None:
    actual_crc = zlib.crc32(payload)
    if actual_crc != expected_crc:
        raise CrcMismatchError(
            f"{label} CRC mismatch: expected {expected_crc:08x}, got {actual_crc:08x}. "
            "The archive data is corrupted.",
            expected=expected_crc,
            actual=actual_crc,
            folder_index=folder_index,
        )


def _graph_error(folder_index: int, detail: str) -> InvalidGraphError:
    return InvalidGraphError(
        f"Folder {folder_index} has an invalid coder graph: {detail}.", folder_index
    )
