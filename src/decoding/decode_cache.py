"""Per-archive cache of decoded folders.

This module memoizes folder decode results so every substream of a solid
block shares one buffer. Concurrent first requests for the same folder
run a single decode; later callers wait for it and reuse the result.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import threading
from typing import Callable, Iterator

from core.errors import ArchiveClosedError


@dataclass
class DecodeCacheEntry:
    """Decoded folder buffer shared by its substreams.

    Attributes:
        folder_index: Folder the buffer belongs to.
        data: CRC-verified decoded bytes.
        ref_count: Number of callers currently borrowing the buffer.
    """

    folder_index: int
    data: bytes
    ref_count: int = 0


@dataclass
class _PendingDecode:
    """Decode in flight, awaited by concurrent requesters."""

    done: threading.Event = field(default_factory=threading.Event)
    entry: DecodeCacheEntry | None = None
    error: Exception | None = None


class DecodeCache:
    """Thread-safe, single-flight folder cache for one archive handle."""

    def __init__(
        self,
        archive_name: str,
        retain_entries: bool = True,
        on_drained: Callable[[], None] | None = None,
    ) -> None:
        """Initialize an empty cache.

        Args:
            archive_name: Archive label used in error messages.
            retain_entries: Keep buffers after their last borrower releases them.
            on_drained: Called once after close, when no decode is in flight.
        """
        self._archive_name = archive_name
        self._retain_entries = retain_entries
        self._on_drained = on_drained
        self._lock = threading.Lock()
        self._entries: dict[int, DecodeCacheEntry] = {}
        self._pending: dict[int, _PendingDecode] = {}
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def cached_folders(self) -> tuple[int, ...]:
        """Return folder indices currently held, in ascending order."""
        with self._lock:
            return tuple(sorted(self._entries))

    @contextmanager
    def borrow(self, folder_index: int, decode: Callable[[], bytes]) -> Iterator[bytes]:
        """Lend a folder's decoded buffer for the duration of a block.

        Args:
            folder_index: Folder to look up.
            decode: Callable producing the folder bytes on a miss.

        Yields:
            The decoded folder bytes.

        Raises:
            ArchiveClosedError: If the cache was closed.
            DecodeError: If the decode fails, for the decoding caller and
                every caller that waited on it.
        """
        entry = self._acquire(folder_index, decode)
        try:
            yield entry.data
        finally:
            self._release(entry)

    def in_flight(self) -> tuple[int, ...]:
        """Return folder indices with a decode currently running."""
        with self._lock:
            return tuple(sorted(self._pending))

    def close(self) -> bool:
        """Evict all entries and refuse further requests.

        Decodes already in flight complete for their waiting callers but
        their results are not stored. ``on_drained`` runs now when nothing
        is in flight, otherwise when the last running decode finishes.

        Returns:
            ``True`` if decodes were still running at close time.
        """
        with self._lock:
            self._closed = True
            self._entries.clear()
            busy = bool(self._pending)
        if not busy:
            self._notify_drained()
        return busy

    def _acquire(self, folder_index: int, decode: Callable[[], bytes]) -> DecodeCacheEntry:
        with self._lock:
            self._raise_if_closed()
            entry = self._entries.get(folder_index)
            if entry is not None:
                entry.ref_count += 1
                return entry
            pending = self._pending.get(folder_index)
            is_owner = pending is None
            if pending is None:
                pending = _PendingDecode()
                self._pending[folder_index] = pending
        if not is_owner:
            return self._await(folder_index, pending)
        return self._run_decode(folder_index, pending, decode)

    def _run_decode(
        self,
        folder_index: int,
        pending: _PendingDecode,
        decode: Callable[[], bytes],
    ) -> DecodeCacheEntry:
        """Decode as the owning caller and publish the outcome."""
        try:
            data = decode()
        except Exception as error:
            pending.error = error
            raise
        else:
            entry = DecodeCacheEntry(folder_index=folder_index, data=data, ref_count=1)
            pending.entry = entry
            return entry
        finally:
            with self._lock:
                self._pending.pop(folder_index, None)
                if pending.entry is not None and not self._closed:
                    self._entries[folder_index] = pending.entry
                drained = self._closed and not self._pending
            pending.done.set()
            if drained:
                self._notify_drained()

    def _await(self, folder_index: int, pending: _PendingDecode) -> DecodeCacheEntry:
        """Wait for another caller's decode of the same folder."""
        pending.done.wait()
        if pending.error is not None:
            raise pending.error
        if pending.entry is None:
            raise ArchiveClosedError(
                f"Decode of folder {folder_index} in {self._archive_name} was abandoned. "
                "Retry the import."
            )
        with self._lock:
            pending.entry.ref_count += 1
        return pending.entry

    def _release(self, entry: DecodeCacheEntry) -> None:
        with self._lock:
            entry.ref_count -= 1
            if entry.ref_count <= 0 and not self._retain_entries:
                if self._entries.get(entry.folder_index) is entry:
                    del self._entries[entry.folder_index]

    def _notify_drained(self) -> None:
        with self._lock:
            if self._drained:
                return
            self._drained = True
        if self._on_drained is not None:
            self._on_drained()

    def _raise_if_closed(self) -> None:
        if self._closed:
            raise ArchiveClosedError(
                f"Archive {self._archive_name} is closed. Reopen it before importing from it."
            )
