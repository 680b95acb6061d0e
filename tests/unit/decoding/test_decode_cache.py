"""Unit tests for single-flight folder caching."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.errors import ArchiveClosedError, CodecError
from decoding.decode_cache import DecodeCache


class _CountingDecode:
    """Decode stub that blocks until released and counts invocations."""

    def __init__(self, payload: bytes) -> None:
        self.payload = payload
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()
        self._lock = threading.Lock()

    def __call__(self) -> bytes:
        with self._lock:
            self.calls += 1
        self.started.set()
        self.release.wait(timeout=5)
        return self.payload


def _read(cache: DecodeCache, folder_index: int, decode: _CountingDecode) -> bytes:
    with cache.borrow(folder_index, decode) as data:
        return bytes(data)


def test_borrow_decodes_concurrent_requests_once() -> None:
    """Concurrent first requests for one folder should share a single decode."""
    cache = DecodeCache("concurrent.7z")
    decode = _CountingDecode(b"folder bytes")

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(_read, cache, 0, decode) for _ in range(4)]
        decode.started.wait(timeout=5)
        decode.release.set()
        results = [future.result(timeout=5) for future in futures]

    assert results == [b"folder bytes"] * 4 and decode.calls == 1


def test_borrow_reuses_cached_folder() -> None:
    """A second borrow should not decode again."""
    cache = DecodeCache("cached.7z")
    decode = _CountingDecode(b"abc")
    decode.release.set()

    _read(cache, 2, decode)
    _read(cache, 2, decode)

    assert decode.calls == 1 and cache.cached_folders() == (2,)


def test_borrow_does_not_cache_failures() -> None:
    """A failed decode should be retried by the next request."""
    cache = DecodeCache("failing.7z")
    attempts: list[int] = []

    def failing_decode() -> bytes:
        attempts.append(1)
        raise CodecError("boom", folder_index=0)

    for _ in range(2):
        with pytest.raises(CodecError):
            with cache.borrow(0, failing_decode):
                pass

    assert len(attempts) == 2 and cache.cached_folders() == ()


def test_borrow_evicts_after_release_without_retention() -> None:
    """Without retention, the entry should disappear once the last borrower leaves."""
    cache = DecodeCache("transient.7z", retain_entries=False)
    decode = _CountingDecode(b"abc")
    decode.release.set()

    with cache.borrow(0, decode):
        held = cache.cached_folders()

    assert held == (0,) and cache.cached_folders() == ()


def test_close_lets_in_flight_decode_finish_without_storing() -> None:
    """Closing during a decode should serve the waiting caller but store nothing."""
    cache = DecodeCache("closing.7z")
    decode = _CountingDecode(b"late")

    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(_read, cache, 0, decode)
        decode.started.wait(timeout=5)
        cache.close()
        decode.release.set()
        result = future.result(timeout=5)

    assert result == b"late" and cache.cached_folders() == ()


def test_borrow_raises_after_close() -> None:
    """Closed caches should refuse new requests."""
    cache = DecodeCache("closed.7z")
    cache.close()

    with pytest.raises(ArchiveClosedError):
        _read(cache, 0, _CountingDecode(b""))


def test_close_defers_drain_callback_until_decode_finishes() -> None:
    """The drain callback should wait for the running decode, then run once."""
    drained: list[bool] = []
    cache = DecodeCache("draining.7z", on_drained=lambda: drained.append(True))
    decode = _CountingDecode(b"payload")

    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(_read, cache, 0, decode)
        decode.started.wait(timeout=5)
        busy = cache.close()
        drained_at_close = list(drained)
        decode.release.set()
        future.result(timeout=5)

    assert (busy, drained_at_close, drained) == (True, [], [True])


def test_close_runs_drain_callback_when_idle() -> None:
    """Closing an idle cache should run the drain callback immediately."""
    drained: list[bool] = []
    cache = DecodeCache("idle.7z", on_drained=lambda: drained.append(True))

    cache.close()
    cache.close()

    assert drained == [True]


def test_borrow_reraises_owner_failure_to_waiters() -> None:
    """Callers sharing a failed decode should see the decode's own exception."""
    cache = DecodeCache("shared-failure.7z")
    started = threading.Event()
    release = threading.Event()

    def failing_decode() -> bytes:
        started.set()
        release.wait(timeout=5)
        raise RuntimeError("source vanished")

    def borrow_once() -> None:
        with cache.borrow(0, failing_decode):
            pass

    with ThreadPoolExecutor(max_workers=2) as pool:
        owner = pool.submit(borrow_once)
        started.wait(timeout=5)
        waiter = pool.submit(borrow_once)
        release.set()
        errors = [type(future.exception(timeout=5)) for future in (owner, waiter)]

    assert errors == [RuntimeError, RuntimeError]
