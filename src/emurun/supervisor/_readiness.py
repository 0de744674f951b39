"""Readiness detection over a live output stream.

A managed process announces that it is ready by printing a sentinel
substring on its standard error. ReadinessWatcher sits between the
child's stderr pipe and the pass-through sink, scanning the accumulated
output until the sentinel shows up, then settles a ReadySignal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio

if TYPE_CHECKING:
    from ._protocol import ByteSink


@final
class ReadySignal:
    """One-shot readiness signal.

    Settled exactly once by a single producer, either fulfilled or failed,
    and observable by any number of waiters afterwards. Settling it a
    second time is a programming error.
    """

    __slots__ = ("_error", "_event")

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._error: Exception | None = None

    @property
    def settled(self) -> bool:
        """Return True once the signal was fulfilled or failed."""
        return self._event.is_set()

    @property
    def ready(self) -> bool:
        """Return True if the signal was fulfilled."""
        return self._event.is_set() and self._error is None

    def fulfill(self) -> None:
        """Mark the process as ready and wake every waiter.

        Raises:
            RuntimeError: If the signal was already settled.
        """
        self._settle()
        self._event.set()

    def fail(self, error: Exception) -> None:
        """Mark the process as never going to be ready.

        Waiters are woken and `wait()` raises `error`.

        Args:
            error: The exception waiters should see.

        Raises:
            RuntimeError: If the signal was already settled.
        """
        self._settle()
        self._error = error
        self._event.set()

    async def wait(self) -> None:
        """Block until the signal is settled.

        Returns immediately if the signal was already fulfilled.

        Raises:
            Exception: The error the signal was failed with, if any.
        """
        await self._event.wait()
        if self._error is not None:
            raise self._error

    def _settle(self) -> None:
        if self._event.is_set():
            msg = "Readiness signal already settled"
            raise RuntimeError(msg)


@final
class ReadinessWatcher:
    """Write-through sink that watches output for a readiness sentinel.

    Every chunk is forwarded to the pass-through sink first. Until the
    sentinel is seen, chunks are also appended to an internal buffer and
    the buffer is searched as a whole, so a sentinel split across writes is
    still found. Once the sentinel is found the signal is fulfilled, the
    buffer is released and scanning stops for good.

    Attributes:
        sentinel: The encoded sentinel being searched for.
    """

    __slots__ = ("_buffer", "_done", "_passthrough", "_signal", "sentinel")

    def __init__(
        self,
        passthrough: ByteSink,
        sentinel: str | bytes,
        signal: ReadySignal,
    ) -> None:
        """Initialize the watcher.

        Args:
            passthrough: Sink receiving every chunk unmodified.
            sentinel: Substring marking readiness. Strings are UTF-8 encoded.
            signal: One-shot signal to fulfill when the sentinel is seen.
        """
        self.sentinel = sentinel.encode() if isinstance(sentinel, str) else sentinel
        self._passthrough = passthrough
        self._signal = signal
        self._buffer = bytearray()
        self._done = False

    @property
    def done(self) -> bool:
        """Return True once the sentinel has been seen."""
        return self._done

    @property
    def passthrough(self) -> ByteSink:
        """Return the sink receiving forwarded chunks."""
        return self._passthrough

    @passthrough.setter
    def passthrough(self, sink: ByteSink) -> None:
        self._passthrough = sink

    @property
    def buffered(self) -> int:
        """Return the number of bytes held for scanning."""
        return len(self._buffer)

    async def write(self, data: bytes) -> int:
        """Forward a chunk and scan the accumulated output for the sentinel.

        Args:
            data: A chunk of the child's output.

        Returns:
            The number of bytes consumed, always `len(data)`.

        Raises:
            OSError: If the pass-through sink fails. The chunk is then not
                scanned.
        """
        await self._passthrough.write(data)
        if self._done:
            return len(data)

        # Only the tail of the old buffer can start a new match
        start = max(0, len(self._buffer) - len(self.sentinel) + 1)
        self._buffer.extend(data)
        if self._buffer.find(self.sentinel, start) != -1:
            self._done = True
            self._buffer = bytearray()
            self._signal.fulfill()

        return len(data)
