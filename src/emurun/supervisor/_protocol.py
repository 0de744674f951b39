"""Protocol definitions for the supervisor system.

This module defines the interfaces that decouple the supervisor core from
where process output and status messages end up:
- ByteSink: Pass-through destination for raw child output
- EventSink: Consumer of process lifecycle events
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._models import ProcessEvent


@runtime_checkable
class ByteSink(Protocol):
    """Protocol for a pass-through destination of raw process output."""

    async def write(self, data: bytes) -> None:
        """Write a chunk of output unmodified.

        Args:
            data: The bytes read from the child.

        Raises:
            OSError: If the destination cannot be written to.
        """
        ...


@runtime_checkable
class EventSink(Protocol):
    """Protocol for consuming managed process lifecycle events."""

    async def write_event(self, event: ProcessEvent) -> None:
        """Write a process lifecycle event.

        Args:
            event: The lifecycle event to record.
        """
        ...
