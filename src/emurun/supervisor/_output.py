"""Output sink implementations for the supervisor system.

This module provides concrete implementations of the ByteSink and
EventSink protocols for mirroring child output and displaying
lifecycle events.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, final

from rich.console import Console
from rich.style import Style
from rich.text import Text

from ._models import ProcessEventType

if TYPE_CHECKING:
    from ._models import ProcessEvent


@final
class DiscardSink:
    """Byte sink that drops everything written to it."""

    __slots__ = ()

    async def write(self, data: bytes) -> None:
        """Discard a chunk of output."""


@final
class StreamSink:
    """Byte sink that mirrors output to a binary stream, such as stderr."""

    __slots__ = ("_stream",)

    def __init__(self, stream: BinaryIO) -> None:
        """Initialize the sink.

        Args:
            stream: Binary stream receiving the output.
        """
        self._stream = stream

    async def write(self, data: bytes) -> None:
        """Write a chunk of output and flush it.

        Args:
            data: The bytes read from the child.
        """
        _ = self._stream.write(data)
        self._stream.flush()


@final
class ConsoleEventSink:
    """Event sink that prints lifecycle events to a rich console.

    Formats events as `[name] EVENT (pid=...) - message` with color coding
    by event type.
    """

    __slots__ = ("_console", "_event_styles")

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the event sink.

        Args:
            console: Rich Console instance for output. If None, creates one
                writing to standard error so the target's output stays clean.
        """
        self._console = console or Console(stderr=True)
        self._event_styles: dict[ProcessEventType, Style] = {
            ProcessEventType.STARTED: Style(color="cyan"),
            ProcessEventType.READY: Style(color="green", bold=True),
            ProcessEventType.STOPPED: Style(color="yellow"),
            ProcessEventType.FAILED: Style(color="red", bold=True),
        }

    async def write_event(self, event: ProcessEvent) -> None:
        """Write a process lifecycle event with special formatting.

        Args:
            event: The lifecycle event to record.
        """
        style = self._event_styles.get(event.event_type, Style())

        text = Text()
        _ = text.append(f"[{event.process_name}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(event.event_type.value.upper(), style=style)

        if event.pid is not None:
            _ = text.append(f" (pid={event.pid})", style=Style(dim=True))

        if event.exit_code is not None:
            _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))

        if event.message:
            _ = text.append(f" - {event.message}", style=style)

        self._console.print(text, soft_wrap=True)
