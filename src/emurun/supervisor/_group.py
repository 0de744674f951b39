"""Process-group controller.

The supervisor and every child it spawns share one OS process group. The
supervisor makes itself the leader of a fresh group before spawning
anything, and children inherit that group, so a single `killpg` reaches
every emulator, every helper an emulator forked and the target command.

Because the supervisor is itself a member, any signal it sends to the group
comes back to it. The controller remembers what it sent and drops those
echoes in the forwarding loop, so forwarding never recurses.
"""

from __future__ import annotations

import os
import signal
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from emurun.utils import create_null_logger

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

FORWARDED_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGINT,
    signal.SIGTERM,
    signal.SIGHUP,
)


@final
class ProcessGroup:
    """Explicit capability to signal the supervised process group.

    Attributes:
        pgid: The process group id, once established.
        received: Signals received from outside and forwarded, in order.
    """

    __slots__ = ("_echoes", "_forwarding", "_logger", "pgid", "received")

    def __init__(self, logger: FilteringBoundLogger | None = None) -> None:
        """Initialize an unestablished controller.

        Args:
            logger: Structured logger. Logging is disabled if None.
        """
        self.pgid: int | None = None
        self.received: list[signal.Signals] = []
        self._echoes: set[signal.Signals] = set()
        self._forwarding = False
        self._logger = logger or create_null_logger()

    @property
    def forwarding(self) -> bool:
        """Return True while the signal forwarder is installed."""
        return self._forwarding

    def establish(self) -> int:
        """Make the current process the leader of its own process group.

        A process that already leads its group (the usual case when started
        from a job-control shell) keeps its group, which also keeps it in
        the terminal's foreground.

        Returns:
            The process group id children will inherit.

        Raises:
            OSError: If the group cannot be changed.
        """
        pid = os.getpid()
        if os.getpgrp() != pid:
            os.setpgid(0, 0)
        self.pgid = os.getpgrp()
        self._logger.debug("process_group_established", pgid=self.pgid)
        return self.pgid

    def send(self, sig: signal.Signals) -> None:
        """Send a signal to every process in the group.

        Args:
            sig: The signal to deliver.

        Raises:
            RuntimeError: If the group was not established, or if the
                supervisor is a member and no forwarder is installed to
                absorb the echo.
            OSError: If the signal cannot be delivered.
        """
        if self.pgid is None:
            msg = "Process group has not been established"
            raise RuntimeError(msg)
        if self.pgid == os.getpgrp() and not self._forwarding:
            msg = "Refusing to signal own process group without a forwarder"
            raise RuntimeError(msg)

        self._echoes.add(sig)
        try:
            os.killpg(self.pgid, sig)
        except OSError:
            self._echoes.discard(sig)
            raise
        self._logger.debug("process_group_signalled", pgid=self.pgid, signal=sig.name)

    async def forward_signals(
        self,
        *,
        task_status: anyio.abc.TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Forward SIGINT, SIGTERM and SIGHUP to the whole group.

        Runs until cancelled. The supervisor is not terminated by forwarded
        signals: the children die, the target command returns and the
        regular teardown path runs.

        Args:
            task_status: Reports readiness once the handlers are installed.
        """
        with anyio.open_signal_receiver(*FORWARDED_SIGNALS) as signals:
            self._forwarding = True
            task_status.started()
            try:
                async for signum in signals:
                    if signum in self._echoes:
                        self._echoes.discard(signum)
                        continue

                    self.received.append(signum)
                    self._logger.info("signal_forwarded", signal=signum.name)
                    try:
                        self.send(signum)
                    except OSError as e:
                        self._logger.error(  # noqa: TRY400
                            "signal_forward_failed", signal=signum.name, error=str(e)
                        )
            finally:
                self._forwarding = False
