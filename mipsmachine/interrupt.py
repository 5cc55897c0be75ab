"""Simulated interrupt hardware and the simulated clock.

Time advances only when interrupts are re-enabled, when a user
instruction is executed, or when the machine is idle and the clock is
rolled forward to the next pending interrupt.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, TextIO

from .stats import SYSTEM_TICK, USER_TICK, Statistics

logger = logging.getLogger(__name__)


class IntStatus(Enum):
    """Whether interrupts are disabled or enabled."""

    OFF = "off"
    ON = "on"


class MachineStatus(Enum):
    """What the simulated CPU is doing."""

    IDLE = "idle"
    SYSTEM = "system"
    USER = "user"


class IntType(Enum):
    """The hardware device that raised an interrupt."""

    TIMER = "timer"
    DISK = "disk"
    CONSOLE_WRITE = "console write"
    CONSOLE_READ = "console read"
    NETWORK_SEND = "network send"
    NETWORK_RECV = "network recv"


@dataclass
class PendingInterrupt:
    """An interrupt scheduled to fire at simulated time ``when``."""

    handler: Callable[[], None] = field(compare=False)
    when: int
    kind: IntType = field(compare=False)


class PowerDown(Exception):
    """Raised when the simulated machine shuts down."""


class Interrupt:
    """Interrupt controller and simulated clock."""

    def __init__(
        self,
        stats: Statistics | None = None,
        on_yield: Callable[[], None] | None = None,
        on_delayed_load: Callable[[], None] | None = None,
        output: TextIO | None = None,
    ) -> None:
        self.stats = stats if stats is not None else Statistics()
        self._on_yield = on_yield
        self._on_delayed_load = on_delayed_load
        self._output = output
        self._level = IntStatus.OFF
        self._pending: list[tuple[int, int, PendingInterrupt]] = []
        self._sequence = itertools.count()
        self._in_handler = False
        self._yield_on_return = False
        self.status = MachineStatus.SYSTEM

    @property
    def level(self) -> IntStatus:
        """Whether interrupts are currently enabled."""
        return self._level

    @property
    def in_handler(self) -> bool:
        """True while an interrupt handler is running."""
        return self._in_handler

    @property
    def pending(self) -> list[PendingInterrupt]:
        """The scheduled interrupts, earliest first."""
        return [entry[2] for entry in sorted(self._pending)]

    @property
    def _out(self) -> TextIO:
        return self._output if self._output is not None else sys.stdout

    def _insert(self, pending: PendingInterrupt) -> None:
        heapq.heappush(self._pending, (pending.when, next(self._sequence), pending))

    def _change_level(self, old: IntStatus, now: IntStatus) -> None:
        self._level = now
        logger.debug("\tinterrupts: %s -> %s", old.value, now.value)

    def set_level(self, now: IntStatus) -> IntStatus:
        """Enable or disable interrupts and return the previous level.

        Enabling interrupts advances simulated time by one tick.
        """
        old = self._level
        if now is IntStatus.ON and self._in_handler:
            raise RuntimeError("interrupt handlers may not enable interrupts")
        self._change_level(old, now)
        if now is IntStatus.ON and old is IntStatus.OFF:
            self.one_tick()
        return old

    def enable(self) -> None:
        """Turn interrupts on."""
        self.set_level(IntStatus.ON)

    def one_tick(self) -> None:
        """Advance simulated time and fire any interrupts that are due."""
        old = self.status
        if self.status is MachineStatus.SYSTEM:
            self.stats.total_ticks += SYSTEM_TICK
            self.stats.system_ticks += SYSTEM_TICK
        else:
            self.stats.total_ticks += USER_TICK
            self.stats.user_ticks += USER_TICK
        logger.debug("== Tick %d ==", self.stats.total_ticks)

        self._change_level(IntStatus.ON, IntStatus.OFF)
        while self.check_if_due(False):
            pass
        self._change_level(IntStatus.OFF, IntStatus.ON)

        if self._yield_on_return:
            self._yield_on_return = False
            self.status = MachineStatus.SYSTEM
            if self._on_yield is not None:
                self._on_yield()
            self.status = old

    def yield_on_return(self) -> None:
        """Ask for a context switch once the current handler returns."""
        if not self._in_handler:
            raise RuntimeError("yield_on_return called outside an interrupt handler")
        self._yield_on_return = True

    def idle(self) -> None:
        """Roll the clock forward to the next interrupt, or power down."""
        logger.debug("Machine idling; checking for interrupts.")
        self.status = MachineStatus.IDLE
        if self.check_if_due(True):
            while self.check_if_due(False):
                pass
            self._yield_on_return = False
            self.status = MachineStatus.SYSTEM
            return

        logger.debug("Machine idle.  No interrupts to do.")
        out = self._out
        out.write("No threads ready or runnable, and no pending interrupts.\n")
        out.write("Assuming the program completed.\n")
        self.powerdown()

    def powerdown(self) -> None:
        """Print the statistics and shut the machine down by raising PowerDown."""
        out = self._out
        out.write("Machine going down!\n\n")
        self.stats.print_summary(out)
        out.flush()
        raise PowerDown("machine going down")

    def schedule(self, handler: Callable[[], None], from_now: int, kind: IntType) -> None:
        """Arrange for ``handler`` to run ``from_now`` ticks in the future."""
        when = self.stats.total_ticks + from_now
        logger.debug("Scheduling interrupt handler the %s at time = %d", kind.value, when)
        if from_now <= 0:
            raise ValueError("interrupts must be scheduled in the future")
        self._insert(PendingInterrupt(handler=handler, when=when, kind=kind))

    def check_if_due(self, advance_clock: bool) -> bool:
        """Fire the earliest pending interrupt if it is due.

        With ``advance_clock`` the clock jumps forward to it instead.
        Returns True if a handler was run.
        """
        old = self.status
        if self._level is not IntStatus.OFF:
            raise RuntimeError("interrupts must be disabled to run a handler")

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", self._state_text())

        if not self._pending:
            return False
        when, _, to_occur = heapq.heappop(self._pending)

        if advance_clock and when > self.stats.total_ticks:
            self.stats.idle_ticks += when - self.stats.total_ticks
            self.stats.total_ticks = when
        elif when > self.stats.total_ticks:
            self._insert(to_occur)
            return False

        if (
            self.status is MachineStatus.IDLE
            and to_occur.kind is IntType.TIMER
            and not self._pending
        ):
            self._insert(to_occur)
            return False

        logger.debug(
            "Invoking interrupt handler for the %s at time %d",
            to_occur.kind.value,
            to_occur.when,
        )
        if self._on_delayed_load is not None and self.status is MachineStatus.USER:
            self._on_delayed_load()

        self._in_handler = True
        self.status = MachineStatus.SYSTEM
        try:
            to_occur.handler()
        finally:
            self.status = old
            self._in_handler = False
        return True

    def _state_text(self) -> str:
        lines = [
            f"Time: {self.stats.total_ticks}, interrupts {self._level.value}",
            "Pending interrupts:",
        ]
        lines.extend(
            f"Interrupt handler {p.kind.value}, scheduled at {p.when}"
            for p in self.pending
        )
        lines.append("End of pending interrupts")
        return "".join(line + "\n" for line in lines)

    def dump_state(self) -> None:
        """Print the clock, the interrupt level and every pending interrupt."""
        out = self._out
        out.write(self._state_text())
        out.flush()