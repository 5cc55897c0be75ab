"""A simulated disk, stored in an ordinary host file.

Requests are carried out at once on the host file, but completion is
signalled through a disk interrupt after a simulated delay made of seek
time, rotational delay and transfer time. A track buffer lets reads on
the current track finish sooner.
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path
from typing import BinaryIO, Callable

from .interrupt import Interrupt, IntType
from .stats import ROTATION_TIME, SEEK_TIME, Statistics

logger = logging.getLogger(__name__)

SECTOR_SIZE = 128        # bytes per disk sector
SECTORS_PER_TRACK = 32   # sectors per disk track
NUM_TRACKS = 32          # tracks per disk
NUM_SECTORS = SECTORS_PER_TRACK * NUM_TRACKS

# Written at the front of the host file so that an unrelated file is not
# mistaken for a disk image.
MAGIC_NUMBER = 0x456789AB
MAGIC_SIZE = 4
DISK_SIZE = MAGIC_SIZE + NUM_SECTORS * SECTOR_SIZE

_MAGIC = struct.Struct("<I")
_WORDS = struct.Struct(f"<{SECTOR_SIZE // 4}I")


def format_sector(writing: bool, sector: int, data: bytes) -> str:
    """Render a sector transfer as text, one hexadecimal word at a time."""
    action = "Writing" if writing else "Reading"
    words = _WORDS.unpack(bytes(data))
    return f"{action} sector: {sector}\n" + "".join(f"{w:x} " for w in words) + "\n"


class Disk:
    """A single-surface disk that accepts one sector request at a time."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        on_done: Callable[[], None] | None,
        interrupt: Interrupt,
        stats: Statistics | None = None,
    ) -> None:
        self.path = Path(path)
        self._on_done = on_done
        self._interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self._last_sector = 0
        self._buffer_init = 0
        self._active = False
        self._file: BinaryIO | None = self._open()

    def _open(self) -> BinaryIO:
        logger.debug("Initializing the disk %s", self.path)
        if self.path.exists():
            f = open(self.path, "r+b")
            header = f.read(MAGIC_SIZE)
            if len(header) != MAGIC_SIZE or _MAGIC.unpack(header)[0] != MAGIC_NUMBER:
                f.close()
                raise ValueError(f"{self.path} is not a disk image")
            return f
        f = open(self.path, "w+b")
        f.write(_MAGIC.pack(MAGIC_NUMBER))
        # Write at the end so that reads never come up short.
        f.seek(DISK_SIZE - 4)
        f.write(bytes(4))
        f.flush()
        return f

    @property
    def active(self) -> bool:
        """True while a request is in progress."""
        return self._active

    def _handle(self) -> BinaryIO:
        if self._file is None:
            raise ValueError("disk is closed")
        return self._file

    def _check_request(self, sector: int) -> None:
        if self._active:
            raise RuntimeError("only one disk request may be in progress")
        if not 0 <= sector < NUM_SECTORS:
            raise ValueError(f"sector {sector} out of range")

    def read_request(self, sector: int) -> bytes:
        """Read one sector and schedule the completion interrupt."""
        ticks = self.compute_latency(sector, False)
        self._check_request(sector)
        f = self._handle()
        logger.debug("Reading from sector %d", sector)
        f.seek(SECTOR_SIZE * sector + MAGIC_SIZE)
        data = f.read(SECTOR_SIZE)
        if len(data) != SECTOR_SIZE:
            raise ValueError(f"{self.path} is truncated")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", format_sector(False, sector, data))
        self._start(sector, ticks)
        self.stats.num_disk_reads += 1
        return data

    def write_request(self, sector: int, data: bytes) -> None:
        """Write one whole sector and schedule the completion interrupt."""
        ticks = self.compute_latency(sector, True)
        self._check_request(sector)
        data = bytes(data)
        if len(data) != SECTOR_SIZE:
            raise ValueError(f"a sector holds exactly {SECTOR_SIZE} bytes")
        f = self._handle()
        logger.debug("Writing to sector %d", sector)
        f.seek(SECTOR_SIZE * sector + MAGIC_SIZE)
        f.write(data)
        f.flush()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", format_sector(True, sector, data))
        self._start(sector, ticks)
        self.stats.num_disk_writes += 1

    def _start(self, sector: int, ticks: int) -> None:
        self._active = True
        self._update_last(sector)
        self._interrupt.schedule(self.handle_interrupt, ticks, IntType.DISK)

    def handle_interrupt(self) -> None:
        """Mark the request finished and tell the kernel."""
        self._active = False
        if self._on_done is not None:
            self._on_done()

    def _time_to_seek(self, sector: int) -> tuple[int, int]:
        """Return the seek time and the wait until the next sector boundary."""
        new_track = sector // SECTORS_PER_TRACK
        old_track = self._last_sector // SECTORS_PER_TRACK
        seek = abs(new_track - old_track) * SEEK_TIME
        over = (self.stats.total_ticks + seek) % ROTATION_TIME
        rotation = ROTATION_TIME - over if over > 0 else 0
        return seek, rotation

    @staticmethod
    def _modulo_diff(to: int, start: int) -> int:
        """Sectors of rotational delay from ``start`` to ``to``."""
        return ((to % SECTORS_PER_TRACK) - (start % SECTORS_PER_TRACK)) % SECTORS_PER_TRACK

    def compute_latency(self, sector: int, writing: bool) -> int:
        """Ticks a request to ``sector`` would take from the head's position."""
        seek, rotation = self._time_to_seek(sector)
        time_after = self.stats.total_ticks + seek + rotation

        if (
            not writing
            and seek == 0
            and (time_after - self._buffer_init) // ROTATION_TIME
            > self._modulo_diff(sector, self._buffer_init // ROTATION_TIME)
        ):
            logger.debug("Request latency = %d", ROTATION_TIME)
            return ROTATION_TIME

        rotation += self._modulo_diff(sector, time_after // ROTATION_TIME) * ROTATION_TIME
        latency = seek + rotation + ROTATION_TIME
        logger.debug("Request latency = %d", latency)
        return latency

    def _update_last(self, sector: int) -> None:
        seek, rotation = self._time_to_seek(sector)
        if seek != 0:
            self._buffer_init = self.stats.total_ticks + seek + rotation
        self._last_sector = sector
        logger.debug("Updating last sector = %d, %d", self._last_sector, self._buffer_init)

    def close(self) -> None:
        """Close the host file."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> Disk:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()