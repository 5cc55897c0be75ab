"""A simulated serial console: a keyboard and a display.

Input and output go through host files (standard input and output by
default). The device is asynchronous: the keyboard is polled
periodically and raises an interrupt when a character arrives, and each
written character raises an interrupt when it has gone out.
"""

from __future__ import annotations

import locale
import os
import select
from typing import Callable

from .interrupt import Interrupt, IntType
from .stats import CONSOLE_TIME, Statistics

EOF = -1

_STDIN = 0
_STDOUT = 1


def _locale_is_utf8() -> bool:
    try:
        codeset = locale.nl_langinfo(locale.CODESET)
    except AttributeError:
        codeset = locale.getpreferredencoding(False)
    return codeset.upper().replace("_", "-") == "UTF-8"


def encode_output(ch: int, utf8: bool) -> bytes:
    """Return the bytes written to the display for character ``ch``.

    Latin-1 characters are encoded as UTF-8 when ``utf8`` is set; other
    characters beyond Latin-1 are dropped.
    """
    if -128 <= ch < 0:
        ch += 256
    if ch < 0x80 or not utf8:
        return bytes([ch & 0xFF])
    if ch < 0x100:
        return bytes([((ch & 0xC0) >> 6) | 0xC0, (ch & 0x3F) | 0x80])
    return b""


class Console:
    """A duplex character device driven by simulated interrupts."""

    _stdin_busy = False

    def __init__(
        self,
        read_path: str | os.PathLike[str] | None,
        write_path: str | os.PathLike[str] | None,
        on_read: Callable[[], None] | None,
        on_write: Callable[[], None] | None,
        interrupt: Interrupt,
        stats: Statistics | None = None,
        utf8: bool | None = None,
    ) -> None:
        if read_path is None:
            if Console._stdin_busy:
                raise RuntimeError("stdin already used for a console")
            Console._stdin_busy = True
            self._read_fd = _STDIN
        else:
            self._read_fd = os.open(read_path, os.O_RDWR)
        if write_path is None:
            self._write_fd = _STDOUT
        else:
            self._write_fd = os.open(write_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o666)

        self._on_read = on_read
        self._on_write = on_write
        self._interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self.utf8 = _locale_is_utf8() if utf8 is None else utf8
        self._put_busy = False
        self._incoming: int | None = None
        self._closed = False
        self._polling = True

        self._schedule_poll()

    @property
    def polling(self) -> bool:
        """True while the keyboard is still being polled."""
        return self._polling

    def _schedule_poll(self) -> None:
        self._interrupt.schedule(self.check_char_available, CONSOLE_TIME, IntType.CONSOLE_READ)

    def _poll(self) -> bool:
        readable, _, _ = select.select([self._read_fd], [], [], 0)
        return bool(readable)

    def _read_byte(self) -> int | None:
        data = os.read(self._read_fd, 1)
        return data[0] if data else None

    def _signal_read(self) -> None:
        if self._on_read is not None:
            self._on_read()

    def check_char_available(self) -> None:
        """Poll the keyboard, buffering a character if there is room for one."""
        if self._closed:
            self._polling = False
            return

        received = False
        if self._incoming is None and self._poll():
            c = self._read_byte()
            if c is None:
                self._incoming = EOF
                self._signal_read()
            elif not self.utf8 or not c & 0x80:
                self._incoming = c
                received = True
            else:
                # Only two-byte sequences encoding Latin-1 are kept; anything
                # else is dropped and polling stops, as on the real device.
                if (c & 0xE0) != 0xC0 or c & 0x1C:
                    self._polling = False
                    return
                d = self._read_byte()
                if d is None:
                    self._incoming = EOF
                    self._signal_read()
                elif (d & 0xC0) != 0x80:
                    self._polling = False
                    return
                else:
                    self._incoming = (c & 0x03) << 6 | d
                    received = True

        self._schedule_poll()

        if received:
            self.stats.num_console_chars_read += 1
            self._signal_read()

    def write_done(self) -> None:
        """Signal that the last character has gone out."""
        self._put_busy = False
        self.stats.num_console_chars_written += 1
        if self._on_write is not None:
            self._on_write()

    def rx(self) -> int:
        """Take the buffered character, or EOF at the end of the input."""
        if self._incoming is None:
            raise RuntimeError("no character has been received yet")
        ch = self._incoming
        self._incoming = None
        return ch

    def tx(self, ch: int) -> None:
        """Write a character and schedule the completion interrupt."""
        if self._put_busy:
            raise RuntimeError("a character is already being sent")
        data = encode_output(ch, self.utf8)
        if data:
            os.write(self._write_fd, data)
        self._put_busy = True
        self._interrupt.schedule(self.write_done, CONSOLE_TIME, IntType.CONSOLE_WRITE)

    def close(self) -> None:
        """Close the host files; the next poll stops polling for good."""
        if self._closed:
            return
        if self._read_fd != _STDIN:
            os.close(self._read_fd)
        else:
            Console._stdin_busy = False
        if self._write_fd != _STDOUT:
            os.close(self._write_fd)
        self._closed = True