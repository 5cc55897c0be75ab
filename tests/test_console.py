import os

import pytest

from mipsmachine.console import EOF, Console, encode_output
from mipsmachine.interrupt import Interrupt, IntType
from mipsmachine.stats import CONSOLE_TIME


class Recorder:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


@pytest.fixture
def interrupt():
    return Interrupt(output=open(os.devnull, "w"))


@pytest.fixture
def make_console(tmp_path, interrupt):
    consoles = []

    def factory(content: bytes, on_read=None, on_write=None, utf8=True):
        src = tmp_path / f"in{len(consoles)}"
        src.write_bytes(content)
        dst = tmp_path / f"out{len(consoles)}"
        console = Console(src, dst, on_read, on_write, interrupt, utf8=utf8)
        consoles.append(console)
        return console, dst

    yield factory
    for console in consoles:
        console.close()


def test_encode_ascii():
    assert encode_output(ord("A"), True) == b"A"


def test_encode_latin1_as_utf8():
    assert encode_output(0xE9, True) == "é".encode("utf-8")


def test_encode_signed_char():
    assert encode_output(0xE9 - 256, True) == encode_output(0xE9, True)


def test_encode_eight_bit_locale():
    assert encode_output(0xE9, False) == bytes([0xE9])


def test_encode_drops_non_latin1():
    assert encode_output(0x20AC, True) == b""


def test_read_characters_in_order(make_console, interrupt):
    got = Recorder()
    console, _ = make_console(b"ab", on_read=got)
    console.check_char_available()
    console.check_char_available()
    assert got.calls == 1
    assert console.rx() == ord("a")
    console.check_char_available()
    assert console.rx() == ord("b")
    assert interrupt.stats.num_console_chars_read == 2


def test_end_of_input(make_console, interrupt):
    got = Recorder()
    console, _ = make_console(b"", on_read=got)
    console.check_char_available()
    assert console.rx() == EOF
    assert got.calls == 1
    assert interrupt.stats.num_console_chars_read == 0


def test_utf8_latin1_input(make_console):
    console, _ = make_console("é".encode("utf-8"))
    console.check_char_available()
    assert console.rx() == 0xE9


def test_eight_bit_input_reads_raw_byte(make_console):
    data = "é".encode("utf-8")
    console, _ = make_console(data, utf8=False)
    console.check_char_available()
    assert console.rx() == data[0]


def test_non_latin1_input_dropped(make_console, interrupt):
    got = Recorder()
    console, _ = make_console("€".encode("utf-8"), on_read=got)
    before = len(interrupt.pending)
    console.check_char_available()
    assert got.calls == 0
    assert len(interrupt.pending) == before
    assert not console.polling
    with pytest.raises(RuntimeError):
        console.rx()


def test_rx_without_character(make_console):
    console, _ = make_console(b"x")
    with pytest.raises(RuntimeError):
        console.rx()


def test_tx_writes_and_completes(make_console, interrupt):
    done = Recorder()
    console, out = make_console(b"", on_write=done)
    console.tx(ord("A"))
    with pytest.raises(RuntimeError):
        console.tx(ord("B"))
    console.write_done()
    console.tx(0xE9)
    assert out.read_bytes() == b"A" + "é".encode("utf-8")
    assert done.calls == 1
    assert interrupt.stats.num_console_chars_written == 1
    assert IntType.CONSOLE_WRITE in [p.kind for p in interrupt.pending]


def test_poll_through_interrupts(make_console, interrupt):
    got = Recorder()
    console, _ = make_console(b"z", on_read=got)
    assert interrupt.check_if_due(True)
    assert interrupt.stats.total_ticks == CONSOLE_TIME
    assert got.calls == 1
    assert console.rx() == ord("z")


def test_close_stops_polling(make_console, interrupt):
    console, _ = make_console(b"q")
    console.close()
    before = len(interrupt.pending)
    console.check_char_available()
    assert len(interrupt.pending) == before
    assert not console.polling


def test_missing_input_file(tmp_path, interrupt):
    with pytest.raises(FileNotFoundError):
        Console(tmp_path / "absent", tmp_path / "out", None, None, interrupt)


def test_stdin_used_once(interrupt):
    first = Console(None, None, None, None, interrupt)
    try:
        with pytest.raises(RuntimeError):
            Console(None, None, None, None, interrupt)
    finally:
        first.close()
    second = Console(None, None, None, None, interrupt)
    second.close()
    assert second.polling