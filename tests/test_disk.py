import struct

import pytest

from mipsmachine.disk import (
    DISK_SIZE,
    MAGIC_NUMBER,
    NUM_SECTORS,
    SECTOR_SIZE,
    Disk,
    format_sector,
)
from mipsmachine.interrupt import Interrupt
from mipsmachine.stats import ROTATION_TIME


@pytest.fixture
def interrupt():
    return Interrupt()


@pytest.fixture
def done():
    return []


@pytest.fixture
def disk(tmp_path, interrupt, done):
    with Disk(tmp_path / "DISK", lambda: done.append(True), interrupt) as d:
        yield d


def _finish(interrupt):
    return interrupt.check_if_due(True)


def test_new_image_has_magic_and_full_size(tmp_path, interrupt):
    path = tmp_path / "DISK"
    Disk(path, None, interrupt).close()
    raw = path.read_bytes()
    assert len(raw) == DISK_SIZE
    assert struct.unpack("<I", raw[:4])[0] == MAGIC_NUMBER


def test_rejects_foreign_file(tmp_path, interrupt):
    path = tmp_path / "notadisk"
    path.write_bytes(b"hello world")
    with pytest.raises(ValueError):
        Disk(path, None, interrupt)


def test_write_then_read_round_trip(disk, interrupt, done):
    payload = bytes(range(SECTOR_SIZE))
    disk.write_request(7, payload)
    assert disk.active
    assert _finish(interrupt)
    assert done == [True]
    assert not disk.active
    assert disk.read_request(7) == payload
    assert _finish(interrupt)
    assert done == [True, True]
    assert interrupt.stats.num_disk_writes == 1
    assert interrupt.stats.num_disk_reads == 1


def test_contents_survive_reopen(tmp_path, interrupt):
    path = tmp_path / "DISK"
    payload = bytes([0xAB]) * SECTOR_SIZE
    with Disk(path, None, interrupt) as d:
        d.write_request(NUM_SECTORS - 1, payload)
        _finish(interrupt)
    with Disk(path, None, interrupt) as d:
        assert d.read_request(NUM_SECTORS - 1) == payload
        assert d.read_request is not None
        _finish(interrupt)
        assert d.read_request(0) == bytes(SECTOR_SIZE)


def test_only_one_request_at_a_time(disk):
    disk.read_request(0)
    with pytest.raises(RuntimeError):
        disk.read_request(1)


@pytest.mark.parametrize("sector", [-1, NUM_SECTORS])
def test_sector_out_of_range(disk, sector):
    with pytest.raises(ValueError):
        disk.read_request(sector)


def test_write_requires_whole_sector(disk):
    with pytest.raises(ValueError):
        disk.write_request(0, b"short")
    assert not disk.active


def test_closed_disk_refuses_requests(tmp_path, interrupt):
    d = Disk(tmp_path / "DISK", None, interrupt)
    d.close()
    with pytest.raises(ValueError):
        d.read_request(0)


def test_latency_same_sector_is_one_rotation(disk):
    assert disk.compute_latency(0, True) == ROTATION_TIME
    assert disk.compute_latency(0, False) == ROTATION_TIME


def test_latency_next_sector_waits_one_more_rotation(disk):
    assert disk.compute_latency(1, True) == 2 * ROTATION_TIME


def test_track_buffer_speeds_up_reads(disk, interrupt):
    disk.read_request(0)
    _finish(interrupt)
    interrupt.stats.total_ticks = 5000
    read = disk.compute_latency(3, False)
    write = disk.compute_latency(3, True)
    assert read == ROTATION_TIME
    assert write > read


def test_format_sector_writing():
    text = format_sector(True, 3, bytes(SECTOR_SIZE))
    assert text == "Writing sector: 3\n" + "0 " * (SECTOR_SIZE // 4) + "\n"


def test_format_sector_reading_uses_hex_words():
    data = struct.pack("<I", MAGIC_NUMBER) + bytes(SECTOR_SIZE - 4)
    text = format_sector(False, 5, data)
    lines = text.splitlines()
    assert lines[0] == "Reading sector: 5"
    assert lines[1].split()[0] == "456789ab"