# mipsmachine

Simulated hardware for a small teaching operating system. It covers an interrupt
controller with a simulated clock, a sector-addressed disk, a serial console and
helpers for 32-bit integer arithmetic. Time is counted in ticks. It advances only
when interrupts are re-enabled, when the owner of the clock calls `one_tick()`, or
when the machine is idle and the clock is rolled forward. At those moments any
device interrupts that have come due are fired.

## Modules

- `mipsmachine.stats`: the `Statistics` dataclass of tick and I/O counters, with
  `summary()` and `print_summary(file)`. It also holds the timing constants
  (`USER_TICK`, `SYSTEM_TICK`, `ROTATION_TIME`, `SEEK_TIME`, `CONSOLE_TIME`,
  `NETWORK_TIME`, `TIMER_TICKS`).
- `mipsmachine.interrupt`: `Interrupt`, the interrupt controller and clock. Its
  methods are `schedule`, `set_level`, `enable`, `one_tick`, `idle`,
  `check_if_due`, `yield_on_return`, `powerdown` and `dump_state`. The enums
  `IntStatus`, `MachineStatus` and `IntType` go with it, and so does the
  `PendingInterrupt` record. `powerdown()` prints the statistics and raises
  `PowerDown`. `idle()` does the same when nothing is left to do.
- `mipsmachine.disk`: `Disk`, a disk of 1024 sectors of 128 bytes, kept in a host
  file that starts with a magic number. It models seek, rotation and track-buffer
  latency (`compute_latency`). Each request signals completion through a disk
  interrupt. `format_sector` gives a hex dump of a sector.
- `mipsmachine.console`: `Console`, a duplex character device backed by host files,
  or by standard input and output when no path is given. The keyboard is polled
  through console-read interrupts. `encode_output` encodes Latin-1 output as UTF-8
  when the terminal uses UTF-8.
- `mipsmachine.alu`: 32-bit helpers `to_signed`, `to_unsigned`, and `mult`, which
  returns the double-length product as `(hi, lo)`.

## Example

```python
from mipsmachine.stats import Statistics
from mipsmachine.interrupt import Interrupt, IntStatus, IntType

stats = Statistics()
interrupt = Interrupt(stats, on_yield=lambda: None, on_delayed_load=None, output=None)

fired = []
interrupt.schedule(lambda: fired.append(stats.total_ticks), 50, IntType.TIMER)
for _ in range(6):
    interrupt.set_level(IntStatus.OFF)
    interrupt.set_level(IntStatus.ON)   # each re-enable advances the clock by 10 ticks

print(fired)            # [50]
print(stats.summary())
```

A disk request finishes when its interrupt fires:

```python
from mipsmachine.disk import Disk, SECTOR_SIZE

done = []
with Disk("disk.img", lambda: done.append(True), interrupt) as disk:
    disk.write_request(3, bytes(range(SECTOR_SIZE)))
    while not done:
        interrupt.set_level(IntStatus.OFF)
        interrupt.set_level(IntStatus.ON)
    done.clear()
    data = disk.read_request(3)
```

Arithmetic and output helpers:

```python
from mipsmachine.alu import mult
from mipsmachine.console import encode_output

mult(-2, 3, True)           # (-1, -6)
encode_output(0xE9, True)   # b'\xc3\xa9'
```

## What it does not do

The package provides devices and a clock only. It has no processor: it cannot
decode or execute instructions, and it holds no registers or main memory. The
`on_delayed_load` hook of `Interrupt` is there for whoever supplies those. It has
no network device, and it has no command-line program. You use it as a library.

## Installing and testing

```
pip install .
pip install ".[test]"
pytest
```