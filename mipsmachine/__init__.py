"""Simulated workstation devices: interrupt controller and clock, disk, console, 32-bit arithmetic."""

__version__ = "0.1.0"
__all__ = ["alu", "console", "disk", "interrupt", "stats"]