"""Integer helpers for the simulated 32-bit processor."""

from __future__ import annotations

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF
SIGN_BIT = 0x80000000


def to_unsigned(value: int) -> int:
    """Return the low 32 bits of ``value`` as an unsigned integer."""
    return value & _MASK32


def to_signed(value: int) -> int:
    """Return the low 32 bits of ``value`` as a two's-complement integer."""
    value &= _MASK32
    return value - (1 << 32) if value & SIGN_BIT else value


def mult(a: int, b: int, signed: bool) -> tuple[int, int]:
    """Multiply two 32-bit words as the R2000 does.

    Returns the double-length result as ``(hi, lo)``, each a signed
    32-bit integer as it is kept in a register.
    """
    if signed:
        product = to_signed(a) * to_signed(b)
    else:
        product = to_unsigned(a) * to_unsigned(b)
    product &= _MASK64
    return to_signed(product >> 32), to_signed(product)