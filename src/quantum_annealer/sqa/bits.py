"""Conversions between packed bits, 0/1 bit arrays and -1/+1 spins.

Spin +1 maps to bit 1 and spin -1 to bit 0 (``x = (q + 1) / 2``). Bit ``j``
of a packed integer is element ``j`` of the unpacked vector.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

from quantum_annealer.sqa.errors import ErrorKind, ErrorReporter, default_reporter

# Packed words are unsigned 64-bit; the top bit is kept free so that
# ``b_end = 1 << n`` stays representable.
MAX_PACKED_BITS = 63


def unpack_bits(
    packed: int,
    n: int,
    out: NDArray | None = None,
    reporter: ErrorReporter = default_reporter,
) -> NDArray[np.int8]:
    """Unpack the low ``n`` bits of ``packed`` into a 0/1 array.

    Writes into ``out`` when given (its length must be ``n``).
    """
    reporter.abort_if(
        n < 0 or n > MAX_PACKED_BITS,
        ErrorKind.INVALID_LENGTH,
        f"bit length {n} out of range [0, {MAX_PACKED_BITS}]",
    )
    reporter.abort_if(
        packed < 0, ErrorKind.INVALID_LENGTH, f"packed value {packed} is negative"
    )
    word = np.uint64(packed & ((1 << n) - 1))
    bits = (word >> np.arange(n, dtype=np.uint64)) & np.uint64(1)
    if out is None:
        return bits.astype(np.int8)
    reporter.abort_if(
        out.shape != (n,),
        ErrorKind.SHAPE_MISMATCH,
        f"output buffer shape {out.shape} != ({n},)",
    )
    out[...] = bits
    return out


def pack_bits(
    bits: ArrayLike, reporter: ErrorReporter = default_reporter
) -> int:
    """Inverse of :func:`unpack_bits`."""
    bits = np.asarray(bits)
    reporter.abort_if(
        bits.ndim != 1, ErrorKind.SHAPE_MISMATCH, "pack_bits expects a vector"
    )
    reporter.abort_if(
        bits.size > MAX_PACKED_BITS,
        ErrorKind.INVALID_LENGTH,
        f"bit length {bits.size} exceeds {MAX_PACKED_BITS}",
    )
    packed = 0
    for j in np.flatnonzero(bits):
        packed |= 1 << int(j)
    return packed


def x_from_q(q: ArrayLike) -> NDArray[np.int8]:
    """Spins (-1/+1) to bits (0/1), shape preserved."""
    q = np.asarray(q)
    return ((q + 1) // 2).astype(np.int8)


def q_from_x(x: ArrayLike) -> NDArray[np.int8]:
    """Bits (0/1) to spins (-1/+1), shape preserved."""
    x = np.asarray(x)
    return (2 * x - 1).astype(np.int8)


def create_bits_sequence(
    b_begin: int,
    b_end: int,
    n: int,
    dtype: np.dtype | type = np.int8,
    reporter: ErrorReporter = default_reporter,
) -> NDArray:
    """Unpacked bits of every integer in ``[b_begin, b_end)``, one per row.

    Used for exhaustive enumeration of small problems.
    """
    reporter.abort_if(
        n < 0 or n > MAX_PACKED_BITS,
        ErrorKind.INVALID_LENGTH,
        f"bit length {n} out of range [0, {MAX_PACKED_BITS}]",
    )
    reporter.abort_if(
        b_begin < 0 or b_end < b_begin,
        ErrorKind.INVALID_LENGTH,
        f"invalid range [{b_begin}, {b_end})",
    )
    values = np.arange(b_begin, b_end, dtype=np.uint64)
    shifts = np.arange(n, dtype=np.uint64)
    bits = (values[:, None] >> shifts[None, :]) & np.uint64(1)
    return bits.astype(dtype)
