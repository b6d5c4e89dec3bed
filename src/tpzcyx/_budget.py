"""Payload size computation and the memory budget.

The same two functions guard every path that may allocate a payload-sized
buffer: generation checks the budget before the first plane is rendered, and
loading checks it before the payload is read into memory.
"""

from __future__ import annotations

import operator

from tpzcyx._errors import InvalidDimensionError, MemoryLimitExceeded, SizeOverflowError

__all__ = [
    "BYTES_PER_VOXEL",
    "MAX_PAYLOAD_BYTES",
    "U64_MAX",
    "check_budget",
    "check_dimensions",
    "fits_budget",
    "required_bytes",
]

BYTES_PER_VOXEL = 4
"""Size of one IEEE-754 single precision voxel."""
MAX_PAYLOAD_BYTES = 1 << 30
"""Hard ceiling (1 GiB) on any payload held in memory."""
U64_MAX = (1 << 64) - 1


def check_dimensions(*dims: object) -> tuple[int, ...]:
    """Return `dims` as a tuple of ints, or raise `InvalidDimensionError`.

    Booleans and floats are rejected rather than coerced.
    """
    if len(dims) != 6:
        raise InvalidDimensionError(
            dims, f"Expected 6 dimensions (t, p, z, c, y, x), got {len(dims)}"
        )
    for value in dims:
        if isinstance(value, bool):
            raise InvalidDimensionError(dims)
        try:
            as_int = operator.index(value)
        except TypeError:
            raise InvalidDimensionError(dims) from None
        if as_int <= 0:
            raise InvalidDimensionError(dims)
    return tuple(operator.index(v) for v in dims)  # type: ignore[call-overload]


def required_bytes(t: int, p: int, z: int, c: int, y: int, x: int) -> int:
    """Number of payload bytes for the given TPZCYX dimensions.

    Raises
    ------
    InvalidDimensionError
        If any dimension is not a positive integer.
    SizeOverflowError
        If the byte count does not fit in an unsigned 64 bit integer.
    """
    dims = check_dimensions(t, p, z, c, y, x)
    total = BYTES_PER_VOXEL
    for n in dims:
        total *= n
        if total > U64_MAX:
            raise SizeOverflowError(dims)
    return total


def check_budget(n_bytes: int) -> None:
    """Raise `MemoryLimitExceeded` if `n_bytes` is above `MAX_PAYLOAD_BYTES`."""
    if n_bytes > MAX_PAYLOAD_BYTES:
        raise MemoryLimitExceeded(n_bytes, MAX_PAYLOAD_BYTES)


def fits_budget(n_bytes: int) -> bool:
    return n_bytes <= MAX_PAYLOAD_BYTES
