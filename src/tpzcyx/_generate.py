"""Generation of synthetic TPZCYX datasets.

All of the convenience functions below go through `generate_dataset`, which
checks every argument before anything is allocated or written:

1. the dimensions must be positive integers,
2. the payload must fit the memory budget,
3. every pattern must have valid parameters.

Only then are unseeded random patterns given a seed, and the dataset written
one plane at a time.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import numpy as np

from tpzcyx._budget import check_budget, required_bytes
from tpzcyx._codec import write_dataset
from tpzcyx._errors import InvalidDimensionError, InvalidPatternParameter
from tpzcyx._metadata import (
    DEFAULT_PIXEL_SIZE_UM,
    DEFAULT_TIME_INTERVAL_S,
    Dimensions,
    Metadata,
)
from tpzcyx._patterns import (
    FLOAT32_MAX,
    Circles,
    GaussianSpots,
    Gradient,
    MovingSpots,
    Noise,
    SineWave,
    check_pattern,
    check_patterns,
    parse_pattern,
    render_plane,
    resolve_seed,
)

if TYPE_CHECKING:
    import os
    from collections.abc import Sequence
    from pathlib import Path

    from tpzcyx._patterns import PatternSpec

__all__ = [
    "DEFAULT_PATTERNS",
    "REALISTIC_CHANNELS",
    "default_patterns",
    "generate_2d_noise_file",
    "generate_custom_pattern_6d_file",
    "generate_dataset",
    "generate_mock_6d_file",
    "generate_realistic_dataset",
    "generate_small_test_file",
]

logger = logging.getLogger(__name__)

# fixed seeds, so that mock files are reproducible byte for byte
DEFAULT_PATTERNS: tuple[PatternSpec, ...] = (
    Gradient(min=0.0, max=1000.0, axis="x"),
    GaussianSpots(count=3, sigma=4.0, amplitude=800.0, seed=1),
    Circles(spacing=8.0, amplitude=500.0),
    MovingSpots(count=2, sigma=3.0, amplitude=600.0, velocity=(1.0, 0.5), seed=2),
    SineWave(frequency=2.0, amplitude=200.0, offset=300.0),
    Noise(min=50.0, max=200.0, seed=3),
)

REALISTIC_CHANNELS: tuple[tuple[str, PatternSpec], ...] = (
    ("Brightfield", Gradient(min=800.0, max=1200.0, axis="y")),
    (
        "GFP",
        MovingSpots(count=8, sigma=6.0, amplitude=900.0, velocity=(2.0, 1.0), seed=7),
    ),
    ("RFP", GaussianSpots(count=12, sigma=4.0, amplitude=600.0, seed=11)),
)


def default_patterns(n_channels: int) -> list[PatternSpec]:
    """Patterns for `n_channels` channels, cycling through `DEFAULT_PATTERNS`."""
    return [DEFAULT_PATTERNS[i % len(DEFAULT_PATTERNS)] for i in range(n_channels)]


def generate_dataset(
    path: str | os.PathLike,
    dims: Dimensions | Sequence[int],
    patterns: Sequence[PatternSpec | dict[str, Any]],
    *,
    channel_names: Sequence[str] | None = None,
    pixel_size_um: float = DEFAULT_PIXEL_SIZE_UM,
    time_interval_s: float = DEFAULT_TIME_INTERVAL_S,
    noise_level: float = 0.0,
    noise_seed: int | None = None,
) -> tuple[Path, Path]:
    """Generate a synthetic dataset, with one pattern per channel.

    Parameters
    ----------
    path : str | os.PathLike
        Base name of the dataset; `<path>.meta` and `<path>.data` are written.
    dims : Dimensions | Sequence[int]
        The (t, p, z, c, y, x) dimensions.
    patterns : Sequence[PatternSpec | dict]
        Exactly one pattern per channel.  Mappings are parsed with
        `parse_pattern`.
    channel_names : Sequence[str], optional
        One name per channel.  Defaults to "Channel1", "Channel2", ...
    pixel_size_um, time_interval_s : float
        Physical units recorded in the descriptor.
    noise_level : float
        If positive, uniform noise in `[-noise_level, noise_level]` is added to
        every voxel of every channel, and the result is clipped at 0.
    noise_seed : int, optional
        Seed for that noise.  None draws a new one.

    Returns
    -------
    tuple[Path, Path]
        Paths of the descriptor and payload files.

    Raises
    ------
    InvalidDimensionError
        If a dimension is not positive, or the number of patterns (or channel
        names) does not match the channel dimension.
    SizeOverflowError, MemoryLimitExceeded
        If the payload is too large.
    InvalidPatternParameter
        If a pattern, or `noise_level`, has parameters outside their valid range.
    ParseError
        If a channel name or physical unit would make an invalid descriptor.
    DatasetIOError
        If the files cannot be written.  No partial files are left behind.
    """
    if not isinstance(dims, Dimensions):
        dims = Dimensions.of(*dims)
    check_budget(required_bytes(*dims.shape))

    specs = [parse_pattern(p) for p in patterns]
    if len(specs) != dims.c:
        raise InvalidDimensionError(
            dims.shape,
            f"Got {len(specs)} pattern(s) for {dims.c} channel(s)",
        )
    if channel_names is not None and len(channel_names) != dims.c:
        raise InvalidDimensionError(
            dims.shape,
            f"Got {len(channel_names)} channel name(s) for {dims.c} channel(s)",
        )
    check_patterns(specs, dims)
    specs = [resolve_seed(spec) for spec in specs]
    overlay = _noise_overlay(noise_level, noise_seed, dims)

    metadata = Metadata.for_dimensions(
        dims,
        channel_names,
        pixel_size_um=pixel_size_um,
        time_interval_s=time_interval_s,
    )
    logger.debug(
        "Generating %s with patterns %s", dims, [spec.kind for spec in specs]
    )

    def planes(t: int, p: int, z: int, c: int) -> np.ndarray:
        plane = render_plane(specs[c], t, p, z, c, dims)
        if overlay is not None:
            noise = render_plane(overlay, t, p, z, c, dims)
            plane = np.clip(plane.astype(np.float64) + noise, 0.0, FLOAT32_MAX)
        return plane

    return write_dataset(path, metadata, planes)


def _noise_overlay(
    noise_level: float, noise_seed: int | None, dims: Dimensions
) -> PatternSpec | None:
    """The `Noise` pattern added on top of every channel, if any."""
    if not (math.isfinite(noise_level) and noise_level >= 0):
        raise InvalidPatternParameter(
            "noise", "noise_level", noise_level, "must be a finite number >= 0"
        )
    if noise_level == 0:
        return None
    overlay = parse_pattern(
        {"kind": "noise", "min": -noise_level, "max": noise_level, "seed": noise_seed}
    )
    check_pattern(overlay, dims)
    return resolve_seed(overlay)


def generate_mock_6d_file(
    path: str | os.PathLike, t: int, p: int, z: int, c: int, h: int, w: int
) -> tuple[Path, Path]:
    """Generate a dataset with a different default pattern in each channel."""
    dims = Dimensions.of(t, p, z, c, h, w)
    return generate_dataset(path, dims, default_patterns(c))


def generate_small_test_file(path: str | os.PathLike) -> tuple[Path, Path]:
    """Generate a small 3×1×2×2×32×32 dataset, handy as a test fixture."""
    return generate_mock_6d_file(path, 3, 1, 2, 2, 32, 32)


def generate_realistic_dataset(path: str | os.PathLike) -> tuple[Path, Path]:
    """Generate a 10×1×5×3×256×256 dataset resembling a 3 channel time-lapse."""
    names = [name for name, _ in REALISTIC_CHANNELS]
    patterns = [pattern for _, pattern in REALISTIC_CHANNELS]
    return generate_dataset(
        path, (10, 1, 5, 3, 256, 256), patterns, channel_names=names
    )


def generate_custom_pattern_6d_file(
    path: str | os.PathLike,
    t: int,
    p: int,
    z: int,
    h: int,
    w: int,
    patterns: Sequence[PatternSpec | dict[str, Any]],
    *,
    channel_names: Sequence[str] | None = None,
) -> tuple[Path, Path]:
    """Generate a dataset with one explicit pattern per channel.

    The channel count is `len(patterns)`; an empty sequence is an
    `InvalidDimensionError`.
    """
    dims = Dimensions.of(t, p, z, len(patterns), h, w)
    return generate_dataset(path, dims, patterns, channel_names=channel_names)


def generate_2d_noise_file(
    path: str | os.PathLike,
    w: int,
    h: int,
    min_value: float,
    max_value: float,
    *,
    seed: int | None = None,
) -> tuple[Path, Path]:
    """Generate a single channel, single frame dataset of uniform noise."""
    dims = Dimensions.of(1, 1, 1, 1, h, w)
    noise = {"kind": "noise", "min": min_value, "max": max_value, "seed": seed}
    return generate_dataset(path, dims, [noise], channel_names=["Noise"])
