"""Validation and inspection of stored datasets.

`validate` only checks that the descriptor parses and that the payload has the
size it describes.  `inspect` additionally loads the payload, if it fits the
memory budget, and computes per-channel statistics.  Both are read-only.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from tpzcyx._budget import MAX_PAYLOAD_BYTES, fits_budget
from tpzcyx._codec import check_payload, dataset_paths, load_dataset
from tpzcyx._errors import TpzcyxError

if TYPE_CHECKING:
    import os
    from pathlib import Path

    from tpzcyx._dataset import Dataset
    from tpzcyx._metadata import Dimensions

__all__ = [
    "ChannelStats",
    "Report",
    "Summary",
    "inspect",
    "is_valid",
    "load_and_inspect_6d_file",
    "print_report",
    "render_report",
    "validate",
    "validate_6d_file",
]

logger = logging.getLogger(__name__)

STATS_CHUNK_VOXELS = 1 << 20
"""Voxels converted to float64 at a time when computing channel statistics."""


@dataclass(frozen=True)
class Summary:
    """Structural facts about a dataset that passed validation."""

    meta_path: Path
    data_path: Path
    dimensions: Dimensions
    byte_size: int
    channel_names: tuple[str, ...]
    pixel_size_um: float
    time_interval_s: float
    dtype: str
    format_version: int


@dataclass(frozen=True)
class ChannelStats:
    """Statistics over every voxel of one channel."""

    name: str
    min: float
    max: float
    mean: float
    std: float


@dataclass(frozen=True)
class Report:
    """Result of `inspect`.

    `channels` is empty and `loaded` is False when the payload was too large to
    load within the memory budget.
    """

    summary: Summary
    channels: tuple[ChannelStats, ...] = ()
    loaded: bool = False


def validate(path: str | os.PathLike) -> Summary:
    """Check a dataset's structure without reading its payload.

    Raises
    ------
    DatasetIOError, ParseError, SizeOverflowError, MetadataMismatchError
        See `check_payload`.
    """
    metadata, data_path, size = check_payload(path)
    meta_path, _ = dataset_paths(path)
    return Summary(
        meta_path=meta_path,
        data_path=data_path,
        dimensions=metadata.dimensions,
        byte_size=size,
        channel_names=metadata.channel_names,
        pixel_size_um=metadata.pixel_size_um,
        time_interval_s=metadata.time_interval_s,
        dtype=metadata.dtype,
        format_version=metadata.format_version,
    )


def inspect(path: str | os.PathLike) -> Report:
    """Validate a dataset, then load it and compute per-channel statistics.

    Datasets larger than the memory budget are reported without statistics.
    """
    summary = validate(path)
    if not fits_budget(summary.byte_size):
        logger.info(
            "%s: payload of %d bytes exceeds the %d byte budget, "
            "skipping statistics",
            summary.data_path,
            summary.byte_size,
            MAX_PAYLOAD_BYTES,
        )
        return Report(summary)

    dataset = load_dataset(path)
    channels = tuple(
        _channel_stats(dataset, c, name)
        for c, name in enumerate(dataset.channel_names)
    )
    return Report(summary, channels, loaded=True)


def _channel_stats(dataset: Dataset, c: int, name: str) -> ChannelStats:
    """Statistics of one channel, in float64 blocks of `STATS_CHUNK_VOXELS`.

    Partial means and squared deviations are merged pairwise (Chan et al.), so
    no temporary larger than one block is allocated.
    """
    n, mean, m2 = 0, 0.0, 0.0
    lo, hi = math.inf, -math.inf
    dims = dataset.dimensions
    for t, p, z in np.ndindex(dims.t, dims.p, dims.z):
        flat = dataset.frame(t, p, z, c).reshape(-1)
        for start in range(0, flat.size, STATS_CHUNK_VOXELS):
            block = flat[start : start + STATS_CHUNK_VOXELS].astype(np.float64)
            lo = min(lo, float(block.min()))
            hi = max(hi, float(block.max()))
            block_mean = float(block.mean())
            block -= block_mean
            block_m2 = float(np.dot(block, block))

            total = n + block.size
            delta = block_mean - mean
            mean += delta * block.size / total
            m2 += block_m2 + delta * delta * n * block.size / total
            n = total
    return ChannelStats(name=name, min=lo, max=hi, mean=mean, std=math.sqrt(m2 / n))


def is_valid(path: str | os.PathLike) -> bool:
    """Return True if `path` names a dataset that passes `validate`."""
    try:
        validate(path)
    except TpzcyxError as e:
        logger.debug("%s is not a valid dataset: %s", path, e)
        return False
    return True


# ----------------------------------------------------------
# RENDERING
# ----------------------------------------------------------


def _summary_lines(summary: Summary) -> list[str]:
    dims = summary.dimensions
    return [
        f"Descriptor: {summary.meta_path}",
        f"Payload: {summary.data_path}",
        f"Dimensions (T×P×Z×C×Y×X): {dims}",
        f"Total elements: {dims.n_voxels}",
        f"Payload size: {summary.byte_size} bytes "
        f"({summary.byte_size / 2**20:.1f} MiB)",
        f"Pixel size: {summary.pixel_size_um:.3f} µm",
        f"Time interval: {summary.time_interval_s:.1f} s",
        f"Data type: {summary.dtype}",
        f"Format version: {summary.format_version}",
    ]


def render_report(report: Report | Summary) -> str:
    """Render a `Report` or `Summary` as plain text."""
    summary = report if isinstance(report, Summary) else report.summary
    lines = _summary_lines(summary)
    lines.append("")
    lines.append("Channels:")
    if isinstance(report, Report) and report.loaded:
        for i, ch in enumerate(report.channels):
            lines.append(
                f"  {i}: {ch.name}  min={ch.min:.1f}, max={ch.max:.1f}, "
                f"mean={ch.mean:.1f}, std={ch.std:.1f}"
            )
    else:
        lines.extend(f"  {i}: {name}" for i, name in enumerate(summary.channel_names))
        if isinstance(report, Report):
            lines.append("  (payload exceeds the memory budget, no statistics)")
    return "\n".join(lines)


def print_report(report: Report | Summary) -> None:
    """Print a `Report` or `Summary`.

    Uses rich for a formatted table if available, otherwise prints plain text.
    """
    try:
        from rich import print as rprint
        from rich.table import Table
    except ImportError:
        print(render_report(report))
        return

    summary = report if isinstance(report, Summary) else report.summary
    for line in _summary_lines(summary):
        key, _, value = line.partition(": ")
        rprint(f"[bold]{key}:[/bold] {value}")

    table = Table(title="Channels")
    table.add_column("#", justify="right")
    table.add_column("Name")
    stats = isinstance(report, Report) and report.loaded
    if stats:
        for col in ("Min", "Max", "Mean", "Std"):
            table.add_column(col, justify="right")
        for i, ch in enumerate(report.channels):  # type: ignore[union-attr]
            table.add_row(
                str(i),
                ch.name,
                f"{ch.min:.1f}",
                f"{ch.max:.1f}",
                f"{ch.mean:.1f}",
                f"{ch.std:.1f}",
            )
    else:
        for i, name in enumerate(summary.channel_names):
            table.add_row(str(i), name)
    rprint(table)


# ----------------------------------------------------------
# CONVENIENCE
# ----------------------------------------------------------


def validate_6d_file(path: str | os.PathLike, *, quiet: bool = False) -> Summary:
    """Validate a dataset and, unless `quiet`, print what was found."""
    summary = validate(path)
    if not quiet:
        print(f"✓ File validation successful: {summary.meta_path}")
        print(render_report(summary))
    return summary


def load_and_inspect_6d_file(path: str | os.PathLike, *, quiet: bool = False) -> Report:
    """Inspect a dataset and, unless `quiet`, print the report."""
    report = inspect(path)
    if not quiet:
        print_report(report)
    return report
