from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from pathlib import Path

    from tpzcyx._metadata import Dimensions, Metadata

__all__ = ["Dataset", "FrameStats"]


@dataclass(frozen=True)
class FrameStats:
    """Summary statistics of one (y, x) frame."""

    mean: float
    median: float
    std: float
    min: float
    max: float
    total_pixels: int
    saturated_pixels: int
    saturation_threshold: float

    @classmethod
    def from_frame(cls, frame: np.ndarray, saturation_threshold: float) -> FrameStats:
        values = np.asarray(frame, dtype=np.float64)
        if values.size == 0:
            return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0, 0, saturation_threshold)
        return cls(
            mean=float(values.mean()),
            median=float(np.median(values)),
            std=float(values.std()),
            min=float(values.min()),
            max=float(values.max()),
            total_pixels=int(values.size),
            saturated_pixels=int(np.count_nonzero(values >= saturation_threshold)),
            saturation_threshold=saturation_threshold,
        )


@dataclass(frozen=True)
class Dataset:
    """A loaded dataset: its descriptor and the full (t, p, z, c, y, x) array.

    The array is owned by the caller; nothing in tpzcyx keeps a reference to it.
    """

    metadata: Metadata
    data: np.ndarray
    meta_path: Path | None = None
    data_path: Path | None = None

    @property
    def dimensions(self) -> Dimensions:
        return self.metadata.dimensions

    @property
    def channel_names(self) -> tuple[str, ...]:
        return self.metadata.channel_names

    @property
    def memory_usage(self) -> int:
        """Size of the loaded array, in bytes."""
        return int(self.data.nbytes)

    def frame(self, t: int, p: int, z: int, c: int) -> np.ndarray:
        """Return a view of the (y, x) frame at the given index.

        Raises
        ------
        IndexError
            If any index is out of bounds.  Negative indices are not accepted.
        """
        for axis, index, size in zip("tpzc", (t, p, z, c), self.dimensions.shape):
            if not 0 <= index < size:
                raise IndexError(
                    f"{axis.upper()} index {index} out of bounds (max: {size - 1})"
                )
        return self.data[t, p, z, c]

    def channel(self, c: int) -> np.ndarray:
        """Return a (t, p, z, y, x) view of one channel."""
        if not 0 <= c < self.dimensions.c:
            raise IndexError(
                f"C index {c} out of bounds (max: {self.dimensions.c - 1})"
            )
        return self.data[:, :, :, c]

    def frame_stats(
        self, t: int, p: int, z: int, c: int, saturation_threshold: float = 1000.0
    ) -> FrameStats:
        return FrameStats.from_frame(self.frame(t, p, z, c), saturation_threshold)
