"""Synthetic intensity patterns.

Each pattern kind is its own model, and `PatternSpec` is the closed union of
all of them, discriminated by the `kind` field.  A generation request binds
exactly one pattern to each channel.

Patterns are evaluated one (t, p, z, c) plane at a time with
`render_plane`; `intensity` returns a single voxel of that same plane, so the
two always agree.

Random patterns (`GaussianSpots`, `MovingSpots`, `Noise`) are deterministic
for a given `seed`.  Spot centres depend only on the seed and the image size:
they are drawn once and reused for every t, p, z and c, and `MovingSpots`
only translates them over time.  Noise draws an independent generator per
plane, seeded with `(seed, t, p, z, c)`.
"""

from __future__ import annotations

import functools
import math
from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Literal, Union

import numpy as np
from pydantic import Field, TypeAdapter, ValidationError

from tpzcyx._base import _BaseModel
from tpzcyx._errors import InvalidPatternParameter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tpzcyx._metadata import Dimensions

__all__ = [
    "Circles",
    "GaussianSpots",
    "Gradient",
    "MovingSpots",
    "Noise",
    "PatternSpec",
    "SineWave",
    "Uniform",
    "check_pattern",
    "intensity",
    "parse_pattern",
    "render_plane",
    "resolve_seed",
]

RING_FRACTION = 0.25
"""Fraction of each `Circles` period that is lit."""
FLOAT32_MAX = float(np.finfo(np.float32).max)
"""Largest magnitude a payload voxel can hold."""
MAX_SPOTS = 10_000
"""Upper bound on `count` for the spot patterns."""


class _Pattern(_BaseModel):
    kind: str
    random: ClassVar[bool] = False

    def _check(self, dims: Dimensions) -> None:
        """Raise `InvalidPatternParameter` for parameters outside their range."""

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        raise NotImplementedError  # pragma: no cover

    # -- parameter checks shared by the subclasses --

    def _require_finite(self, *names: str) -> None:
        for name in names:
            value = getattr(self, name)
            values = value if isinstance(value, tuple) else (value,)
            if not all(math.isfinite(v) for v in values):
                raise InvalidPatternParameter(
                    self.kind, name, value, "must be a finite number"
                )
            if any(abs(v) > FLOAT32_MAX for v in values):
                raise InvalidPatternParameter(
                    self.kind, name, value, "must fit in the float32 range"
                )

    def _require_peak(self, name: str, peak: float) -> None:
        """Reject `name` if the pattern can render values of magnitude `peak`."""
        if peak > FLOAT32_MAX:
            raise InvalidPatternParameter(
                self.kind,
                name,
                getattr(self, name),
                f"rendered values up to {peak:g} do not fit in the float32 range",
            )

    def _require_positive(self, name: str) -> None:
        value = getattr(self, name)
        if not value > 0:
            raise InvalidPatternParameter(self.kind, name, value, "must be > 0")

    def _require_ordered(self) -> None:
        lo, hi = getattr(self, "min"), getattr(self, "max")
        if lo > hi:
            raise InvalidPatternParameter(
                self.kind, "min", lo, f"must not be greater than max ({hi})"
            )

    def _require_seed(self) -> None:
        seed = getattr(self, "seed", None)
        if seed is not None and seed < 0:
            raise InvalidPatternParameter(self.kind, "seed", seed, "must be >= 0")


class Uniform(_Pattern):
    """The same value everywhere."""

    kind: Literal["uniform"] = "uniform"
    value: float = Field(description="Intensity of every voxel")

    def _check(self, dims: Dimensions) -> None:
        self._require_finite("value")

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        return np.full(dims.plane_shape, self.value, dtype=np.float32)


class Gradient(_Pattern):
    """Linear ramp from `min` at index 0 to `max` at the last index of `axis`."""

    kind: Literal["gradient"] = "gradient"
    min: float = Field(default=0.0, description="Value at index 0 of `axis`")
    max: float = Field(default=1000.0, description="Value at the last index of `axis`")
    axis: Literal["x", "y", "z"] = Field(
        default="x", description="Spatial axis the ramp runs along"
    )

    def _check(self, dims: Dimensions) -> None:
        self._require_finite("min", "max")
        self._require_ordered()

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        if self.axis == "z":
            frac: Any = _normalized(z, dims.z)
        elif self.axis == "y":
            frac = _normalized(np.arange(dims.y, dtype=np.float64), dims.y)[:, None]
        else:
            frac = _normalized(np.arange(dims.x, dtype=np.float64), dims.x)[None, :]
        plane = self.min + (self.max - self.min) * frac
        return np.broadcast_to(plane, dims.plane_shape).astype(np.float32)


class GaussianSpots(_Pattern):
    """Sum of `count` Gaussian spots at random positions in the Y,X plane."""

    kind: Literal["gaussian_spots"] = "gaussian_spots"
    random: ClassVar[bool] = True
    count: int = Field(default=3, description="Number of spots")
    sigma: float = Field(default=4.0, description="Standard deviation, in pixels")
    amplitude: float = Field(default=500.0, description="Peak intensity of one spot")
    seed: int | None = Field(
        default=None, description="Seed for the spot positions. None draws a new one."
    )

    def _check(self, dims: Dimensions) -> None:
        if not 0 <= self.count <= MAX_SPOTS:
            raise InvalidPatternParameter(
                self.kind, "count", self.count, f"must be in [0, {MAX_SPOTS}]"
            )
        self._require_finite("sigma", "amplitude")
        self._require_positive("sigma")
        self._require_peak("amplitude", self.count * abs(self.amplitude))
        self._require_seed()

    def _centers(self, t: int, dims: Dimensions) -> tuple[np.ndarray, np.ndarray]:
        if self.seed is None:
            return _draw_centers(None, self.count, dims.y, dims.x)
        return _cached_centers(self.seed, self.count, dims.y, dims.x)

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        yy, xx = _grid(dims)
        plane = np.zeros(dims.plane_shape, dtype=np.float64)
        two_sigma_sq = 2.0 * self.sigma * self.sigma
        for cy, cx in zip(*self._centers(t, dims)):
            dist_sq = (yy - cy) ** 2 + (xx - cx) ** 2
            plane += self.amplitude * np.exp(-dist_sq / two_sigma_sq)
        return plane.astype(np.float32)


class MovingSpots(GaussianSpots):
    """`GaussianSpots` whose centres move by `velocity` pixels per time point.

    Centres are clamped to the image bounds.
    """

    kind: Literal["moving_spots"] = "moving_spots"  # type: ignore[assignment]
    velocity: tuple[float, float] = Field(
        default=(1.0, 0.0),
        description="Displacement (vx, vy) per time point, in pixels",
    )

    def _check(self, dims: Dimensions) -> None:
        super()._check(dims)
        self._require_finite("velocity")

    def _centers(self, t: int, dims: Dimensions) -> tuple[np.ndarray, np.ndarray]:
        cy, cx = super()._centers(t, dims)
        vx, vy = self.velocity
        cx = np.clip(cx + vx * t, 0, dims.x - 1)
        cy = np.clip(cy + vy * t, 0, dims.y - 1)
        return cy, cx


class Circles(_Pattern):
    """Concentric rings around the centre of each Y,X plane."""

    kind: Literal["circles"] = "circles"
    spacing: float = Field(
        default=16.0, description="Distance between rings, in pixels"
    )
    amplitude: float = Field(default=500.0, description="Intensity of the rings")

    def _check(self, dims: Dimensions) -> None:
        self._require_finite("spacing", "amplitude")
        self._require_positive("spacing")

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        yy, xx = _grid(dims)
        radius = np.hypot(yy - dims.y / 2, xx - dims.x / 2)
        on_ring = np.mod(radius, self.spacing) < self.spacing * RING_FRACTION
        return np.where(on_ring, self.amplitude, 0.0).astype(np.float32)


class SineWave(_Pattern):
    """Sine wave along X: `offset + amplitude * sin(2π·frequency·x/width + phase)`.

    With a non-zero `phase_per_frame` the wave travels over time.
    """

    kind: Literal["sine_wave"] = "sine_wave"
    frequency: float = Field(default=4.0, description="Periods across the image width")
    phase: float = Field(default=0.0, description="Phase at x = 0, in radians")
    amplitude: float = Field(default=200.0, description="Peak deviation from offset")
    phase_per_frame: float = Field(
        default=0.0, description="Phase added per time point, in radians"
    )
    offset: float = Field(default=0.0, description="Value the wave oscillates around")

    def _check(self, dims: Dimensions) -> None:
        self._require_finite(
            "frequency", "phase", "amplitude", "phase_per_frame", "offset"
        )
        self._require_peak("amplitude", abs(self.offset) + abs(self.amplitude))

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        x_norm = np.arange(dims.x, dtype=np.float64) / dims.x
        phase = self.phase + self.phase_per_frame * t
        angle = 2 * np.pi * self.frequency * x_norm + phase
        row = self.offset + self.amplitude * np.sin(angle)
        return np.broadcast_to(row, dims.plane_shape).astype(np.float32)


class Noise(_Pattern):
    """Uniform random values in `[min, max]`, drawn independently per voxel."""

    kind: Literal["noise"] = "noise"
    random: ClassVar[bool] = True
    min: float = Field(default=0.0, description="Lower bound (inclusive)")
    max: float = Field(default=1.0, description="Upper bound")
    seed: int | None = Field(
        default=None, description="Seed for the noise. None draws a new one."
    )

    def _check(self, dims: Dimensions) -> None:
        self._require_finite("min", "max")
        self._require_ordered()
        self._require_seed()

    def _render(self, t: int, p: int, z: int, c: int, dims: Dimensions) -> np.ndarray:
        key = None if self.seed is None else [self.seed, t, p, z, c]
        rng = np.random.default_rng(key)
        return rng.uniform(self.min, self.max, dims.plane_shape).astype(np.float32)


PatternSpec = Annotated[
    Union[Uniform, Gradient, GaussianSpots, MovingSpots, Circles, SineWave, Noise],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter[PatternSpec] = TypeAdapter(PatternSpec)


def _normalized(index: Any, size: int) -> Any:
    """Map `index` in [0, size - 1] onto [0, 1]; 0 for a single-element axis."""
    if size == 1:
        return index * 0.0
    return index / (size - 1)


def _grid(dims: Dimensions) -> tuple[np.ndarray, np.ndarray]:
    yy, xx = np.indices(dims.plane_shape, dtype=np.float64)
    return yy, xx


def _draw_centers(
    seed: int | None, count: int, y: int, x: int
) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    cx = rng.uniform(0, x - 1, count)
    cy = rng.uniform(0, y - 1, count)
    cx.setflags(write=False)
    cy.setflags(write=False)
    return cy, cx


# seeded centres are drawn once and shared by every plane of a generation call
_cached_centers = functools.lru_cache(maxsize=64)(_draw_centers)


# ----------------------------------------------------------
# PUBLIC API
# ----------------------------------------------------------


def parse_pattern(obj: Any) -> PatternSpec:
    """Build a pattern from a pattern instance, a mapping, or a JSON string.

    Raises
    ------
    InvalidPatternParameter
        If `obj` does not describe a known pattern with well-typed parameters.
    """
    if isinstance(obj, _Pattern):
        return obj  # type: ignore[return-value]
    try:
        if isinstance(obj, (str, bytes)):
            return _ADAPTER.validate_json(obj)
        return _ADAPTER.validate_python(obj)
    except ValidationError as e:
        first = e.errors(include_url=False)[0]
        kind = obj.get("kind", "pattern") if isinstance(obj, dict) else "pattern"
        loc = ".".join(str(part) for part in first["loc"]) or "kind"
        raise InvalidPatternParameter(kind, loc, first["input"], first["msg"]) from e


def check_pattern(spec: PatternSpec, dims: Dimensions) -> None:
    """Validate the parameters of `spec`, raising `InvalidPatternParameter`."""
    if not isinstance(spec, _Pattern):
        raise InvalidPatternParameter(
            "pattern", "kind", type(spec).__name__, "not a pattern spec"
        )
    spec._check(dims)


def check_patterns(specs: Sequence[PatternSpec], dims: Dimensions) -> None:
    for spec in specs:
        check_pattern(spec, dims)


def resolve_seed(spec: PatternSpec) -> PatternSpec:
    """Return `spec` with a concrete seed if it is random and unseeded.

    Resolving the seed once per generation call keeps every plane of that call
    consistent (e.g. the same spot centres for every time point).
    """
    if spec.random and getattr(spec, "seed", None) is None:
        seed = int(np.random.SeedSequence().entropy)  # type: ignore[arg-type]
        return spec.model_copy(update={"seed": seed})
    return spec


def render_plane(
    spec: PatternSpec, t: int, p: int, z: int, c: int, dims: Dimensions
) -> np.ndarray:
    """Evaluate `spec` over one Y,X plane.

    Returns
    -------
    np.ndarray
        Array of shape `(dims.y, dims.x)` and dtype float32.
    """
    return spec._render(t, p, z, c, dims)


def intensity(
    spec: PatternSpec,
    coordinates: tuple[int, int, int, int, int, int],
    dims: Dimensions,
) -> float:
    """Intensity of `spec` at one (t, p, z, c, y, x) voxel.

    For random patterns without a seed, every call draws new randomness.

    Raises
    ------
    InvalidPatternParameter
        If `spec` has parameters outside their valid range.
    IndexError
        If `coordinates` lie outside of `dims`.
    """
    check_pattern(spec, dims)
    if len(coordinates) != 6:
        raise IndexError(
            f"Expected 6 coordinates (t, p, z, c, y, x), got {coordinates}"
        )
    for axis, index, size in zip("tpzcyx", coordinates, dims.shape):
        if not 0 <= index < size:
            raise IndexError(f"{axis} index {index} out of bounds for size {size}")
    t, p, z, c, y, x = coordinates
    return float(render_plane(spec, t, p, z, c, dims)[y, x])
