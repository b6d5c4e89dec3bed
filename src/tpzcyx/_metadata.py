"""Descriptor models for TPZCYX datasets.

A dataset is stored as two files sharing a base name: `<name>.meta`, a JSON
descriptor validated by the models in this module, and `<name>.data`, the raw
payload.  The descriptor is the only source of truth for interpreting the
payload, so decoding is strict: anything that does not match the schema
exactly is rejected with a `ParseError` rather than coerced.

!!! example "Descriptor"
    ```json
    {
      "dimensions": {"t": 3, "p": 1, "z": 2, "c": 2, "y": 32, "x": 32},
      "channel_names": ["Channel1", "Channel2"],
      "pixel_size_um": 0.65,
      "time_interval_s": 1.0,
      "dtype": "f32",
      "format_version": 1
    }
    ```
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Annotated, Literal

from annotated_types import Gt, MinLen
from pydantic import (
    AfterValidator,
    Field,
    Strict,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)
from typing_extensions import Self

from tpzcyx._base import _BaseModel
from tpzcyx._budget import BYTES_PER_VOXEL, check_dimensions, required_bytes
from tpzcyx._errors import InvalidDimensionError, ParseError
from tpzcyx._util import warn_if_risky_channel_name

if TYPE_CHECKING:
    import os
    from collections.abc import Sequence

__all__ = [
    "DEFAULT_PIXEL_SIZE_UM",
    "DEFAULT_TIME_INTERVAL_S",
    "DTYPE",
    "FORMAT_VERSION",
    "Dimensions",
    "Metadata",
    "decode_metadata",
    "encode_metadata",
]

FORMAT_VERSION = 1
DTYPE = "f32"
DEFAULT_PIXEL_SIZE_UM = 0.65
DEFAULT_TIME_INTERVAL_S = 1.0

# keys that must be spelled out in every descriptor, even where the model
# provides a default
REQUIRED_KEYS = frozenset(
    {"dimensions", "channel_names", "pixel_size_um", "dtype", "format_version"}
)

PositiveFiniteFloat = Annotated[float, Strict(), Gt(0), Field(allow_inf_nan=False)]
ChannelName = Annotated[StrictStr, AfterValidator(warn_if_risky_channel_name)]


class Dimensions(_BaseModel):
    """Extent of each of the six axes, in TPZCYX order.

    All six values must be positive integers; anything else raises
    `InvalidDimensionError`.
    """

    t: StrictInt = Field(description="Number of time points")
    p: StrictInt = Field(description="Number of stage positions")
    z: StrictInt = Field(description="Number of z planes")
    c: StrictInt = Field(description="Number of channels")
    y: StrictInt = Field(description="Image height in pixels")
    x: StrictInt = Field(description="Image width in pixels")

    @model_validator(mode="after")
    def _validate_positive(self) -> Self:
        # InvalidDimensionError is not a ValueError, so pydantic lets it through
        check_dimensions(*self.shape)
        return self

    @classmethod
    def of(cls, t: int, p: int, z: int, c: int, y: int, x: int) -> Dimensions:
        """Create dimensions, reporting *every* failure as `InvalidDimensionError`."""
        dims = check_dimensions(t, p, z, c, y, x)
        return cls(t=dims[0], p=dims[1], z=dims[2], c=dims[3], y=dims[4], x=dims[5])

    @property
    def shape(self) -> tuple[int, int, int, int, int, int]:
        return (self.t, self.p, self.z, self.c, self.y, self.x)

    @property
    def plane_shape(self) -> tuple[int, int]:
        return (self.y, self.x)

    @property
    def n_planes(self) -> int:
        return self.t * self.p * self.z * self.c

    @property
    def n_voxels(self) -> int:
        return math.prod(self.shape)

    def __str__(self) -> str:
        return "×".join(str(n) for n in self.shape)


class Metadata(_BaseModel):
    """Description of one dataset: its shape, channels and physical units."""

    dimensions: Dimensions = Field(description="Extent of each TPZCYX axis")
    channel_names: Annotated[tuple[ChannelName, ...], MinLen(1)] = Field(
        description="One name per channel, in channel index order"
    )
    pixel_size_um: PositiveFiniteFloat = Field(
        default=DEFAULT_PIXEL_SIZE_UM,
        description="Edge length of one pixel, in micrometers",
    )
    time_interval_s: PositiveFiniteFloat = Field(
        default=DEFAULT_TIME_INTERVAL_S,
        description="Time between consecutive time points, in seconds",
    )
    dtype: Literal["f32"] = Field(
        default=DTYPE,
        description="Voxel type. Always little-endian IEEE-754 single precision.",
    )
    format_version: Literal[1] = Field(
        default=FORMAT_VERSION,
        description="Version of this descriptor format",
    )

    @model_validator(mode="after")
    def _validate_channel_count(self) -> Self:
        if len(self.channel_names) != self.dimensions.c:
            raise ValueError(
                f"Number of channel names ({len(self.channel_names)}) does not "
                f"match channel dimension ({self.dimensions.c})"
            )
        return self

    @classmethod
    def for_dimensions(
        cls,
        dimensions: Dimensions,
        channel_names: Sequence[str] | None = None,
        *,
        pixel_size_um: float = DEFAULT_PIXEL_SIZE_UM,
        time_interval_s: float = DEFAULT_TIME_INTERVAL_S,
    ) -> Metadata:
        """Build metadata, naming channels "Channel1", "Channel2", ... by default.

        Raises
        ------
        ParseError
            If a channel name or physical unit would make an invalid descriptor.
            `errors` holds the individual pydantic error entries.
        """
        if channel_names is None:
            channel_names = [f"Channel{i + 1}" for i in range(dimensions.c)]
        try:
            return cls(
                dimensions=dimensions,
                channel_names=tuple(channel_names),
                pixel_size_um=pixel_size_um,
                time_interval_s=time_interval_s,
            )
        except ValidationError as e:
            raise ParseError(_describe(e), errors=e.errors(include_url=False)) from e

    @property
    def shape(self) -> tuple[int, int, int, int, int, int]:
        return self.dimensions.shape

    @property
    def expected_bytes(self) -> int:
        """Exact size of the payload this descriptor describes."""
        return required_bytes(*self.dimensions.shape)

    @property
    def bytes_per_voxel(self) -> int:
        return BYTES_PER_VOXEL


def encode_metadata(metadata: Metadata) -> bytes:
    """Serialize `metadata` into descriptor bytes.

    The output depends only on the field values, so equal metadata always
    encodes to identical bytes.
    """
    return metadata.model_dump_json(indent=2).encode("utf-8") + b"\n"


def decode_metadata(
    raw: bytes | str, path: str | os.PathLike | None = None
) -> Metadata:
    """Parse and validate descriptor bytes.

    Parameters
    ----------
    raw : bytes | str
        The descriptor document.
    path : str | os.PathLike, optional
        Where `raw` was read from.  Only used in error messages.

    Raises
    ------
    ParseError
        If the document is not valid JSON, is missing a required key, has an
        unknown key or a value of the wrong type, or violates one of the
        invariants (positive dimensions, one channel name per channel).
    """
    try:
        metadata = Metadata.model_validate_json(raw)
    except ValidationError as e:
        raise ParseError(_describe(e), path, errors=e.errors(include_url=False)) from e
    except InvalidDimensionError as e:
        raise ParseError(str(e), path) from e

    if missing := REQUIRED_KEYS - metadata.model_fields_set:
        raise ParseError(f"Missing required key(s): {sorted(missing)}", path)
    return metadata


def _describe(err: ValidationError) -> str:
    lines = [f"{err.error_count()} validation error(s) in descriptor:"]
    for item in err.errors(include_url=False):
        loc = ".".join(str(part) for part in item["loc"]) or "<root>"
        lines.append(f"  {loc}: {item['msg']}")
    return "\n".join(lines)
