"""Reading and writing `.meta` / `.data` file pairs.

The payload is a headerless run of little-endian float32 values in TPZCYX
order: T outermost, X innermost (X varies fastest).  Its size is always
`t * p * z * c * y * x * 4` bytes.

Writes are all-or-nothing: both files are first written to temporary files
next to their destination and only then moved into place, so a failed write
never leaves a partial dataset behind.  Two concurrent writers to the same
base name are not coordinated; callers must serialize them.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from tpzcyx._budget import check_budget
from tpzcyx._dataset import Dataset
from tpzcyx._errors import DatasetIOError, InvalidDimensionError, MetadataMismatchError
from tpzcyx._metadata import (
    DEFAULT_PIXEL_SIZE_UM,
    DEFAULT_TIME_INTERVAL_S,
    Dimensions,
    Metadata,
    decode_metadata,
    encode_metadata,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

__all__ = [
    "DATA_SUFFIX",
    "META_SUFFIX",
    "PAYLOAD_DTYPE",
    "PlaneSource",
    "check_payload",
    "dataset_paths",
    "iter_planes",
    "load_array",
    "load_dataset",
    "read_metadata",
    "save_array",
    "write_dataset",
]

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta"
DATA_SUFFIX = ".data"
PAYLOAD_DTYPE = np.dtype("<f4")

PlaneIndex = tuple[int, int, int, int]
PlaneSource = Callable[[int, int, int, int], Any]
"""Callback returning the (y, x) plane at a (t, p, z, c) index."""


def dataset_paths(path: str | os.PathLike) -> tuple[Path, Path]:
    """Return the `(descriptor, payload)` paths for a dataset.

    `path` may be the shared base name (`"scan"`), or either of the two files
    (`"scan.meta"`, `"scan.data"`).  Any other suffix is part of the base name:
    `"scan.v2"` maps to `scan.v2.meta` and `scan.v2.data`.
    """
    base = Path(path)
    if base.suffix in (META_SUFFIX, DATA_SUFFIX):
        base = base.with_suffix("")
    return (
        base.with_name(base.name + META_SUFFIX),
        base.with_name(base.name + DATA_SUFFIX),
    )


# ----------------------------------------------------------
# WRITING
# ----------------------------------------------------------


def write_dataset(
    path: str | os.PathLike,
    metadata: Metadata,
    source: np.ndarray | PlaneSource,
) -> tuple[Path, Path]:
    """Write a dataset's descriptor and payload.

    Parameters
    ----------
    path : str | os.PathLike
        Base name of the dataset (see `dataset_paths`).
    metadata : Metadata
        Descriptor of the dataset.
    source : np.ndarray | PlaneSource
        Either the full array, with shape `metadata.shape`, or a callback
        returning each (y, x) plane given its (t, p, z, c) index.  Planes are
        requested in payload order, and only one is held at a time.

    Returns
    -------
    tuple[Path, Path]
        Paths of the descriptor and payload files.

    Raises
    ------
    InvalidDimensionError
        If the array, or any plane returned by the callback, has the wrong shape.
    DatasetIOError
        If either file cannot be written.
    """
    meta_path, data_path = dataset_paths(path)
    dims = metadata.dimensions
    planes = _plane_source(source, dims)
    descriptor = encode_metadata(metadata)

    staged: list[Path] = []
    moved: list[Path] = []
    try:
        meta_tmp = _write_temp(meta_path, [descriptor], staged)
        data_tmp = _write_temp(data_path, _plane_bytes(planes, dims), staged)
        # payload first, so a descriptor never appears without its payload
        _move(data_tmp, data_path)
        moved.append(data_path)
        _move(meta_tmp, meta_path)
        moved.append(meta_path)
    except BaseException:
        for leftover in (*staged, *moved):
            try:
                leftover.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove %s: %s", leftover, e)
        raise

    logger.debug(
        "Wrote %s (%s) and %s (%d bytes)",
        meta_path,
        dims,
        data_path,
        metadata.expected_bytes,
    )
    return meta_path, data_path


def _plane_source(source: np.ndarray | PlaneSource, dims: Dimensions) -> PlaneSource:
    if callable(source):
        return source
    array = np.asarray(source)
    if array.shape != dims.shape:
        raise InvalidDimensionError(
            array.shape,
            f"Array shape {array.shape} does not match dimensions {dims.shape}",
        )
    return lambda t, p, z, c: array[t, p, z, c]


def _plane_bytes(planes: PlaneSource, dims: Dimensions) -> Iterator[bytes]:
    for t, p, z, c in np.ndindex(dims.t, dims.p, dims.z, dims.c):
        plane = np.asarray(planes(t, p, z, c))
        if plane.shape != dims.plane_shape:
            raise InvalidDimensionError(
                plane.shape,
                f"Plane (t={t}, p={p}, z={z}, c={c}) has shape {plane.shape}, "
                f"expected {dims.plane_shape}",
            )
        yield plane.astype(PAYLOAD_DTYPE, copy=False).tobytes(order="C")


def _write_temp(dest: Path, chunks: Iterable[bytes], staged: list[Path]) -> Path:
    """Write `chunks` to a temporary file beside `dest` and return its path."""
    try:
        with tempfile.NamedTemporaryFile(
            "wb", dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp", delete=False
        ) as f:
            tmp = Path(f.name)
            staged.append(tmp)
            for chunk in chunks:
                f.write(chunk)
        # same mode as a file created with a plain `open`
        os.chmod(tmp, 0o666 & ~_umask())
    except OSError as e:
        raise DatasetIOError.from_os_error(dest, e) from e
    return tmp


def _umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _move(src: Path, dest: Path) -> None:
    try:
        os.replace(src, dest)
    except OSError as e:
        raise DatasetIOError.from_os_error(dest, e) from e


# ----------------------------------------------------------
# READING
# ----------------------------------------------------------


def read_metadata(path: str | os.PathLike) -> Metadata:
    """Read and validate the descriptor of a dataset.

    Raises
    ------
    DatasetIOError
        If the descriptor cannot be read.
    ParseError
        If the descriptor is malformed.
    """
    meta_path, _ = dataset_paths(path)
    try:
        raw = meta_path.read_bytes()
    except OSError as e:
        raise DatasetIOError.from_os_error(meta_path, e) from e
    return decode_metadata(raw, meta_path)


def check_payload(path: str | os.PathLike) -> tuple[Metadata, Path, int]:
    """Check that the payload has exactly the size the descriptor requires.

    Nothing but the descriptor is read; the payload is only `stat`-ed.

    Returns
    -------
    tuple[Metadata, Path, int]
        The descriptor, the payload path, and the payload size in bytes.

    Raises
    ------
    DatasetIOError
        If either file cannot be accessed.
    ParseError
        If the descriptor is malformed.
    SizeOverflowError
        If the described payload size overflows 64 bits.
    MetadataMismatchError
        If the payload size differs from the described size.
    """
    metadata = read_metadata(path)
    _, data_path = dataset_paths(path)
    expected = metadata.expected_bytes
    try:
        actual = data_path.stat().st_size
    except OSError as e:
        raise DatasetIOError.from_os_error(data_path, e) from e
    if actual != expected:
        raise MetadataMismatchError(expected, actual, data_path)
    return metadata, data_path, actual


def iter_planes(path: str | os.PathLike) -> Iterator[tuple[PlaneIndex, np.ndarray]]:
    """Stream the payload one (y, x) plane at a time, in payload order.

    Yields
    ------
    tuple[tuple[int, int, int, int], np.ndarray]
        The (t, p, z, c) index and the float32 plane at that index.
    """
    metadata, data_path, _ = check_payload(path)
    dims = metadata.dimensions
    plane_bytes = dims.y * dims.x * PAYLOAD_DTYPE.itemsize
    try:
        with open(data_path, "rb") as f:
            for index in np.ndindex(dims.t, dims.p, dims.z, dims.c):
                buf = f.read(plane_bytes)
                if len(buf) != plane_bytes:
                    # the file shrank after it was checked
                    raise MetadataMismatchError(
                        metadata.expected_bytes, f.tell(), data_path
                    )
                plane = np.frombuffer(buf, dtype=PAYLOAD_DTYPE)
                plane = plane.reshape(dims.plane_shape)
                yield index, plane.astype(np.float32)
    except OSError as e:
        raise DatasetIOError.from_os_error(data_path, e) from e


def load_dataset(path: str | os.PathLike) -> Dataset:
    """Load a dataset's descriptor and its full payload.

    Raises
    ------
    MemoryLimitExceeded
        If the payload is larger than the memory budget.  The size check has
        already passed at that point; use `check_payload` or
        `tpzcyx.validate` to inspect such datasets.
    DatasetIOError, ParseError, MetadataMismatchError, SizeOverflowError
        As for `check_payload`.
    """
    meta_path, _ = dataset_paths(path)
    metadata, data_path, size = check_payload(path)
    check_budget(size)

    n_voxels = metadata.dimensions.n_voxels
    try:
        with open(data_path, "rb") as f:
            flat = np.fromfile(f, dtype=PAYLOAD_DTYPE, count=n_voxels)
    except OSError as e:
        raise DatasetIOError.from_os_error(data_path, e) from e
    if flat.size != n_voxels:
        raise MetadataMismatchError(size, flat.nbytes, data_path)

    data = flat.astype(np.float32, copy=False).reshape(metadata.shape)
    logger.debug("Loaded %s (%s, %d bytes)", data_path, metadata.dimensions, size)
    return Dataset(metadata, data, meta_path=meta_path, data_path=data_path)


# ----------------------------------------------------------
# ARRAY CONVENIENCE
# ----------------------------------------------------------


def save_array(
    path: str | os.PathLike,
    array: Any,
    *,
    channel_names: Sequence[str] | None = None,
    pixel_size_um: float = DEFAULT_PIXEL_SIZE_UM,
    time_interval_s: float = DEFAULT_TIME_INTERVAL_S,
) -> tuple[Path, Path]:
    """Save a six dimensional (t, p, z, c, y, x) array as a dataset.

    Values are converted to float32.  Channels are named "Channel1", ... unless
    `channel_names` is given.
    """
    array = np.asarray(array)
    if array.ndim != 6:
        raise InvalidDimensionError(
            array.shape,
            f"Expected a 6 dimensional (t, p, z, c, y, x) array, got {array.ndim}",
        )
    dims = Dimensions.of(*array.shape)
    if channel_names is not None and len(channel_names) != dims.c:
        raise InvalidDimensionError(
            array.shape,
            f"Got {len(channel_names)} channel names for {dims.c} channels",
        )
    metadata = Metadata.for_dimensions(
        dims,
        channel_names,
        pixel_size_um=pixel_size_um,
        time_interval_s=time_interval_s,
    )
    return write_dataset(path, metadata, array)


def load_array(path: str | os.PathLike) -> np.ndarray:
    """Load only the payload of a dataset, as a (t, p, z, c, y, x) float32 array."""
    return load_dataset(path).data
