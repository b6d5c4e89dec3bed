"""Tests for reading and writing `.meta` / `.data` pairs."""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path

import numpy as np
import pytest

from tpzcyx import (
    Dataset,
    DatasetIOError,
    Dimensions,
    InvalidDimensionError,
    MemoryLimitExceeded,
    Metadata,
    MetadataMismatchError,
    ParseError,
    check_payload,
    dataset_paths,
    encode_metadata,
    iter_planes,
    load_array,
    load_dataset,
    read_metadata,
    save_array,
    write_dataset,
)


def make_array(shape: tuple[int, ...] = (2, 1, 3, 2, 4, 5)) -> np.ndarray:
    return np.arange(np.prod(shape), dtype=np.float32).reshape(shape) * 0.5


@pytest.mark.parametrize(
    ("path", "meta", "data"),
    [
        ("scan", "scan.meta", "scan.data"),
        ("scan.meta", "scan.meta", "scan.data"),
        ("scan.data", "scan.meta", "scan.data"),
        ("scan.v2", "scan.v2.meta", "scan.v2.data"),
        ("out/run.1.meta", "out/run.1.meta", "out/run.1.data"),
    ],
)
def test_dataset_paths(path: str, meta: str, data: str) -> None:
    assert dataset_paths(path) == (Path(meta), Path(data))


def test_save_and_load(tmp_path: Path) -> None:
    array = make_array()
    meta_path, data_path = save_array(
        tmp_path / "scan", array, channel_names=["DAPI", "GFP"], pixel_size_um=0.1
    )
    assert meta_path == tmp_path / "scan.meta"
    assert data_path == tmp_path / "scan.data"

    dataset = load_dataset(tmp_path / "scan")
    assert isinstance(dataset, Dataset)
    assert dataset.data.dtype == np.float32
    np.testing.assert_array_equal(dataset.data, array)
    assert dataset.channel_names == ("DAPI", "GFP")
    assert dataset.metadata.pixel_size_um == 0.1
    assert dataset.dimensions == Dimensions.of(2, 1, 3, 2, 4, 5)
    assert dataset.memory_usage == array.nbytes
    assert dataset.meta_path == meta_path

    np.testing.assert_array_equal(load_array(data_path), array)


def test_payload_layout(tmp_path: Path) -> None:
    array = make_array()
    _, data_path = save_array(tmp_path / "scan", array)
    raw = data_path.read_bytes()
    assert len(raw) == array.size * 4
    # little-endian float32, X varying fastest
    assert raw == array.astype("<f4").tobytes(order="C")
    assert np.frombuffer(raw[4:8], dtype="<f4")[0] == array[0, 0, 0, 0, 0, 1]


def test_descriptor_contents(tmp_path: Path) -> None:
    meta_path, _ = save_array(tmp_path / "scan", make_array(), time_interval_s=5.0)
    doc = json.loads(meta_path.read_text())
    assert set(doc) == {
        "dimensions",
        "channel_names",
        "pixel_size_um",
        "time_interval_s",
        "dtype",
        "format_version",
    }
    assert doc["dimensions"] == {"t": 2, "p": 1, "z": 3, "c": 2, "y": 4, "x": 5}
    assert doc["channel_names"] == ["Channel1", "Channel2"]
    assert doc["time_interval_s"] == 5.0
    assert read_metadata(tmp_path / "scan.data").time_interval_s == 5.0


def test_write_with_plane_callback(tmp_path: Path) -> None:
    dims = Dimensions.of(2, 2, 1, 1, 3, 3)
    calls = []

    def plane(t: int, p: int, z: int, c: int) -> np.ndarray:
        calls.append((t, p, z, c))
        return np.full((3, 3), t * 10 + p)

    write_dataset(tmp_path / "cb", Metadata.for_dimensions(dims), plane)
    assert calls == [(0, 0, 0, 0), (0, 1, 0, 0), (1, 0, 0, 0), (1, 1, 0, 0)]
    data = load_array(tmp_path / "cb")
    assert data[1, 1, 0, 0, 2, 2] == 11
    assert data[0, 1, 0, 0, 0, 0] == 1


def test_write_shape_mismatch_leaves_no_files(tmp_path: Path) -> None:
    meta = Metadata.for_dimensions(Dimensions.of(1, 1, 1, 1, 4, 4))
    with pytest.raises(InvalidDimensionError, match="does not match"):
        write_dataset(tmp_path / "bad", meta, np.zeros((1, 1, 1, 1, 4, 5)))
    assert list(tmp_path.iterdir()) == []


def test_write_bad_plane_leaves_no_files(tmp_path: Path) -> None:
    meta = Metadata.for_dimensions(Dimensions.of(2, 1, 1, 1, 4, 4))

    def plane(t: int, p: int, z: int, c: int) -> np.ndarray:
        return np.zeros((4, 4) if t == 0 else (4, 3))

    with pytest.raises(InvalidDimensionError, match="expected"):
        write_dataset(tmp_path / "bad", meta, plane)
    assert list(tmp_path.iterdir()) == []


def test_write_failing_callback_leaves_no_files(tmp_path: Path) -> None:
    meta = Metadata.for_dimensions(Dimensions.of(3, 1, 1, 1, 4, 4))

    def plane(t: int, p: int, z: int, c: int) -> np.ndarray:
        if t == 2:
            raise RuntimeError("boom")
        return np.ones((4, 4))

    with pytest.raises(RuntimeError, match="boom"):
        write_dataset(tmp_path / "bad", meta, plane)
    assert list(tmp_path.iterdir()) == []


def test_write_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(DatasetIOError) as exc_info:
        save_array(tmp_path / "missing" / "scan", make_array())
    assert exc_info.value.path == os.fspath(tmp_path / "missing" / "scan.meta")
    assert not (tmp_path / "missing").exists()


def test_overwrite(tmp_path: Path) -> None:
    save_array(tmp_path / "scan", make_array())
    save_array(tmp_path / "scan", np.ones((1, 1, 1, 1, 2, 2)))
    assert load_dataset(tmp_path / "scan").dimensions.shape == (1, 1, 1, 1, 2, 2)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["scan.data", "scan.meta"]


@pytest.mark.parametrize("shape", [(4, 4), (1, 1, 1, 1, 1, 2, 2), (1, 1, 0, 1, 2, 2)])
def test_save_array_invalid_shape(tmp_path: Path, shape: tuple[int, ...]) -> None:
    with pytest.raises(InvalidDimensionError):
        save_array(tmp_path / "scan", np.zeros(shape))
    assert list(tmp_path.iterdir()) == []


def test_save_array_channel_name_count(tmp_path: Path) -> None:
    with pytest.raises(InvalidDimensionError, match="channel names"):
        save_array(tmp_path / "scan", make_array(), channel_names=["only"])


def test_truncated_payload(tmp_path: Path) -> None:
    _, data_path = save_array(tmp_path / "scan", make_array())
    size = data_path.stat().st_size
    with open(data_path, "r+b") as f:
        f.truncate(size - 1)

    with pytest.raises(MetadataMismatchError) as exc_info:
        check_payload(tmp_path / "scan")
    err = exc_info.value
    assert err.expected - err.actual == 1
    assert err.path == os.fspath(data_path)

    with pytest.raises(MetadataMismatchError):
        load_dataset(tmp_path / "scan")


def test_oversized_payload(tmp_path: Path) -> None:
    _, data_path = save_array(tmp_path / "scan", make_array())
    with open(data_path, "ab") as f:
        f.write(b"\0\0\0\0")
    with pytest.raises(MetadataMismatchError, match="expected 960 bytes, got 964"):
        load_dataset(tmp_path / "scan")


def test_missing_payload(tmp_path: Path) -> None:
    _, data_path = save_array(tmp_path / "scan", make_array())
    data_path.unlink()
    with pytest.raises(DatasetIOError) as exc_info:
        load_dataset(tmp_path / "scan")
    assert exc_info.value.path == os.fspath(data_path)


def test_missing_descriptor(tmp_path: Path) -> None:
    meta_path, _ = save_array(tmp_path / "scan", make_array())
    meta_path.unlink()
    with pytest.raises(DatasetIOError) as exc_info:
        read_metadata(tmp_path / "scan")
    assert exc_info.value.path == os.fspath(meta_path)


def test_corrupt_descriptor(tmp_path: Path) -> None:
    meta_path, _ = save_array(tmp_path / "scan", make_array())
    doc = json.loads(meta_path.read_text())
    doc["dimensions"]["z"] = 0
    meta_path.write_text(json.dumps(doc))
    with pytest.raises(ParseError) as exc_info:
        load_dataset(tmp_path / "scan")
    assert exc_info.value.path == os.fspath(meta_path)


def test_payload_over_budget(tmp_path: Path) -> None:
    # one float past 1 GiB, as a sparse file
    dims = Dimensions.of(1, 1, 1, 1, 16384, 16385)
    meta = Metadata.for_dimensions(dims)
    meta_path, data_path = dataset_paths(tmp_path / "huge")
    meta_path.write_bytes(encode_metadata(meta))
    with open(data_path, "wb") as f:
        f.truncate(meta.expected_bytes)

    _, _, size = check_payload(meta_path)
    assert size == meta.expected_bytes
    with pytest.raises(MemoryLimitExceeded):
        load_dataset(meta_path)


def test_iter_planes(tmp_path: Path) -> None:
    array = make_array()
    save_array(tmp_path / "scan", array)
    planes = list(iter_planes(tmp_path / "scan"))
    assert len(planes) == 2 * 1 * 3 * 2
    assert planes[0][0] == (0, 0, 0, 0)
    assert planes[-1][0] == (1, 0, 2, 1)
    for (t, p, z, c), plane in planes:
        np.testing.assert_array_equal(plane, array[t, p, z, c])


def test_dataset_frame(tmp_path: Path) -> None:
    array = make_array()
    save_array(tmp_path / "scan", array)
    dataset = load_dataset(tmp_path / "scan")

    np.testing.assert_array_equal(dataset.frame(1, 0, 2, 1), array[1, 0, 2, 1])
    np.testing.assert_array_equal(dataset.channel(1), array[:, :, :, 1])
    with pytest.raises(IndexError, match=r"T index 2 out of bounds \(max: 1\)"):
        dataset.frame(2, 0, 0, 0)
    with pytest.raises(IndexError, match="Z index -1"):
        dataset.frame(0, 0, -1, 0)
    with pytest.raises(IndexError):
        dataset.channel(2)


def test_frame_stats(tmp_path: Path) -> None:
    frame = np.arange(1, 10, dtype=np.float32).reshape(1, 1, 1, 1, 3, 3)
    save_array(tmp_path / "grid", frame)
    stats = load_dataset(tmp_path / "grid").frame_stats(
        0, 0, 0, 0, saturation_threshold=8.0
    )
    assert stats.min == 1
    assert stats.max == 9
    assert stats.mean == 5
    assert stats.median == 5
    assert stats.std == pytest.approx(np.std(np.arange(1, 10)))
    assert stats.total_pixels == 9
    assert stats.saturated_pixels == 2
    assert stats.saturation_threshold == 8.0


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_written_files_follow_umask(tmp_path: Path) -> None:
    umask = os.umask(0o022)
    try:
        meta_path, data_path = save_array(tmp_path / "perm", make_array())
    finally:
        os.umask(umask)
    for path in (meta_path, data_path):
        assert stat.S_IMODE(path.stat().st_mode) == 0o644

    umask = os.umask(0o077)
    try:
        meta_path, data_path = save_array(tmp_path / "private", make_array())
    finally:
        os.umask(umask)
    for path in (meta_path, data_path):
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
