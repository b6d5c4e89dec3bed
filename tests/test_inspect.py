"""Tests for validating and inspecting stored datasets."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from tpzcyx import (
    ChannelStats,
    Dimensions,
    Metadata,
    MetadataMismatchError,
    Report,
    Summary,
    dataset_paths,
    encode_metadata,
    generate_small_test_file,
    inspect,
    is_valid,
    load_and_inspect_6d_file,
    render_report,
    save_array,
    validate,
    validate_6d_file,
)


@pytest.fixture
def small(tmp_path: Path) -> Path:
    meta_path, _ = generate_small_test_file(tmp_path / "small")
    return meta_path


def test_validate(small: Path) -> None:
    summary = validate(small)
    assert isinstance(summary, Summary)
    assert summary.meta_path == small
    assert summary.data_path == small.with_suffix(".data")
    assert summary.dimensions == Dimensions.of(3, 1, 2, 2, 32, 32)
    assert summary.byte_size == 49152
    assert summary.pixel_size_um == 0.65
    assert summary.time_interval_s == 1.0
    assert summary.dtype == "f32"
    assert summary.format_version == 1


def test_inspect_statistics(tmp_path: Path) -> None:
    array = np.zeros((2, 1, 1, 2, 2, 2), dtype=np.float32)
    array[:, :, :, 0] = 7.0
    array[:, :, :, 1] = np.arange(8, dtype=np.float32).reshape(2, 1, 1, 2, 2)
    save_array(tmp_path / "stats", array, channel_names=["flat", "ramp"])

    report = inspect(tmp_path / "stats")
    assert report.loaded
    assert report.channels[0] == ChannelStats("flat", 7.0, 7.0, 7.0, 0.0)
    ramp = report.channels[1]
    assert ramp.name == "ramp"
    assert (ramp.min, ramp.max, ramp.mean) == (0.0, 7.0, 3.5)
    assert ramp.std == pytest.approx(np.arange(8).std())


def test_inspect_over_budget(tmp_path: Path) -> None:
    meta = Metadata.for_dimensions(Dimensions.of(1, 1, 1, 1, 16384, 16385))
    meta_path, data_path = dataset_paths(tmp_path / "huge")
    meta_path.write_bytes(encode_metadata(meta))
    with open(data_path, "wb") as f:
        f.truncate(meta.expected_bytes)

    report = inspect(meta_path)
    assert not report.loaded
    assert report.channels == ()
    assert report.summary.byte_size == meta.expected_bytes
    assert "exceeds the memory budget" in render_report(report)


def test_is_valid(small: Path) -> None:
    assert is_valid(small)
    assert is_valid(small.with_suffix(""))
    assert not is_valid(small.parent / "missing")

    data_path = small.with_suffix(".data")
    data_path.write_bytes(data_path.read_bytes()[:-4])
    assert not is_valid(small)
    with pytest.raises(MetadataMismatchError):
        validate(small)


def test_render_report(small: Path) -> None:
    text = render_report(validate(small))
    assert "Dimensions (T×P×Z×C×Y×X): 3×1×2×2×32×32" in text
    assert "Payload size: 49152 bytes" in text
    assert "0: Channel1" in text
    assert "1: Channel2" in text

    report = inspect(small)
    assert isinstance(report, Report)
    assert "min=" in render_report(report)


def test_validate_6d_file(small: Path, capsys: pytest.CaptureFixture[str]) -> None:
    summary = validate_6d_file(small)
    out = capsys.readouterr().out
    assert "✓ File validation successful" in out
    assert "3×1×2×2×32×32" in out
    assert summary.byte_size == 49152

    validate_6d_file(small, quiet=True)
    assert capsys.readouterr().out == ""


def test_load_and_inspect_6d_file(
    small: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    report = load_and_inspect_6d_file(small)
    out = capsys.readouterr().out
    assert "Channel1" in out
    assert "Channel2" in out
    assert len(report.channels) == 2

    load_and_inspect_6d_file(small, quiet=True)
    assert capsys.readouterr().out == ""


@pytest.mark.parametrize("chunk", [5, 64, 1 << 20])
def test_inspect_statistics_in_blocks(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, chunk: int
) -> None:
    rng = np.random.default_rng(0)
    array = rng.normal(1e4, 250.0, size=(3, 2, 2, 2, 6, 7)).astype(np.float32)
    save_array(tmp_path / "rand", array)

    monkeypatch.setattr("tpzcyx._inspect.STATS_CHUNK_VOXELS", chunk)
    report = inspect(tmp_path / "rand")
    for c, stats in enumerate(report.channels):
        values = array[:, :, :, c].astype(np.float64)
        assert stats.min == values.min()
        assert stats.max == values.max()
        assert stats.mean == pytest.approx(values.mean(), rel=1e-12)
        assert stats.std == pytest.approx(values.std(), rel=1e-9)
