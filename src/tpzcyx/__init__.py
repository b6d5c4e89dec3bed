"""Synthetic and real six dimensional (TPZCYX) microscopy volumes.

A dataset is a pair of files sharing a base name: a JSON descriptor
(`<name>.meta`) and a raw little-endian float32 payload (`<name>.data`) laid
out T, P, Z, C, Y, X with X varying fastest.

Generating and checking a dataset:
```python
import tpzcyx

tpzcyx.generate_small_test_file("small")
summary = tpzcyx.validate("small")
print(summary.dimensions)  # 3×1×2×2×32×32

report = tpzcyx.inspect("small")
for channel in report.channels:
    print(channel.name, channel.min, channel.max, channel.mean)
```
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tpzcyx")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "uninstalled"

from ._budget import (
    MAX_PAYLOAD_BYTES,
    check_budget,
    fits_budget,
    required_bytes,
)
from ._codec import (
    check_payload,
    dataset_paths,
    iter_planes,
    load_array,
    load_dataset,
    read_metadata,
    save_array,
    write_dataset,
)
from ._dataset import Dataset, FrameStats
from ._errors import (
    DatasetIOError,
    InvalidDimensionError,
    InvalidPatternParameter,
    MemoryLimitExceeded,
    MetadataMismatchError,
    ParseError,
    SizeOverflowError,
    TpzcyxError,
)
from ._generate import (
    generate_2d_noise_file,
    generate_custom_pattern_6d_file,
    generate_dataset,
    generate_mock_6d_file,
    generate_realistic_dataset,
    generate_small_test_file,
)
from ._inspect import (
    ChannelStats,
    Report,
    Summary,
    inspect,
    is_valid,
    load_and_inspect_6d_file,
    print_report,
    render_report,
    validate,
    validate_6d_file,
)
from ._metadata import Dimensions, Metadata, decode_metadata, encode_metadata
from ._patterns import (
    Circles,
    GaussianSpots,
    Gradient,
    MovingSpots,
    Noise,
    PatternSpec,
    SineWave,
    Uniform,
    check_pattern,
    intensity,
    parse_pattern,
    render_plane,
)

__all__ = [
    "MAX_PAYLOAD_BYTES",
    "ChannelStats",
    "Circles",
    "Dataset",
    "DatasetIOError",
    "Dimensions",
    "FrameStats",
    "GaussianSpots",
    "Gradient",
    "InvalidDimensionError",
    "InvalidPatternParameter",
    "MemoryLimitExceeded",
    "Metadata",
    "MetadataMismatchError",
    "MovingSpots",
    "Noise",
    "ParseError",
    "PatternSpec",
    "Report",
    "SineWave",
    "SizeOverflowError",
    "Summary",
    "TpzcyxError",
    "Uniform",
    "__version__",
    "check_budget",
    "check_pattern",
    "check_payload",
    "dataset_paths",
    "decode_metadata",
    "encode_metadata",
    "fits_budget",
    "generate_2d_noise_file",
    "generate_custom_pattern_6d_file",
    "generate_dataset",
    "generate_mock_6d_file",
    "generate_realistic_dataset",
    "generate_small_test_file",
    "inspect",
    "intensity",
    "is_valid",
    "iter_planes",
    "load_and_inspect_6d_file",
    "load_array",
    "load_dataset",
    "parse_pattern",
    "print_report",
    "read_metadata",
    "render_plane",
    "render_report",
    "required_bytes",
    "save_array",
    "validate",
    "validate_6d_file",
    "write_dataset",
]
