"""Command-line interface for tpzcyx."""

from __future__ import annotations

import argparse
import logging
import sys

import tpzcyx
from tpzcyx._errors import TpzcyxError
from tpzcyx._patterns import (
    Circles,
    GaussianSpots,
    Gradient,
    MovingSpots,
    Noise,
    SineWave,
    Uniform,
    parse_pattern,
)

# pattern presets selectable with `generate --type`
PRESETS = {
    "noise": Noise(min=50.0, max=200.0, seed=0),
    "gaussian": GaussianSpots(count=3, sigma=6.0, amplitude=800.0, seed=0),
    "gradient": Gradient(min=0.0, max=1000.0),
    "circles": Circles(spacing=12.0, amplitude=500.0),
    "uniform": Uniform(value=150.0),
    "sine-wave": SineWave(frequency=4.0, amplitude=200.0, offset=200.0),
    "moving-spots": MovingSpots(
        count=2, sigma=5.0, amplitude=600.0, velocity=(2.0, 1.0), seed=0
    ),
}


def _print_header(title: str) -> None:
    """Print a formatted header."""
    print(f"\n{'=' * 60}")
    print(f" {title}")
    print(f"{'=' * 60}")


def _print_result(success: bool, message: str, indent: int = 0) -> None:
    """Print a result line with appropriate formatting."""
    prefix = "  " * indent
    if success:
        print(f"{prefix}✓ {message}")
    else:
        print(f"{prefix}✗ {message}")


def _print_written(meta_path: object, data_path: object) -> None:
    _print_result(True, f"Generated: {meta_path} and {data_path}")


def cmd_generate(args: argparse.Namespace) -> int:
    """Handle the generate subcommand."""
    if args.pattern_json:
        pattern = parse_pattern(args.pattern_json)
    else:
        pattern = PRESETS[args.type]
    if args.seed is not None and hasattr(pattern, "seed"):
        pattern = pattern.model_copy(update={"seed": args.seed})

    _print_header(f"Generating 6D file with {pattern.kind} pattern")
    dims = tpzcyx.Dimensions.of(
        args.time, args.positions, args.z_slices, args.channels, args.height, args.width
    )
    print(f"Dimensions (T×P×Z×C×Y×X): {dims}")
    paths = tpzcyx.generate_dataset(
        args.output,
        dims,
        [pattern] * dims.c,
        channel_names=[f"Channel_{i + 1}" for i in range(dims.c)],
        pixel_size_um=args.pixel_size,
        time_interval_s=args.time_interval,
        noise_level=args.noise_level,
        noise_seed=args.seed,
    )
    _print_written(*paths)
    return 0


def cmd_fixture(args: argparse.Namespace) -> int:
    """Handle the fixture subcommand."""
    if args.kind == "small":
        paths = tpzcyx.generate_small_test_file(args.output)
    else:
        paths = tpzcyx.generate_realistic_dataset(args.output)
    _print_written(*paths)
    return 0


def cmd_noise(args: argparse.Namespace) -> int:
    """Handle the noise subcommand."""
    paths = tpzcyx.generate_2d_noise_file(
        args.output, args.width, args.height, args.min, args.max, seed=args.seed
    )
    _print_written(*paths)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle the validate subcommand."""
    _print_header("6D File Validation")
    tpzcyx.validate_6d_file(args.path)
    print()
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Handle the info subcommand."""
    _print_header("6D File Information")
    tpzcyx.load_and_inspect_6d_file(args.path)
    print()
    return 0


def _add_dimension_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--time", type=int, default=3, help="Time points")
    parser.add_argument("--positions", type=int, default=1, help="Positions")
    parser.add_argument("--z-slices", type=int, default=2, help="Z slices")
    parser.add_argument("--channels", type=int, default=2, help="Number of channels")
    parser.add_argument("--height", type=int, default=64, help="Height")
    parser.add_argument("--width", type=int, default=64, help="Width")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tpzcyx",
        description="Generate, validate and inspect 6D (TPZCYX) microscopy files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tpzcyx generate --type gaussian -o test
  tpzcyx fixture small small_test
  tpzcyx noise noise --width 256 --height 256 --min 100 --max 800
  tpzcyx validate test.meta
  tpzcyx info test.meta
        """,
    )
    parser.add_argument(
        "--version", action="version", version=f"tpzcyx {tpzcyx.__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    gen_parser = subparsers.add_parser(
        "generate", help="Generate a 6D file with one pattern in every channel"
    )
    gen_parser.add_argument(
        "--type", choices=sorted(PRESETS), default="gaussian", help="Pattern preset"
    )
    gen_parser.add_argument(
        "--pattern-json",
        help='Explicit pattern as JSON, e.g. \'{"kind": "uniform", "value": 5}\'',
    )
    gen_parser.add_argument(
        "-o", "--output", default="test", help="Output base name (default: test)"
    )
    gen_parser.add_argument("--seed", type=int, help="Seed for random patterns")
    gen_parser.add_argument(
        "--pixel-size", type=float, default=0.65, help="Pixel size in µm"
    )
    gen_parser.add_argument(
        "--time-interval", type=float, default=1.0, help="Frame interval in seconds"
    )
    gen_parser.add_argument(
        "--noise-level",
        type=float,
        default=0.0,
        help="Add uniform noise in [-level, level] to every channel",
    )
    _add_dimension_args(gen_parser)

    fixture_parser = subparsers.add_parser(
        "fixture", help="Generate one of the fixed-size test datasets"
    )
    fixture_parser.add_argument("kind", choices=["small", "realistic"])
    fixture_parser.add_argument("output", help="Output base name")

    noise_parser = subparsers.add_parser(
        "noise", help="Generate a single 2D frame of uniform noise"
    )
    noise_parser.add_argument("output", help="Output base name")
    noise_parser.add_argument("--width", type=int, default=256)
    noise_parser.add_argument("--height", type=int, default=256)
    noise_parser.add_argument("--min", type=float, default=100.0)
    noise_parser.add_argument("--max", type=float, default=800.0)
    noise_parser.add_argument("--seed", type=int, help="Seed for the noise")

    validate_parser = subparsers.add_parser(
        "validate", help="Check a 6D file without loading its payload"
    )
    validate_parser.add_argument("path", help="Descriptor, payload, or base name")

    info_parser = subparsers.add_parser(
        "info", help="Load a 6D file and show per-channel statistics"
    )
    info_parser.add_argument("path", help="Descriptor, payload, or base name")
    return parser


COMMANDS = {
    "generate": cmd_generate,
    "fixture": cmd_fixture,
    "noise": cmd_noise,
    "validate": cmd_validate,
    "info": cmd_info,
}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
        )

    try:
        return COMMANDS[args.command](args)
    except TpzcyxError as e:
        _print_result(False, f"{e.title}: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
