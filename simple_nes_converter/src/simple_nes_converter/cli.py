"""Command line interface for the simple NES converter."""

from __future__ import annotations

import argparse
import logging
import sys
import warnings
from pathlib import Path
from typing import Iterable, List

from .converter import (
    SCALE_CONTAIN,
    SCALE_MODES,
    TARGET_HEIGHT,
    TARGET_WIDTH,
    ConvertOptions,
    convert_png,
    format_subpalettes_text,
)
from .dither import DITHER_ALGORITHMS
from .errors import ConversionError
from .palette import NES_PALETTE, SUBPALETTES_PER_IMAGE, Color, NesColorTable, normalize_color
from .subpalettes import SELECTION_POLICIES

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp"}


def iter_images(paths: Iterable[str]) -> List[Path]:
    results: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            if path.suffix.lower() not in IMAGE_SUFFIXES:
                raise ConversionError(f"Unsupported file type: {path}")
            results.append(path)
        elif path.is_dir():
            for entry in sorted(path.iterdir()):
                if entry.is_file() and entry.suffix.lower() in IMAGE_SUFFIXES:
                    results.append(entry)
        else:
            raise ConversionError(f"Input path does not exist: {path}")
    if not results:
        raise ConversionError("No image files were found in the provided inputs.")
    return results


def parse_color(text: str) -> Color:
    """Parse ``r,g,b``, ``#rrggbb`` or a two-digit NES color index such as ``0f``."""

    text = text.strip()
    if "," in text:
        parts = text.split(",")
        if len(parts) != 3:
            raise ConversionError("Color must have exactly three components")
        try:
            return normalize_color([int(part) for part in parts])
        except ValueError as exc:
            raise ConversionError(f"Invalid color: {text}") from exc
    if len(text) == 2 and text.lower() in NES_PALETTE:
        return NES_PALETTE[text.lower()]
    return normalize_color(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Convert images to NES background palette limits.\n"
            "The picture is dithered to the NES colors, split into tiles, and every tile gets\n"
            "one 4-color subpalette; all subpalettes share a single background color.\n"
            "Subpalettes are written as NES color indices, e.g. 0f,16,27,30."
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        help="Image files or folders containing images (non-recursive)",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        required=True,
        help="Destination directory for converted .png files",
    )
    parser.add_argument("--prefix", default="", help="Optional prefix for output filenames")
    parser.add_argument("--suffix", default="", help="Optional suffix for output filenames")
    parser.add_argument("--width", type=int, default=TARGET_WIDTH, help="Output width")
    parser.add_argument("--height", type=int, default=TARGET_HEIGHT, help="Output height")
    parser.add_argument(
        "--scale-mode",
        choices=SCALE_MODES,
        default=SCALE_CONTAIN,
        help="How to fit the source when aspect ratios differ",
    )
    parser.add_argument(
        "--background",
        help="Force the shared background color (e.g., 0f, 0,0,0 or #000000)",
    )
    parser.add_argument(
        "--custom-palette",
        help=(
            "Explicit subpalettes as NES indices, e.g. '0f162730 0f1a2a3a'. "
            "Groups of 3 when --background is set, else groups of 4."
        ),
    )
    parser.add_argument(
        "--quantization-step",
        type=int,
        default=2,
        help="Pixel block size of the first, full-palette pass",
    )
    parser.add_argument(
        "--tile-quantization-step",
        type=int,
        default=1,
        help="Pixel block size used when trying subpalettes on tiles",
    )
    parser.add_argument(
        "--dither",
        choices=DITHER_ALGORITHMS,
        default="ordered",
        help="Dithering algorithm",
    )
    parser.add_argument("--tile-width", type=int, default=8, help="Width of a tile that gets a subpalette")
    parser.add_argument("--tile-height", type=int, help="Height of a tile (defaults to tile width)")
    parser.add_argument(
        "--tile-sample-width",
        type=int,
        help="Width of the region sampled for colors (defaults to twice the tile width)",
    )
    parser.add_argument(
        "--tile-sample-height",
        type=int,
        help="Height of the sampled region (defaults to the sample width)",
    )
    parser.add_argument("--upscale", type=int, default=1, help="Integer factor to enlarge the output")
    parser.add_argument(
        "--output-palette",
        action="store_true",
        help="Write palette swatches instead of the converted image",
    )
    parser.add_argument(
        "--palette-text",
        action="store_true",
        help="Also write the assigned subpalettes as a .txt file next to each image",
    )
    parser.add_argument(
        "--selection",
        choices=SELECTION_POLICIES,
        default="score",
        help="How the candidate subpalette pool is chosen",
    )
    parser.add_argument("--seed", type=int, help="Random seed for --selection random")
    parser.add_argument(
        "--candidate-limit",
        type=int,
        default=SUBPALETTES_PER_IMAGE * 8,
        help="Number of subpalettes tried on each tile",
    )
    parser.add_argument(
        "--legacy-distance",
        action="store_true",
        help="Use the legacy color distance, which ignores blue differences",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite existing files without prompting",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress")

    return parser


def build_options(args: argparse.Namespace) -> ConvertOptions:
    options = ConvertOptions()
    options.width = args.width
    options.height = args.height
    options.scale_mode = args.scale_mode
    if args.background:
        options.background_color = parse_color(args.background)
    options.custom_palette = args.custom_palette
    options.quantization_step = args.quantization_step
    options.tile_quantization_step = args.tile_quantization_step
    options.dither_algorithm = args.dither
    options.tile_width = args.tile_width
    options.tile_height = args.tile_height
    options.tile_sample_width = args.tile_sample_width
    options.tile_sample_height = args.tile_sample_height
    options.upscale = args.upscale
    options.output_palette = args.output_palette
    options.selection = args.selection
    options.seed = args.seed
    options.candidate_limit = args.candidate_limit
    options.legacy_distance = args.legacy_distance
    return options


def ensure_unique_names(paths: List[Path], prefix: str, suffix: str) -> List[str]:
    names: List[str] = []
    seen = set()
    for path in paths:
        name = f"{prefix}{path.stem}{suffix}.png"
        if name in seen:
            raise ConversionError(f"Duplicate output name would occur: {name}")
        seen.add(name)
        names.append(name)
    return names


def write_outputs(
    inputs: List[Path],
    names: List[str],
    options: ConvertOptions,
    output_dir: Path,
    force: bool,
    palette_text: bool,
) -> None:
    conflicts = []
    for name in names:
        targets = [output_dir / name]
        if palette_text:
            targets.append((output_dir / name).with_suffix(".txt"))
        conflicts.extend(str(target) for target in targets if target.exists() and not force)
    if conflicts:
        raise ConversionError(
            "Output files already exist (use --force to overwrite):\n" + "\n".join(conflicts)
        )

    output_dir.mkdir(parents=True, exist_ok=True)
    table = NesColorTable()

    for src, name in zip(inputs, names):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = convert_png(src, options)
        for warning in caught:
            if not issubclass(warning.category, UserWarning):
                continue
            print(f"Warning: {warning.message}")

        target = output_dir / name
        result.image.save(target)
        print(f"wrote {target}")

        if palette_text:
            text_target = target.with_suffix(".txt")
            text_target.write_text(format_subpalettes_text(result.subpalettes, table) + "\n")
            print(f"wrote {text_target}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    try:
        options = build_options(args)
        inputs = iter_images(args.inputs)
        output_dir = Path(args.output_dir)
        names = ensure_unique_names(inputs, args.prefix, args.suffix)
        write_outputs(inputs, names, options, output_dir, args.force, args.palette_text)
        return 0
    except ConversionError as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
