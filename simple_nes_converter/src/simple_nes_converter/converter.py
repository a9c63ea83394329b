"""Core conversion logic for the simple NES converter."""

# Pipeline overview
# Step                    | Input                 | Output
# ------------------------|-----------------------|-----------------------------------------
# Canvas                  | source image          | width x height RGB canvas (scaled)
# Full-palette pass       | canvas                | canvas dithered with every NES color
# Color sampling          | full-palette pass     | per sampling tile: local palette, options
# Aggregation             | local palettes        | ranked colors, subpalette candidates
# Background + repair     | candidates            | candidates that all hold the background
# Candidate pool          | repaired candidates   | at most candidate_limit subpalettes
# Tile assignment         | canvas tiles + pool   | one subpalette and dithered pixels per tile

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

from PIL import Image

from .dither import DITHER_ALGORITHMS, dither_image
from .errors import ConversionError
from .palette import (
    COLORS_PER_SUBPALETTE,
    NES_COLORS,
    SUBPALETTES_PER_IMAGE,
    Color,
    DistanceFunc,
    NesColorTable,
    color_distance,
    color_key,
    create_palette_sorter,
    parse_custom_palette,
    skewed_color_distance,
)
from .subpalettes import (
    SELECTION_POLICIES,
    ColorUsage,
    SelectionPolicy,
    SubpaletteCandidate,
    UsageAggregator,
    create_selection_policy,
    limit_subpalettes,
    repair_subpalettes,
    select_background_color,
)
from .tiles import Tile, get_local_palette, image_distance, split_into_tiles

logger = logging.getLogger(__name__)

DitherFunc = Callable[[Image.Image, Sequence[Color], int, str], Image.Image]

SCALE_STRETCH = "stretch"
SCALE_ASPECT = "aspect"
SCALE_CONTAIN = "contain"
SCALE_COVER = "cover"
SCALE_MODES = (SCALE_STRETCH, SCALE_ASPECT, SCALE_CONTAIN, SCALE_COVER)

TARGET_WIDTH = 256
TARGET_HEIGHT = 240
SWATCH_SIZE = 16
SWATCH_COLUMNS = 16


@dataclass
class ConvertOptions:
    """Options for scaling, dithering and subpalette selection."""

    width: int = TARGET_WIDTH
    height: int = TARGET_HEIGHT
    scale_mode: str = SCALE_CONTAIN  # stretch, aspect, contain, cover
    global_palette: List[Color] = field(default_factory=lambda: list(NES_COLORS))
    background_color: Color | None = None
    custom_palette: str | None = None
    quantization_step: int = 2
    tile_quantization_step: int = 1
    dither_algorithm: str = "ordered"  # ordered, diffusion, atkinson, none
    tile_width: int = 8
    tile_height: int | None = None  # defaults to tile_width
    tile_sample_width: int | None = None  # defaults to tile_width * 2
    tile_sample_height: int | None = None  # defaults to tile_sample_width
    upscale: int = 1
    output_palette: bool = False
    selection: str = "score"  # score, random
    seed: int | None = None
    candidate_limit: int = SUBPALETTES_PER_IMAGE * 8
    legacy_distance: bool = False

    @property
    def tile_size(self) -> Tuple[int, int]:
        tile_height = self.tile_width if self.tile_height is None else self.tile_height
        return self.tile_width, tile_height

    @property
    def sample_size(self) -> Tuple[int, int]:
        sample_width = self.tile_width * 2 if self.tile_sample_width is None else self.tile_sample_width
        sample_height = sample_width if self.tile_sample_height is None else self.tile_sample_height
        return sample_width, sample_height


@dataclass
class ConversionResult:
    image: Image.Image
    background_color: Color
    tiles: List[Tile]
    sample_tiles: List[Tile]
    colors: List[ColorUsage]
    candidates: List[SubpaletteCandidate]
    subpalettes: List[List[Color]]


def validate_options(options: ConvertOptions) -> None:
    if options.width <= 0 or options.height <= 0:
        raise ConversionError("Output width and height must be positive")
    if options.scale_mode not in SCALE_MODES:
        raise ConversionError(f"Unknown scale mode: {options.scale_mode}")
    if options.dither_algorithm not in DITHER_ALGORITHMS:
        raise ConversionError(f"Unknown dither algorithm: {options.dither_algorithm}")
    if options.selection not in SELECTION_POLICIES:
        raise ConversionError(f"Unknown selection policy: {options.selection}")
    if options.quantization_step < 1 or options.tile_quantization_step < 1:
        raise ConversionError("Quantization steps must be at least 1")
    if min(options.tile_size + options.sample_size) <= 0:
        raise ConversionError("Tile and sampling sizes must be positive")
    if options.upscale < 1:
        raise ConversionError("Upscale factor must be at least 1")
    if options.candidate_limit < 1:
        raise ConversionError("Candidate limit must be at least 1")
    if not options.global_palette:
        raise ConversionError("Global palette must contain at least one color")


def canvas_size(image: Image.Image, options: ConvertOptions) -> Tuple[int, int]:
    if options.scale_mode == SCALE_ASPECT:
        return options.width, max(1, int(round(options.width * image.height / image.width)))
    return options.width, options.height


def resize_image(image: Image.Image, options: ConvertOptions, fill: Color) -> Image.Image:
    """Scale ``image`` onto the working canvas according to ``scale_mode``.

    - ``stretch``: ignore the aspect ratio.
    - ``aspect``: keep the width and derive the canvas height from the source.
    - ``contain``: fit inside the canvas, letterboxing with ``fill``.
    - ``cover``: fill the canvas, cropping the source around its center.
    """

    image = image.convert("RGB")
    width, height = canvas_size(image, options)
    logger.info("Using %r as scale mode", options.scale_mode)

    if options.scale_mode in (SCALE_STRETCH, SCALE_ASPECT):
        return image.resize((width, height), Image.LANCZOS)

    src_ratio = image.width / image.height
    dest_ratio = width / height

    if options.scale_mode == SCALE_COVER:
        left, top, right, bottom = 0, 0, image.width, image.height
        if src_ratio > dest_ratio:
            src_width = int(round(image.height * dest_ratio))
            left = (image.width - src_width) // 2
            right = left + src_width
        elif src_ratio < dest_ratio:
            src_height = int(round(image.width / dest_ratio))
            top = (image.height - src_height) // 2
            bottom = top + src_height
        return image.crop((left, top, right, bottom)).resize((width, height), Image.LANCZOS)

    canvas = Image.new("RGB", (width, height), tuple(fill))
    dest_width, dest_height = width, height
    if src_ratio > dest_ratio:
        dest_height = max(1, int(round(width / src_ratio)))
    elif src_ratio < dest_ratio:
        dest_width = max(1, int(round(height * src_ratio)))
    offset = ((width - dest_width) // 2, (height - dest_height) // 2)
    canvas.paste(image.resize((dest_width, dest_height), Image.LANCZOS), offset)
    return canvas


class TileAssigner:
    """Pick the best subpalette from the candidate pool for each tile.

    Every tile is dithered once with the full palette as a reference and once
    per candidate; the candidate whose result is closest to the reference
    wins, the earliest one on ties. Tiles are judged independently, so
    nothing caps how many distinct subpalettes the whole image ends up
    using. Subclasses can override :meth:`assign` to enforce such a cap.
    """

    def __init__(
        self,
        candidates: Sequence[SubpaletteCandidate],
        global_palette: Sequence[Color],
        dither: DitherFunc = dither_image,
        step: int = 1,
        algorithm: str = "ordered",
        distance: DistanceFunc = color_distance,
    ):
        if not candidates:
            raise ConversionError("Cannot assign subpalettes from an empty candidate pool")
        self.candidates = list(candidates)
        self.global_palette = list(global_palette)
        self.dither = dither
        self.step = step
        self.algorithm = algorithm
        self.distance = distance

    def assign_tile(self, tile: Tile) -> SubpaletteCandidate:
        reference = self.dither(tile.image, self.global_palette, self.step, self.algorithm)

        best: SubpaletteCandidate | None = None
        best_image: Image.Image | None = None
        best_distance = float("inf")
        for candidate in self.candidates:
            dithered = self.dither(tile.image, candidate.palette, self.step, self.algorithm)
            distance = image_distance(reference, dithered, self.distance)
            if distance < best_distance:
                best, best_image, best_distance = candidate, dithered, distance

        assert best is not None and best_image is not None
        tile.subpalette = list(best.palette)
        tile.dithered = best_image
        return best

    def assign(self, tiles: Sequence[Tile]) -> List[List[Color]]:
        """Assign every tile and return the distinct subpalettes used, in first-use order."""

        logger.info(
            "Assigning subpalettes to %d tiles from %d options", len(tiles), len(self.candidates)
        )
        used: Dict[str, List[Color]] = {}
        for tile in tiles:
            chosen = self.assign_tile(tile)
            used.setdefault(chosen.key, list(chosen.palette))
        return list(used.values())


def upscale_image(image: Image.Image, factor: int) -> Image.Image:
    if factor <= 1:
        return image
    return image.resize((image.width * factor, image.height * factor), Image.NEAREST)


def render_palette_swatches(
    palette: Sequence[Color],
    swatch_size: int = SWATCH_SIZE,
    columns: int | None = None,
) -> Image.Image:
    """Draw ``palette`` as a grid of square swatches."""

    if not palette:
        raise ConversionError("Cannot render an empty palette")
    columns = columns or int(math.ceil(math.sqrt(len(palette))))
    rows = int(math.ceil(len(palette) / columns))
    image = Image.new("RGB", (columns * swatch_size, rows * swatch_size))
    for i, color in enumerate(palette):
        x = (i % columns) * swatch_size
        y = (i // columns) * swatch_size
        image.paste(tuple(color), (x, y, x + swatch_size, y + swatch_size))
    return image


def format_subpalettes_text(
    subpalettes: Sequence[Sequence[Color]], table: NesColorTable | None = None
) -> str:
    """One subpalette per line, as comma separated NES color indices."""

    table = table or NesColorTable()
    return "\n".join(",".join(table.match(color) for color in palette) for palette in subpalettes)


def _collect_custom_candidates(
    aggregator: UsageAggregator, subpalettes: Sequence[Sequence[Color]]
) -> None:
    for palette in subpalettes:
        for color in palette:
            aggregator.add_color(color)
        aggregator.add_subpalette(palette)


def _collect_sampled_candidates(
    aggregator: UsageAggregator, image: Image.Image, sample_size: Tuple[int, int]
) -> List[Tile]:
    samples = split_into_tiles(image, *sample_size)
    for sample in samples:
        sample.local_palette = get_local_palette(sample.image)
        sample.palette_options = aggregator.add_tile(sample.local_palette)
    return samples


def convert_image(
    image: Image.Image,
    options: ConvertOptions | None = None,
    dither: DitherFunc = dither_image,
    policy: SelectionPolicy | None = None,
) -> ConversionResult:
    """Reduce ``image`` to NES palette limits.

    ``dither`` and ``policy`` replace the dithering primitive and the
    candidate selection policy; by default they come from ``options``.
    """

    options = options or ConvertOptions()
    validate_options(options)

    table = NesColorTable(skewed_color_distance if options.legacy_distance else color_distance)
    global_palette = [tuple(color) for color in options.global_palette]

    logger.info("Drawing image to canvas")
    canvas = resize_image(image, options, fill=global_palette[0])
    tiles = split_into_tiles(canvas, *options.tile_size)

    logger.info("Creating full image")
    full = dither(canvas, global_palette, options.quantization_step, options.dither_algorithm)

    override = None
    if options.background_color is not None:
        override = table.snap(options.background_color)

    aggregator = UsageAggregator(COLORS_PER_SUBPALETTE)
    custom_subpalettes = None
    sample_tiles: List[Tile] = []
    if options.custom_palette:
        logger.info("Processing custom palette")
        custom_subpalettes = parse_custom_palette(options.custom_palette, override)
        _collect_custom_candidates(aggregator, custom_subpalettes)
    else:
        logger.info("Processing color information")
        sample_tiles = _collect_sampled_candidates(aggregator, full, options.sample_size)

    logger.info("Checking color usage")
    colors = aggregator.rank_colors()

    logger.info("Selecting background color")
    background = select_background_color(colors, override, custom_subpalettes)
    logger.info("%d NES colors used", len(colors))
    logger.info("Using %s as background color", color_key(background))

    if custom_subpalettes is None:
        candidates = repair_subpalettes(aggregator.subpalettes, background, table)
    else:
        candidates = dict(aggregator.subpalettes)

    policy = policy or create_selection_policy(options.selection, options.seed)
    pool = limit_subpalettes(candidates, background, policy, options.candidate_limit, colors)

    assigner = TileAssigner(
        pool,
        global_palette,
        dither=dither,
        step=options.tile_quantization_step,
        algorithm=options.dither_algorithm,
        distance=table.distance,
    )
    used = assigner.assign(tiles)

    output = canvas.copy()
    for tile in tiles:
        output.paste(tile.dithered, tile.origin)

    sorter = create_palette_sorter(background, table)
    subpalettes = [sorted(palette, key=sorter) for palette in used]
    if len(subpalettes) > SUBPALETTES_PER_IMAGE:
        warnings.warn(
            f"{len(subpalettes)} distinct subpalettes were assigned; "
            f"NES hardware shows {SUBPALETTES_PER_IMAGE} at a time"
        )

    if options.output_palette:
        logger.info("Writing palette colors to image")
        output = render_palette_swatches(
            [color for palette in subpalettes for color in palette],
            SWATCH_SIZE,
            SWATCH_COLUMNS,
        )
    elif options.upscale > 1:
        logger.info("Upscaling %dx", options.upscale)
        output = upscale_image(output, options.upscale)

    return ConversionResult(
        image=output,
        background_color=background,
        tiles=tiles,
        sample_tiles=sample_tiles,
        colors=colors,
        candidates=pool,
        subpalettes=subpalettes,
    )


def convert_png(path: str | Path, options: ConvertOptions | None = None) -> ConversionResult:
    path = Path(path)
    try:
        with Image.open(path) as img:
            img.load()
            return convert_image(img, options)
    except FileNotFoundError as exc:
        raise ConversionError(f"Input file not found: {path}") from exc
    except OSError as exc:
        raise ConversionError(f"Failed to read image: {path}") from exc
