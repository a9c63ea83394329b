"""Simple image to NES palette converter.

This module reduces a full-color image to the limits of the NES background
palette: one shared background color and a handful of 4-color subpalettes,
one of which is assigned to each tile. It can be invoked through the CLI
(``python -m simple_nes_converter``) or imported to convert a Pillow image.
"""

from .converter import (
    ConversionResult,
    ConvertOptions,
    TileAssigner,
    convert_image,
    convert_png,
    format_subpalettes_text,
    render_palette_swatches,
)
from .dither import DITHER_ALGORITHMS, dither_image
from .errors import ConversionError, MalformedPaletteError, NoBackgroundSubpaletteError
from .palette import (
    CANONICAL_BLACK,
    COLORS_PER_SUBPALETTE,
    NES_COLORS,
    NES_PALETTE,
    SUBPALETTES_PER_IMAGE,
    NesColorTable,
    parse_custom_palette,
)
from .subpalettes import RandomSelection, ScoreSelection

__all__ = [
    "CANONICAL_BLACK",
    "COLORS_PER_SUBPALETTE",
    "ConversionError",
    "ConversionResult",
    "ConvertOptions",
    "DITHER_ALGORITHMS",
    "MalformedPaletteError",
    "NES_COLORS",
    "NES_PALETTE",
    "NesColorTable",
    "NoBackgroundSubpaletteError",
    "RandomSelection",
    "SUBPALETTES_PER_IMAGE",
    "ScoreSelection",
    "TileAssigner",
    "convert_image",
    "convert_png",
    "dither_image",
    "format_subpalettes_text",
    "parse_custom_palette",
    "render_palette_swatches",
]
