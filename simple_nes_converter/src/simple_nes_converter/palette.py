"""NES hardware palette, color normalization and nearest-color matching."""

# Reference: NES PPU palette
# - 64 color indices (00h-3Fh). Several indices (0Dh-0Fh, 1Dh-1Fh, 2Eh-2Fh,
#   3Eh-3Fh) render as black; most games use 0Fh, so that one is canonical.
# - The picture uses 4 background subpalettes of 4 colors. The first color of
#   every subpalette is the shared background (universal) color.
# - Each 16x16 attribute area selects one subpalette; this converter works on
#   configurable tiles (8x8 by default).

from __future__ import annotations

import math
import re
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

from .errors import ConversionError, MalformedPaletteError

Color = Tuple[int, int, int]
DistanceFunc = Callable[[Color, Color], float]

COLORS_PER_SUBPALETTE = 4
SUBPALETTES_PER_IMAGE = 4
CANONICAL_BLACK = "0f"

NES_PALETTE: Dict[str, Color] = {
    "00": (0x7C, 0x7C, 0x7C),
    "01": (0x09, 0x23, 0xF8),
    "02": (0x04, 0x17, 0xB9),
    "03": (0x44, 0x30, 0xB9),
    "04": (0x92, 0x0F, 0x82),
    "05": (0xA6, 0x04, 0x24),
    "06": (0xA6, 0x12, 0x0D),
    "07": (0x86, 0x15, 0x08),
    "08": (0x4F, 0x2F, 0x04),
    "09": (0x0C, 0x77, 0x0F),
    "0a": (0x09, 0x67, 0x0B),
    "0b": (0x06, 0x57, 0x07),
    "0c": (0x03, 0x40, 0x57),
    "0d": (0x00, 0x00, 0x00),
    "0e": (0x00, 0x00, 0x00),
    "0f": (0x00, 0x00, 0x00),  # canonical black
    "10": (0xBC, 0xBC, 0xBC),
    "11": (0x14, 0x7C, 0xF5),
    "12": (0x0F, 0x5E, 0xF4),
    "13": (0x68, 0x4D, 0xF8),
    "14": (0xD6, 0x1E, 0xCA),
    "15": (0xE2, 0x0E, 0x5A),
    "16": (0xF5, 0x3A, 0x1B),
    "17": (0xE2, 0x5C, 0x22),
    "18": (0xAB, 0x7B, 0x19),
    "19": (0x1A, 0xB6, 0x1E),
    "1a": (0x17, 0xA6, 0x1A),
    "1b": (0x17, 0xA7, 0x49),
    "1c": (0x12, 0x88, 0x87),
    "1d": (0x00, 0x00, 0x00),
    "1e": (0x00, 0x00, 0x00),
    "1f": (0x00, 0x00, 0x00),
    "20": (0xF8, 0xF8, 0xF8),
    "21": (0x44, 0xBD, 0xFA),
    "22": (0x6A, 0x8B, 0xF9),
    "23": (0x98, 0x7C, 0xF5),
    "24": (0xF6, 0x7D, 0xF6),
    "25": (0xF6, 0x5B, 0x98),
    "26": (0xF6, 0x78, 0x5D),
    "27": (0xFA, 0x9F, 0x4E),
    "28": (0xF7, 0xB7, 0x2A),
    "29": (0xBA, 0xF6, 0x38),
    "2a": (0x5D, 0xD6, 0x5B),
    "2b": (0x60, 0xF6, 0x9B),
    "2c": (0x27, 0xE7, 0xD8),
    "2d": (0x78, 0x78, 0x78),
    "2e": (0x00, 0x00, 0x00),
    "2f": (0x00, 0x00, 0x00),
    "30": (0xFC, 0xFC, 0xFC),
    "31": (0xA6, 0xE4, 0xFB),
    "32": (0xB8, 0xB9, 0xF6),
    "33": (0xD8, 0xBA, 0xF6),
    "34": (0xF7, 0xBA, 0xF7),
    "35": (0xF7, 0xA5, 0xC0),
    "36": (0xEF, 0xD0, 0xB2),
    "37": (0xFB, 0xDF, 0xAB),
    "38": (0xF7, 0xD7, 0x7E),
    "39": (0xD9, 0xF6, 0x80),
    "3a": (0xBA, 0xF7, 0xBA),
    "3b": (0xBA, 0xF7, 0xD9),
    "3c": (0x2C, 0xFC, 0xFB),
    "3d": (0xD8, 0xD8, 0xD8),
    "3e": (0x00, 0x00, 0x00),
    "3f": (0x00, 0x00, 0x00),
}

BLACK: Color = NES_PALETTE[CANONICAL_BLACK]


def _invert_palette(palette: Mapping[str, Color]) -> Dict[Color, str]:
    """Map each distinct RGB value back to one hardware index.

    The first index in enumeration order wins, except for black, which always
    resolves to :data:`CANONICAL_BLACK`.
    """

    inverse: Dict[Color, str] = {}
    for index, color in palette.items():
        inverse.setdefault(color, index)
    inverse[palette[CANONICAL_BLACK]] = CANONICAL_BLACK
    return inverse


_NES_INVERSE = _invert_palette(NES_PALETTE)

# Distinct hardware colors, black first. This is the default global palette.
NES_COLORS: List[Color] = sorted(_NES_INVERSE, key=lambda color: color != BLACK)

_HEX_DIGITS = re.compile(r"[^0-9a-f]")


def normalize_color(value: object) -> Color:
    """Convert a tuple, dict, hex string or ``0xRRGGBB`` integer to ``(r, g, b)``."""

    if isinstance(value, (tuple, list)):
        if len(value) < 3:
            raise ConversionError(f"Color must have at least three components: {value!r}")
        components = tuple(int(component) for component in value[:3])
    elif isinstance(value, Mapping):
        components = (
            int(value.get("r", value.get("red", 0))),
            int(value.get("g", value.get("green", 0))),
            int(value.get("b", value.get("blue", 0))),
        )
    elif isinstance(value, str):
        digits = _HEX_DIGITS.sub("", value.lower())
        if len(digits) == 3:
            digits = "".join(digit * 2 for digit in digits)
        if len(digits) != 6:
            raise ConversionError(f"Invalid hex color: {value!r}")
        number = int(digits, 16)
        components = ((number >> 16) & 0xFF, (number >> 8) & 0xFF, number & 0xFF)
    elif isinstance(value, int) and not isinstance(value, bool):
        components = ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)
    else:
        raise ConversionError(f"Unsupported color value: {value!r}")

    if any(not (0 <= component <= 255) for component in components):
        raise ConversionError(f"Color components must be between 0 and 255: {value!r}")
    return components  # type: ignore[return-value]


def color_key(color: Color) -> str:
    r, g, b = color
    return f"#{r:02x}{g:02x}{b:02x}"


def palette_key(palette: Sequence[Color]) -> str:
    """Canonical key of a subpalette: its sorted, comma-joined color keys."""

    return ",".join(sorted(color_key(color) for color in palette))


def color_distance(a: Color, b: Color) -> float:
    """Euclidean distance between two RGB colors."""

    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


def skewed_color_distance(a: Color, b: Color) -> float:
    """Legacy distance metric kept for output parity.

    The blue term compares ``b`` with itself, so blue differences never count.
    Only useful to reproduce earlier conversions.
    """

    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (b[2] - b[2]) ** 2)


class NesColorTable:
    """Nearest-color lookup against the NES hardware palette.

    Each table owns its match cache. The hardware palette never changes, so
    entries are only ever added.
    """

    def __init__(self, distance: DistanceFunc = color_distance):
        self.distance = distance
        self._inverse = _NES_INVERSE
        self._cache: Dict[Color, str] = {}

    @property
    def colors(self) -> List[Color]:
        return list(NES_COLORS)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def match(self, value: object) -> str:
        """Return the hardware index closest to ``value``.

        Exact matches skip the distance scan. Ties keep the entry that comes
        first in enumeration order.
        """

        rgb = normalize_color(value)
        cached = self._cache.get(rgb)
        if cached is not None:
            return cached

        index = self._inverse.get(rgb)
        if index is None:
            best_dist = float("inf")
            for candidate, candidate_index in self._inverse.items():
                dist = self.distance(rgb, candidate)
                if dist < best_dist:
                    best_dist = dist
                    index = candidate_index

        assert index is not None
        self._cache[rgb] = index
        return index

    def rgb(self, index: str) -> Color:
        try:
            return NES_PALETTE[index.lower()]
        except KeyError as exc:
            raise ConversionError(f"Unknown NES color index: {index}") from exc

    def snap(self, value: object) -> Color:
        """Return the hardware RGB value nearest to ``value``."""

        return self.rgb(self.match(value))

    def sort_key(self, value: object) -> int:
        """Canonical color ordering: the hardware index as an integer."""

        return int(self.match(value), 16)


def create_palette_sorter(
    background: Color, table: NesColorTable
) -> Callable[[Color], Tuple[int, int]]:
    """Return a sort key that puts ``background`` first, then orders by index."""

    def sort_key(color: Color) -> Tuple[int, int]:
        if color == background:
            return (0, 0)
        return (1, table.sort_key(color))

    return sort_key


def parse_custom_palette(
    text: str, background: Color | None = None
) -> List[List[Color]]:
    """Parse a string of hardware indices into explicit subpalettes.

    Non-hex characters are ignored, so ``"0f 16 27 30"`` and ``"0F162730"``
    are equivalent. The colors are split into chunks of four, or of three when
    a ``background`` override is supplied (it is prepended to each chunk).
    """

    digits = _HEX_DIGITS.sub("", text.lower())
    if not digits:
        raise MalformedPaletteError("Custom palette does not contain any color indices")
    if len(digits) % 2 != 0:
        raise MalformedPaletteError(
            f"Custom palette has an odd number of hex digits ({len(digits)}): {text!r}"
        )

    colors: List[Color] = []
    for offset in range(0, len(digits), 2):
        index = digits[offset : offset + 2]
        if index not in NES_PALETTE:
            raise MalformedPaletteError(f"Custom palette index out of range (00-3f): {index}")
        colors.append(NES_PALETTE[index])

    chunk_size = COLORS_PER_SUBPALETTE - 1 if background is not None else COLORS_PER_SUBPALETTE
    if len(colors) % chunk_size != 0:
        raise MalformedPaletteError(
            f"Custom palette must list colors in groups of {chunk_size}; got {len(colors)} colors"
        )

    subpalettes: List[List[Color]] = []
    for offset in range(0, len(colors), chunk_size):
        chunk = colors[offset : offset + chunk_size]
        if background is not None:
            chunk.insert(0, background)
        subpalettes.append(list(dict.fromkeys(chunk)))
    return subpalettes
