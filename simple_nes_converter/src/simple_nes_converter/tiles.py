"""Tile grid partitioning and per-tile color statistics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from PIL import Image

from .errors import ConversionError
from .palette import Color, color_distance

Box = Tuple[int, int, int, int]


@dataclass
class LocalColor:
    """One distinct color found in a tile and how many pixels use it."""

    color: Color
    pixels_using: int


@dataclass
class Tile:
    """A grid cell of the working image.

    ``box`` is the ``(left, top, right, bottom)`` region of the image the tile
    owns, already clamped to the image bounds, so edge tiles may be smaller
    than the nominal tile size.
    """

    x: int
    y: int
    box: Box
    image: Image.Image
    local_palette: List[LocalColor] = field(default_factory=list)
    palette_options: List[List[Color]] = field(default_factory=list)
    subpalette: List[Color] | None = None
    dithered: Image.Image | None = None

    @property
    def origin(self) -> Tuple[int, int]:
        return self.box[0], self.box[1]

    @property
    def size(self) -> Tuple[int, int]:
        left, top, right, bottom = self.box
        return right - left, bottom - top


def image_pixels(image: Image.Image) -> List[Color]:
    """Return the RGB pixels of ``image`` row by row."""

    data = image.convert("RGB").tobytes()
    return list(zip(data[0::3], data[1::3], data[2::3]))


def grid_size(width: int, height: int, tile_width: int, tile_height: int) -> Tuple[int, int]:
    """Number of tile columns and rows needed to cover ``width`` x ``height``."""

    if tile_width <= 0 or tile_height <= 0:
        raise ConversionError("Tile width and height must be positive")
    return (width + tile_width - 1) // tile_width, (height + tile_height - 1) // tile_height


def split_into_tiles(image: Image.Image, tile_width: int, tile_height: int) -> List[Tile]:
    """Split ``image`` into a row-major grid of tiles.

    The last row and column are clipped to the image instead of being padded,
    so the tiles cover every pixel exactly once.
    """

    width, height = image.size
    columns, rows = grid_size(width, height, tile_width, tile_height)
    tiles: List[Tile] = []

    for ty in range(rows):
        for tx in range(columns):
            left = tx * tile_width
            top = ty * tile_height
            box = (left, top, min(left + tile_width, width), min(top + tile_height, height))
            # crop() is lazy and shares pixel data; copy() detaches the tile.
            tiles.append(Tile(x=tx, y=ty, box=box, image=image.crop(box).copy()))

    return tiles


def get_local_palette(image: Image.Image) -> List[LocalColor]:
    """Count pixels per exact RGB value, most used first.

    Colors with equal counts keep the order in which they first appear when
    scanning the image row by row.
    """

    counts = Counter(image_pixels(image))
    used = [LocalColor(color=color, pixels_using=count) for color, count in counts.items()]
    used.sort(key=lambda entry: -entry.pixels_using)
    return used


def image_distance(
    image_a: Image.Image,
    image_b: Image.Image,
    distance: Callable[[Color, Color], float] = color_distance,
) -> float:
    """Sum of per-pixel color distances between two images of equal size."""

    if image_a.size != image_b.size:
        raise ConversionError(
            f"Cannot compare images of different sizes: {image_a.size} vs {image_b.size}"
        )
    return sum(
        distance(pixel_a, pixel_b)
        for pixel_a, pixel_b in zip(image_pixels(image_a), image_pixels(image_b))
    )
