"""Palette reduction with dithering.

``dither_image`` is the only primitive the subpalette search needs: it maps a
Pillow image and a list of colors to a new RGB image that only uses those
colors. ``step`` groups the image into ``step`` x ``step`` pixel blocks that
each receive one color, which gives the chunky look of low-resolution art.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple

from PIL import Image

from .errors import ConversionError
from .palette import Color
from .tiles import image_pixels

DITHER_ALGORITHMS = ("ordered", "diffusion", "atkinson", "none")

BAYER_4X4 = (
    (0, 8, 2, 10),
    (12, 4, 14, 6),
    (3, 11, 1, 9),
    (15, 7, 13, 5),
)
ORDERED_SPREAD = 64.0

# (dx, dy) neighbours receiving 1/8 of the error each; 2/8 is discarded.
ATKINSON_OFFSETS = ((1, 0), (2, 0), (-1, 1), (0, 1), (1, 1), (0, 2))


def _nearest_color_func(palette: Sequence[Color]) -> Callable[[Color], Color]:
    cache: Dict[Color, Color] = {}

    def nearest(rgb: Color) -> Color:
        found = cache.get(rgb)
        if found is not None:
            return found
        r, g, b = rgb
        best = palette[0]
        best_dist = float("inf")
        for color in palette:
            pr, pg, pb = color
            dist = (r - pr) ** 2 + (g - pg) ** 2 + (b - pb) ** 2
            if dist < best_dist:
                best = color
                best_dist = dist
        cache[rgb] = best
        return best

    return nearest


def _clamp(value: float) -> int:
    return max(0, min(255, int(round(value))))


def _build_palette_image(palette: Sequence[Color]) -> Image.Image:
    if len(palette) > 256:
        raise ConversionError("Palettes are limited to 256 colors")
    flat: List[int] = []
    for color in palette:
        flat.extend(color)
    # Unused slots repeat the first color so quantize() never picks a color
    # outside the requested palette.
    flat.extend(list(palette[0]) * (256 - len(palette)))
    palette_image = Image.new("P", (1, 1))
    palette_image.putpalette(flat)
    return palette_image


def _sample_blocks(image: Image.Image, step: int) -> Image.Image:
    """Shrink ``image`` by taking the top-left pixel of every block."""

    if step == 1:
        return image
    width, height = image.size
    columns = (width + step - 1) // step
    rows = (height + step - 1) // step
    pixels = image.load()
    small = Image.new("RGB", (columns, rows))
    small.putdata(
        [pixels[x * step, y * step] for y in range(rows) for x in range(columns)]
    )
    return small


def _expand_blocks(small: Image.Image, size: Tuple[int, int], step: int) -> Image.Image:
    if step == 1:
        return small
    width, height = size
    enlarged = small.resize((small.width * step, small.height * step), Image.NEAREST)
    return enlarged.crop((0, 0, width, height))


def _dither_ordered(image: Image.Image, palette: Sequence[Color]) -> Image.Image:
    nearest = _nearest_color_func(palette)
    width = image.width
    result: List[Color] = []
    for i, (r, g, b) in enumerate(image_pixels(image)):
        x, y = i % width, i // width
        offset = ((BAYER_4X4[y % 4][x % 4] + 0.5) / 16.0 - 0.5) * ORDERED_SPREAD
        result.append(nearest((_clamp(r + offset), _clamp(g + offset), _clamp(b + offset))))
    out = Image.new("RGB", image.size)
    out.putdata(result)
    return out


def _map_nearest(image: Image.Image, palette: Sequence[Color]) -> Image.Image:
    nearest = _nearest_color_func(palette)
    out = Image.new("RGB", image.size)
    out.putdata([nearest(pixel) for pixel in image_pixels(image)])
    return out


def _dither_atkinson(image: Image.Image, palette: Sequence[Color]) -> Image.Image:
    nearest = _nearest_color_func(palette)
    width, height = image.size
    work = [[float(c) for c in pixel] for pixel in image_pixels(image)]
    result: List[Color] = []
    for y in range(height):
        for x in range(width):
            old = work[y * width + x]
            new = nearest((_clamp(old[0]), _clamp(old[1]), _clamp(old[2])))
            result.append(new)
            error = [(old[c] - new[c]) / 8.0 for c in range(3)]
            for dx, dy in ATKINSON_OFFSETS:
                nx, ny = x + dx, y + dy
                if 0 <= nx < width and ny < height:
                    target = work[ny * width + nx]
                    for c in range(3):
                        target[c] += error[c]
    out = Image.new("RGB", image.size)
    out.putdata(result)
    return out


def _dither_pillow(image: Image.Image, palette: Sequence[Color], dither: int) -> Image.Image:
    palette_image = _build_palette_image(palette)
    return image.quantize(palette=palette_image, dither=dither).convert("RGB")


def dither_image(
    image: Image.Image,
    palette: Sequence[Color],
    step: int = 1,
    algorithm: str = "ordered",
) -> Image.Image:
    """Return a copy of ``image`` that only uses colors from ``palette``.

    ``algorithm`` is one of :data:`DITHER_ALGORITHMS`. ``diffusion`` is
    Floyd-Steinberg error diffusion as implemented by Pillow; ``none`` maps
    each pixel to its nearest palette color by Euclidean distance.
    """

    if not palette:
        raise ConversionError("Cannot dither with an empty palette")
    if step < 1:
        raise ConversionError("Quantization step must be at least 1")
    if algorithm not in DITHER_ALGORITHMS:
        raise ConversionError(f"Unknown dither algorithm: {algorithm}")

    palette = [tuple(color[:3]) for color in palette]
    source = _sample_blocks(image.convert("RGB"), step)

    if algorithm == "ordered":
        reduced = _dither_ordered(source, palette)
    elif algorithm == "atkinson":
        reduced = _dither_atkinson(source, palette)
    elif algorithm == "diffusion":
        reduced = _dither_pillow(source, palette, Image.FLOYDSTEINBERG)
    else:
        reduced = _map_nearest(source, palette)

    return _expand_blocks(reduced, image.size, step)
