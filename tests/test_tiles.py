import pytest
from PIL import Image

from simple_nes_converter.errors import ConversionError
from simple_nes_converter.tiles import (
    LocalColor,
    get_local_palette,
    grid_size,
    image_pixels,
    image_distance,
    split_into_tiles,
)

RED = (245, 58, 27)
BLUE = (9, 35, 248)
WHITE = (252, 252, 252)


def _gradient(width: int, height: int) -> Image.Image:
    image = Image.new("RGB", (width, height))
    image.putdata([(x * 7 % 256, y * 11 % 256, (x + y) % 256) for y in range(height) for x in range(width)])
    return image


def test_split_16x16_into_2x2_grid() -> None:
    tiles = split_into_tiles(Image.new("RGB", (16, 16)), 8, 8)

    assert [(tile.x, tile.y) for tile in tiles] == [(0, 0), (1, 0), (0, 1), (1, 1)]
    assert [tile.box for tile in tiles] == [
        (0, 0, 8, 8),
        (8, 0, 16, 8),
        (0, 8, 8, 16),
        (8, 8, 16, 16),
    ]
    assert all(tile.image.size == (8, 8) for tile in tiles)


@pytest.mark.parametrize(
    "size, tile_size",
    [((16, 16), (8, 8)), ((20, 13), (8, 5)), ((7, 3), (8, 8)), ((33, 1), (4, 2))],
)
def test_tiles_cover_image_exactly_once(size, tile_size) -> None:
    width, height = size
    tiles = split_into_tiles(Image.new("RGB", size), *tile_size)

    columns, rows = grid_size(width, height, *tile_size)
    assert len(tiles) == columns * rows

    covered = []
    for tile in tiles:
        left, top, right, bottom = tile.box
        assert tile.image.size == tile.size == (right - left, bottom - top)
        covered.extend((x, y) for y in range(top, bottom) for x in range(left, right))

    assert len(covered) == len(set(covered)) == width * height


def test_edge_tiles_are_clamped_and_keep_source_pixels() -> None:
    source = _gradient(20, 13)
    tiles = split_into_tiles(source, 8, 8)

    edge = tiles[-1]
    assert (edge.x, edge.y) == (2, 1)
    assert edge.box == (16, 8, 20, 13)
    assert edge.origin == (16, 8)
    assert edge.image.getpixel((3, 4)) == source.getpixel((19, 12))


def test_tiles_are_independent_copies() -> None:
    source = Image.new("RGB", (8, 8), RED)
    tile = split_into_tiles(source, 8, 8)[0]

    source.putpixel((0, 0), BLUE)

    assert tile.image.getpixel((0, 0)) == RED


def test_grid_size_rejects_non_positive_tiles() -> None:
    with pytest.raises(ConversionError):
        grid_size(16, 16, 0, 8)


def test_local_palette_is_sorted_by_pixel_count() -> None:
    image = Image.new("RGB", (4, 2), WHITE)
    image.putpixel((0, 0), BLUE)
    image.putpixel((1, 0), RED)
    image.putpixel((2, 0), RED)

    assert get_local_palette(image) == [
        LocalColor(color=WHITE, pixels_using=5),
        LocalColor(color=RED, pixels_using=2),
        LocalColor(color=BLUE, pixels_using=1),
    ]


def test_local_palette_ties_keep_first_seen_order() -> None:
    image = Image.new("RGB", (2, 1))
    image.putpixel((0, 0), BLUE)
    image.putpixel((1, 0), RED)

    assert [entry.color for entry in get_local_palette(image)] == [BLUE, RED]


def test_image_distance_sums_per_pixel_distance() -> None:
    a = Image.new("RGB", (2, 2), (0, 0, 0))
    b = Image.new("RGB", (2, 2), (0, 0, 0))
    b.putpixel((1, 1), (3, 4, 0))
    b.putpixel((0, 1), (0, 0, 10))

    assert image_distance(a, a) == 0
    assert image_distance(a, b) == pytest.approx(15.0)
    assert image_distance(a, b, lambda p, q: 1.0) == 4.0


def test_image_distance_requires_equal_sizes() -> None:
    with pytest.raises(ConversionError):
        image_distance(Image.new("RGB", (2, 2)), Image.new("RGB", (2, 3)))


def test_image_pixels_reads_rgb_row_by_row() -> None:
    image = Image.new("RGBA", (2, 2), (1, 2, 3, 4))
    image.putpixel((1, 0), (5, 6, 7, 8))

    assert image_pixels(image) == [(1, 2, 3), (5, 6, 7), (1, 2, 3), (1, 2, 3)]
