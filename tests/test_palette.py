import pytest

from simple_nes_converter.errors import ConversionError, MalformedPaletteError
from simple_nes_converter.palette import (
    BLACK,
    CANONICAL_BLACK,
    NES_COLORS,
    NES_PALETTE,
    NesColorTable,
    color_distance,
    color_key,
    create_palette_sorter,
    normalize_color,
    palette_key,
    parse_custom_palette,
    skewed_color_distance,
)

RED = NES_PALETTE["16"]
BLUE = NES_PALETTE["01"]
WHITE = NES_PALETTE["30"]


def test_nes_colors_are_distinct_with_black_first() -> None:
    assert len(NES_PALETTE) == 64
    assert NES_COLORS[0] == BLACK
    assert len(NES_COLORS) == len(set(NES_COLORS)) == 55
    assert set(NES_COLORS) == set(NES_PALETTE.values())


def test_exact_match_returns_table_index() -> None:
    table = NesColorTable()

    assert table.match(RED) == "16"
    assert table.match("#f53a1b") == "16"
    assert table.match(0xF53A1B) == "16"


def test_every_black_resolves_to_canonical_index() -> None:
    table = NesColorTable()

    for index in ("0d", "0e", "1d", "2f", "3f"):
        assert table.match(NES_PALETTE[index]) == CANONICAL_BLACK
    assert table.match((0, 0, 0)) == "0f"


def test_exact_match_for_every_table_entry() -> None:
    table = NesColorTable()

    for index, color in NES_PALETTE.items():
        assert table.rgb(table.match(color)) == color


def test_nearest_match_breaks_ties_by_enumeration_order() -> None:
    table = NesColorTable()

    # (250, 250, 250) is equally far from 20h (#f8f8f8) and 30h (#fcfcfc).
    assert table.match((250, 250, 250)) == "20"


def test_match_is_cached_and_deterministic() -> None:
    table = NesColorTable()

    first = table.match((10, 20, 200))
    assert table.cache_size == 1
    assert table.match((10, 20, 200)) == first
    assert table.match([10, 20, 200]) == first
    assert table.cache_size == 1

    table.clear_cache()
    assert table.cache_size == 0
    assert table.match((10, 20, 200)) == first


def test_tables_do_not_share_caches() -> None:
    a = NesColorTable()
    b = NesColorTable()

    a.match((1, 2, 3))

    assert a.cache_size == 1
    assert b.cache_size == 0


def test_skewed_distance_ignores_blue() -> None:
    assert color_distance((0, 0, 0), (0, 0, 255)) == 255
    assert skewed_color_distance((0, 0, 0), (0, 0, 255)) == 0
    assert skewed_color_distance((3, 4, 100), (0, 0, 0)) == 5


def test_legacy_table_matches_differently_for_blue() -> None:
    assert NesColorTable().match((0, 0, 200)) == "02"
    assert NesColorTable(skewed_color_distance).match((0, 0, 200)) == "0f"


def test_snap_and_sort_key() -> None:
    table = NesColorTable()

    assert table.snap((250, 60, 30)) == RED
    assert table.sort_key(RED) == 0x16
    assert table.sort_key(BLACK) == 0x0F


def test_rgb_rejects_unknown_index() -> None:
    with pytest.raises(ConversionError):
        NesColorTable().rgb("40")


@pytest.mark.parametrize(
    "value, expected",
    [
        ((1, 2, 3), (1, 2, 3)),
        ([1, 2, 3, 255], (1, 2, 3)),
        ({"r": 1, "g": 2, "b": 3}, (1, 2, 3)),
        ({"red": 1, "green": 2}, (1, 2, 0)),
        ("#0A0B0C", (10, 11, 12)),
        ("0a0b0c", (10, 11, 12)),
        ("#abc", (0xAA, 0xBB, 0xCC)),
        (0x102030, (0x10, 0x20, 0x30)),
    ],
)
def test_normalize_color(value, expected) -> None:
    assert normalize_color(value) == expected


@pytest.mark.parametrize("value", [(1, 2), (1, 2, 300), "#12345", None, 1.5])
def test_normalize_color_rejects_invalid(value) -> None:
    with pytest.raises(ConversionError):
        normalize_color(value)


def test_palette_key_is_order_independent() -> None:
    assert color_key(RED) == "#f53a1b"
    assert palette_key([RED, BLUE]) == palette_key([BLUE, RED]) == "#0923f8,#f53a1b"


def test_palette_sorter_puts_background_first() -> None:
    table = NesColorTable()
    sorter = create_palette_sorter(WHITE, table)

    assert sorted([RED, WHITE, BLUE, BLACK], key=sorter) == [WHITE, BLUE, BLACK, RED]


def test_parse_custom_palette_groups_of_four() -> None:
    subpalettes = parse_custom_palette("0F 16 27 30, 0f-01-11-21")

    assert subpalettes == [
        [BLACK, RED, NES_PALETTE["27"], WHITE],
        [BLACK, BLUE, NES_PALETTE["11"], NES_PALETTE["21"]],
    ]


def test_parse_custom_palette_prepends_background_override() -> None:
    subpalettes = parse_custom_palette("162730011121", background=BLACK)

    assert subpalettes == [
        [BLACK, RED, NES_PALETTE["27"], WHITE],
        [BLACK, BLUE, NES_PALETTE["11"], NES_PALETTE["21"]],
    ]


def test_parse_custom_palette_drops_duplicate_colors() -> None:
    assert parse_custom_palette("0f1630", background=BLACK) == [[BLACK, RED, WHITE]]


@pytest.mark.parametrize(
    "text, background",
    [
        ("", None),
        ("zz", None),
        ("0f1", None),
        ("0f162740", None),
        ("0f1627", None),
        ("0f162730", BLACK),
    ],
)
def test_parse_custom_palette_rejects_malformed_input(text, background) -> None:
    with pytest.raises(MalformedPaletteError):
        parse_custom_palette(text, background=background)
