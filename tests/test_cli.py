import warnings
from pathlib import Path

import pytest
from PIL import Image

from simple_nes_converter import cli
from simple_nes_converter.cli import (
    build_options,
    build_parser,
    ensure_unique_names,
    iter_images,
    main,
    parse_color,
)
from simple_nes_converter.errors import ConversionError

RED = (245, 58, 27)
BLUE = (9, 35, 248)


def _write_sample(directory: Path, name: str = "sample.png") -> Path:
    image = Image.new("RGB", (16, 16), RED)
    image.paste(BLUE, (8, 0, 16, 16))
    path = directory / name
    image.save(path)
    return path


def _args(*extra: str) -> list[str]:
    return ["--width", "16", "--height", "16", "--scale-mode", "stretch", "--dither", "none", *extra]


def test_main_writes_png_and_palette_text(tmp_path, capsys) -> None:
    src = _write_sample(tmp_path)
    out_dir = tmp_path / "out"

    code = main([str(src), "-o", str(out_dir), "--palette-text", "--background", "16", *_args()])

    assert code == 0
    with Image.open(out_dir / "sample.png") as result:
        assert result.size == (16, 16)
    assert (out_dir / "sample.txt").read_text() == "16,01\n"
    assert f"wrote {out_dir / 'sample.png'}" in capsys.readouterr().out


def test_main_refuses_to_overwrite_without_force(tmp_path, capsys) -> None:
    src = _write_sample(tmp_path)
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    (out_dir / "sample.png").write_bytes(b"")

    assert main([str(src), "-o", str(out_dir), *_args()]) == 1
    assert "already exist" in capsys.readouterr().err

    assert main([str(src), "-o", str(out_dir), "-f", *_args()]) == 0


def test_main_reports_malformed_custom_palette(tmp_path, capsys) -> None:
    src = _write_sample(tmp_path)

    code = main([str(src), "-o", str(tmp_path / "out"), "--custom-palette", "0f1", *_args()])

    assert code == 1
    assert "odd number of hex digits" in capsys.readouterr().err


def test_main_prints_subpalette_warnings(tmp_path, capsys) -> None:
    image = Image.new("RGB", (40, 8), (0, 0, 0))
    for i, color in enumerate([RED, BLUE, (93, 214, 91), (247, 183, 42), (246, 125, 246)]):
        image.paste(color, (i * 8 + 4, 0, i * 8 + 8, 8))
    src = tmp_path / "stripes.png"
    image.save(src)

    code = main(
        [
            str(src),
            "-o",
            str(tmp_path / "out"),
            "--width",
            "40",
            "--height",
            "8",
            "--scale-mode",
            "stretch",
            "--dither",
            "none",
            "--background",
            "0f",
            "--tile-sample-width",
            "8",
        ]
    )

    assert code == 0
    warning_lines = [
        line for line in capsys.readouterr().out.splitlines() if line.startswith("Warning:")
    ]
    assert len(warning_lines) == 1
    assert warning_lines[0].startswith("Warning: 5 distinct subpalettes")


def test_main_only_prints_user_warnings(tmp_path, capsys, monkeypatch) -> None:
    src = _write_sample(tmp_path)
    real_convert_png = cli.convert_png

    def noisy_convert_png(path, options):
        warnings.warn("old pixel access", DeprecationWarning)
        warnings.warn("too many subpalettes")
        return real_convert_png(path, options)

    monkeypatch.setattr(cli, "convert_png", noisy_convert_png)

    assert main([str(src), "-o", str(tmp_path / "out"), *_args()]) == 0

    out = capsys.readouterr().out
    assert "Warning: too many subpalettes" in out
    assert "old pixel access" not in out


def test_prefix_suffix_and_directory_inputs(tmp_path) -> None:
    _write_sample(tmp_path, "b.png")
    _write_sample(tmp_path, "a.png")
    (tmp_path / "notes.txt").write_text("skip me")
    out_dir = tmp_path / "out"

    assert main([str(tmp_path), "-o", str(out_dir), "--prefix", "nes_", "--suffix", "_x", *_args()]) == 0

    assert sorted(path.name for path in out_dir.iterdir()) == ["nes_a_x.png", "nes_b_x.png"]


def test_iter_images_errors(tmp_path) -> None:
    text = tmp_path / "notes.txt"
    text.write_text("x")

    with pytest.raises(ConversionError):
        iter_images([str(text)])
    with pytest.raises(ConversionError):
        iter_images([str(tmp_path / "missing.png")])
    with pytest.raises(ConversionError):
        iter_images([str(tmp_path)])


def test_ensure_unique_names_detects_duplicates() -> None:
    with pytest.raises(ConversionError):
        ensure_unique_names([Path("a/x.png"), Path("b/x.jpg")], "", "")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("0,0,0", (0, 0, 0)),
        ("#f53a1b", RED),
        ("F53A1B", RED),
        ("16", RED),
        ("0F", (0, 0, 0)),
    ],
)
def test_parse_color(text, expected) -> None:
    assert parse_color(text) == expected


@pytest.mark.parametrize("text", ["1,2", "a,b,c", "zz", "1,2,999"])
def test_parse_color_rejects_invalid(text) -> None:
    with pytest.raises(ConversionError):
        parse_color(text)


def test_build_options_maps_arguments() -> None:
    args = build_parser().parse_args(
        [
            "in.png",
            "-o",
            "out",
            "--tile-width",
            "16",
            "--selection",
            "random",
            "--seed",
            "5",
            "--legacy-distance",
            "--upscale",
            "2",
            "--custom-palette",
            "0f162730",
        ]
    )

    options = build_options(args)

    assert options.tile_size == (16, 16)
    assert options.sample_size == (32, 32)
    assert options.selection == "random"
    assert options.seed == 5
    assert options.legacy_distance is True
    assert options.upscale == 2
    assert options.custom_palette == "0f162730"
    assert options.background_color is None
