from __future__ import annotations

import warnings

import gradio as gr
from PIL import Image

from simple_nes_converter import (
    DITHER_ALGORITHMS,
    ConversionError,
    ConvertOptions,
    NesColorTable,
    convert_image,
    format_subpalettes_text,
    render_palette_swatches,
)
from simple_nes_converter.cli import parse_color
from simple_nes_converter.converter import SCALE_CONTAIN, SCALE_MODES
from simple_nes_converter.subpalettes import SELECTION_POLICIES

UPSCALE_CHOICES = [1, 2, 3, 4]


def convert_preview(
    image: Image.Image | None,
    dither_algorithm: str,
    scale_mode: str,
    background: str,
    custom_palette: str,
    selection: str,
    seed: float | None,
    upscale: int,
) -> tuple[Image.Image, Image.Image, str]:
    if image is None:
        raise gr.Error("Please upload an image.")

    options = ConvertOptions()
    options.dither_algorithm = dither_algorithm
    options.scale_mode = scale_mode
    options.selection = selection
    options.seed = None if seed is None else int(seed)
    options.upscale = int(upscale)
    options.custom_palette = custom_palette.strip() or None

    try:
        if background.strip():
            options.background_color = parse_color(background)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = convert_image(image, options)
    except ConversionError as exc:
        raise gr.Error(f"Conversion failed: {exc}") from exc

    swatches = render_palette_swatches(
        [color for palette in result.subpalettes for color in palette], 16, 4
    )
    lines = [format_subpalettes_text(result.subpalettes, NesColorTable())]
    lines.extend(
        f"Warning: {warning.message}"
        for warning in caught
        if issubclass(warning.category, UserWarning)
    )
    return result.image, swatches, "\n".join(lines)


def _build_interface() -> gr.Blocks:
    with gr.Blocks(title="NES Palette Preview") as demo:
        gr.Markdown(
            """
# NES Palette Preview

Upload an image to reduce it to the NES background palette: one shared
background color and 4-color subpalettes, one per 8x8 tile.
"""
        )
        with gr.Row():
            source = gr.Image(label="Input image", type="pil")
            output = gr.Image(label="Converted", type="pil")
        with gr.Row():
            dither_algorithm = gr.Dropdown(
                label="Dithering",
                choices=list(DITHER_ALGORITHMS),
                value="ordered",
            )
            scale_mode = gr.Dropdown(
                label="Scale mode",
                choices=list(SCALE_MODES),
                value=SCALE_CONTAIN,
            )
            upscale = gr.Dropdown(
                label="Upscale",
                choices=UPSCALE_CHOICES,
                value=2,
            )

        with gr.Accordion("Palette settings", open=False):
            with gr.Row():
                background = gr.Textbox(
                    label="Background color (NES index, #rrggbb or r,g,b)",
                    value="",
                )
                custom_palette = gr.Textbox(
                    label="Custom palette (NES indices)",
                    placeholder="0f162730 0f1a2a3a",
                )
            with gr.Row():
                selection = gr.Radio(
                    choices=list(SELECTION_POLICIES),
                    value="score",
                    label="Candidate selection",
                )
                seed = gr.Number(
                    label="Random seed",
                    value=None,
                    precision=0,
                )

        run_button = gr.Button("Convert")
        swatches = gr.Image(label="Subpalettes", type="pil")
        palette_text = gr.Textbox(label="Subpalette indices", lines=6)

        run_button.click(
            convert_preview,
            inputs=[
                source,
                dither_algorithm,
                scale_mode,
                background,
                custom_palette,
                selection,
                seed,
                upscale,
            ],
            outputs=[output, swatches, palette_text],
        )
    return demo


app = _build_interface()

if __name__ == "__main__":
    app.launch()
