"""
Palette Swatch Images

MagicaVoxel loads and saves palettes as 256x1 RGBA PNG images. Pixel i
holds palette index i + 1; the last pixel stands in for index 0 and is
left fully transparent.
"""

import logging
from pathlib import Path
from typing import Union
import numpy as np
from PIL import Image

from .config import PaletteMode
from .palette import MAX_COLORS, PALETTE_SIZE, Palette


logger = logging.getLogger(__name__)


def palette_to_image(palette: Palette) -> Image.Image:
    """Render a palette as a 256x1 RGBA image."""
    table = palette.to_table()
    pixels = np.zeros((1, PALETTE_SIZE, 4), dtype=np.uint8)
    pixels[0, :MAX_COLORS] = table[1:]
    return Image.fromarray(pixels)


def save_palette_png(palette: Palette, path: Union[str, Path]) -> Path:
    """
    Write a palette swatch.

    Args:
        palette: Palette to save
        path: Output PNG path

    Returns:
        Path written
    """
    path = Path(path)
    palette_to_image(palette).save(path, format="PNG")
    logger.debug("Saved %d-color palette swatch to %s", len(palette) - 1, path)
    return path


def load_palette_png(
    path: Union[str, Path],
    mode: PaletteMode = PaletteMode.ADAPTIVE
) -> Palette:
    """
    Read a palette swatch.

    The image is read row by row; only the first 255 pixels are used.
    Trailing fully transparent black pixels are treated as unused slots.

    Args:
        path: PNG path
        mode: Mode recorded on the returned palette

    Returns:
        Palette with the swatch colors at indices 1..N
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Palette image not found: {path}")

    with Image.open(path) as img:
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        pixels = np.array(img, dtype=np.uint8).reshape(-1, 4)[:MAX_COLORS]

    used = len(pixels)
    while used > 0 and not pixels[used - 1].any():
        used -= 1

    return Palette.from_colors(
        (tuple(int(c) for c in pixel) for pixel in pixels[:used]),
        mode,
    )
