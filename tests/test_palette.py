"""
Unit tests for palette synthesis, color matching and palette swatches.
"""

import sys
import tempfile
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voxport import PaletteMode
from voxport.color import hsv_to_rgb
from voxport.matcher import ColorMatcher
from voxport.palette import (
    BASE_PALETTE,
    KEY_COLORS,
    MAX_COLORS,
    MAX_TRANSLUCENT_SLOTS,
    HueBucketStrategy,
    MedianCutStrategy,
    Palette,
    PaletteSynthesizer,
    median_cut,
)
from voxport.presets import PRESET_PALETTE_WORDS, preset_palette, unpack_argb
from voxport.swatch import load_palette_png, save_palette_png


def gradient_colors(steps: int = 16, alpha: int = 255) -> np.ndarray:
    """All combinations of `steps` red and green levels, blue fixed."""
    levels = np.linspace(0, 255, steps).astype(np.uint8)
    r, g = np.meshgrid(levels, levels, indexing="ij")
    colors = np.empty((steps * steps, 4), dtype=np.uint8)
    colors[:, 0] = r.ravel()
    colors[:, 1] = g.ravel()
    colors[:, 2] = 90
    colors[:, 3] = alpha
    return colors


class TestPresetPalette(unittest.TestCase):
    """Tests for the reference palette table."""

    def test_table_shape(self):
        table = preset_palette()
        assert table.shape == (256, 4)
        assert table.dtype == np.uint8

    def test_no_duplicates(self):
        """Test every word is distinct."""
        assert len(PRESET_PALETTE_WORDS) == 256
        assert len(set(PRESET_PALETTE_WORDS)) == 256

    def test_unpack_argb(self):
        """Test alpha comes from the top byte and red from the next."""
        assert unpack_argb([0x80112233]).tolist() == [[0x11, 0x22, 0x33, 0x80]]


class TestPalette(unittest.TestCase):
    """Tests for the Palette container."""

    def test_entry_zero_transparent(self):
        palette = Palette.from_colors([(255, 0, 0, 255)], PaletteMode.ADAPTIVE)
        assert palette[0] == (0, 0, 0, 0)
        assert palette[1] == (255, 0, 0, 255)
        assert palette.index_of((255, 0, 0, 255)) == 1

    def test_truncation(self):
        """Test palettes are capped at 255 colors plus entry 0."""
        colors = [(i % 256, i // 256, 7, 255) for i in range(300)]
        palette = Palette.from_colors(colors, PaletteMode.ADAPTIVE)
        assert len(palette) == 256
        assert palette.index_of(colors[299]) is None

    def test_first_index_wins(self):
        """Test a repeated color maps to its lowest index."""
        colors = [(1, 2, 3, 255), (4, 5, 6, 255), (1, 2, 3, 255)]
        palette = Palette.from_colors(colors, PaletteMode.ADAPTIVE)
        assert palette.index_of((1, 2, 3, 255)) == 1
        assert 0 not in palette.color_map.values()

    def test_table(self):
        """Test the full table pads with zero entries."""
        palette = Palette.from_colors([(9, 9, 9, 255)], PaletteMode.ADAPTIVE)
        table = palette.to_table()
        assert table.shape == (256, 4)
        assert table[0].tolist() == [0, 0, 0, 0]
        assert table[1].tolist() == [9, 9, 9, 255]
        assert not table[2:].any()


class TestPaletteSynthesizer(unittest.TestCase):
    """Tests for preset and adaptive palette synthesis."""

    def test_preset_ignores_colors(self):
        """Test preset mode always returns the reference table."""
        synthesizer = PaletteSynthesizer(PaletteMode.PRESET)
        palette = synthesizer.synthesize(gradient_colors(4))
        assert len(palette) == 256
        assert np.array_equal(palette.to_table()[1:], preset_palette()[1:])
        assert palette.source_colors == 16

    def test_adaptive_small_set_kept_exactly(self):
        """Test few colors are all added after the fixed colors."""
        colors = np.array([
            [12, 34, 56, 255],
            [200, 10, 10, 255],
            [12, 34, 56, 255],
        ], dtype=np.uint8)
        synthesizer = PaletteSynthesizer(PaletteMode.ADAPTIVE)
        palette = synthesizer.synthesize(colors)

        fixed = synthesizer.fixed_colors()
        assert [palette[i] for i in range(1, len(fixed) + 1)] == fixed
        assert palette.index_of((12, 34, 56, 255)) == len(fixed) + 1
        assert palette.index_of((200, 10, 10, 255)) == len(fixed) + 2

    def test_fixed_colors(self):
        """Test key colors lead and can be switched off."""
        with_keys = PaletteSynthesizer(PaletteMode.ADAPTIVE).fixed_colors()
        assert with_keys[:len(KEY_COLORS)] == KEY_COLORS

        without_keys = PaletteSynthesizer(PaletteMode.ADAPTIVE, inject_key_colors=False).fixed_colors()
        assert without_keys == BASE_PALETTE

        median = PaletteSynthesizer(
            PaletteMode.ADAPTIVE, MedianCutStrategy(), inject_key_colors=False
        ).fixed_colors()
        assert median == []

    def test_hue_bucket_overflow(self):
        """Test many colors are quantized down to the palette capacity."""
        colors = gradient_colors(24)
        palette = PaletteSynthesizer(PaletteMode.ADAPTIVE).synthesize(colors)

        assert len(palette) <= MAX_COLORS + 1
        assert len(palette) > len(BASE_PALETTE) + 1
        assert palette.source_colors == 576
        assert palette[0] == (0, 0, 0, 0)
        for color in KEY_COLORS:
            assert palette.index_of(color) is not None

    def test_hue_bucket_keeps_translucent(self):
        """Test translucent colors get reserved slots when quantizing."""
        opaque = gradient_colors(20)
        glass = np.array([[150, 200, 240, 160], [100, 180, 120, 200]], dtype=np.uint8)
        palette = PaletteSynthesizer(PaletteMode.ADAPTIVE).synthesize(np.vstack([opaque, glass]))

        assert len(palette) <= MAX_COLORS + 1
        assert palette.index_of((150, 200, 240, 160)) is not None
        assert palette.index_of((100, 180, 120, 200)) is not None

    def test_hue_bucket_deterministic(self):
        """Test the same input always gives the same palette."""
        colors = gradient_colors(20)
        first = PaletteSynthesizer(PaletteMode.ADAPTIVE).synthesize(colors)
        second = PaletteSynthesizer(PaletteMode.ADAPTIVE).synthesize(colors)
        assert np.array_equal(first.entries, second.entries)

    def test_hue_bucket_sweep_fills_sparse_overflow(self):
        """Test the HSV sweep fills slots a sparse hue spread leaves free."""
        # 300 distinct translucent colors and no opaque ones: only 25 are kept
        colors = np.array(
            [[i % 256, (i // 256) * 40, 7, 200] for i in range(300)], dtype=np.uint8
        )
        palette = PaletteSynthesizer(PaletteMode.ADAPTIVE).synthesize(colors)

        fixed = len(PaletteSynthesizer(PaletteMode.ADAPTIVE).fixed_colors())
        assert len(palette) - 1 > fixed + MAX_TRANSLUCENT_SLOTS
        assert len(palette) <= MAX_COLORS + 1

        r, g, b = hsv_to_rgb(0.0, 0.3, 0.3)
        assert palette.index_of((int(r), int(g), int(b), 255)) is not None
        r, g, b = hsv_to_rgb(300.0, 1.0, 1.0)
        assert palette.index_of((int(r), int(g), int(b), 255)) is not None

    def test_hue_bucket_reserves_vivid_blues(self):
        """Test the most frequent vivid blue is kept even when it ranks low."""
        reds = [((255, g, 0, 255), 1) for g in range(250)]
        # Bright saturated blues outrank the target on importance
        brights = [((x, 0, 255, 255), 30) for x in range(40)]
        muted_blue = ((100, 100, 150, 255), 5000)
        vivid_blue = ((70, 64, 130, 255), 1000)

        rows = []
        for color, count in reds + brights + [muted_blue, vivid_blue]:
            rows.extend([color] * count)
        colors = np.array(rows, dtype=np.uint8)

        palette = PaletteSynthesizer(PaletteMode.ADAPTIVE, HueBucketStrategy()).synthesize(colors)

        assert palette.source_colors == 292
        assert palette.index_of(vivid_blue[0]) is not None
        assert palette.index_of(muted_blue[0]) is not None

    def test_median_cut_overflow(self):
        """Test median-cut fills the palette without exceeding it."""
        synthesizer = PaletteSynthesizer(PaletteMode.ADAPTIVE, MedianCutStrategy())
        palette = synthesizer.synthesize(gradient_colors(24))
        assert len(palette) <= MAX_COLORS + 1
        assert len(palette) > len(KEY_COLORS) + 1

    def test_median_cut_function(self):
        """Test median-cut splits distinct colors into separate cubes."""
        colors = np.array([
            [0, 0, 0, 255],
            [255, 0, 0, 255],
            [0, 255, 0, 255],
            [0, 0, 255, 255],
        ], dtype=np.uint8)
        result = median_cut(colors, 4)
        assert sorted(result) == sorted(tuple(c) for c in colors.tolist())

    def test_median_cut_stops_when_unsplittable(self):
        """Test asking for more cubes than colors returns one per color."""
        colors = np.array([[10, 10, 10, 255], [10, 10, 10, 255]], dtype=np.uint8)
        assert median_cut(colors, 8) == [(10, 10, 10, 255), (10, 10, 10, 255)]

    def test_transparent_colors_ignored(self):
        """Test fully transparent voxels don't count as source colors."""
        colors = np.array([[0, 0, 0, 0], [5, 5, 5, 0], [10, 20, 30, 255]], dtype=np.uint8)
        palette = PaletteSynthesizer(PaletteMode.ADAPTIVE, HueBucketStrategy()).synthesize(colors)
        assert palette.source_colors == 1


class TestColorMatcher(unittest.TestCase):
    """Tests for palette index assignment."""

    def test_low_alpha_is_empty(self):
        """Test colors below the opacity threshold map to index 0."""
        palette = Palette.from_colors([(255, 0, 0, 100)], PaletteMode.ADAPTIVE)
        matcher = ColorMatcher(palette)
        assert matcher.find_index((255, 0, 0, 100)) == 0
        assert matcher.find_index((255, 0, 0, 127)) == 0

    def test_exact_hit(self):
        """Test exact colors return their own index."""
        colors = [(10, 200, 30, 255), (200, 10, 30, 255), (30, 10, 200, 255)]
        matcher = ColorMatcher(Palette.from_colors(colors, PaletteMode.ADAPTIVE))
        for index, color in enumerate(colors, start=1):
            assert matcher.find_index(color) == index

    def test_preset_exact_hit(self):
        """Test preset palette entries map to themselves."""
        palette = PaletteSynthesizer(PaletteMode.PRESET).synthesize(np.zeros((0, 4), dtype=np.uint8))
        matcher = ColorMatcher(palette)
        for index in (1, 17, 100, 255):
            assert matcher.find_index(palette[index]) == index

    def test_preset_nearest(self):
        """Test preset mode picks the nearest entry by RGB distance."""
        palette = Palette.from_colors(
            [(0, 0, 0, 255), (250, 250, 250, 255), (255, 0, 0, 255)],
            PaletteMode.PRESET
        )
        matcher = ColorMatcher(palette)
        assert matcher.find_index((240, 10, 10, 255)) == 3
        assert matcher.find_index((20, 20, 20, 255)) == 1

    def test_gray_pass(self):
        """Test grays match the palette gray closest in value."""
        palette = Palette.from_colors(
            [(255, 0, 0, 255), (60, 60, 60, 255), (200, 200, 200, 255)],
            PaletteMode.ADAPTIVE
        )
        matcher = ColorMatcher(palette)
        assert matcher.find_index((190, 190, 195, 255)) == 3
        assert matcher.find_index((70, 70, 70, 255)) == 2

    def test_blue_roof_pass(self):
        """Test vivid blues prefer palette blues."""
        palette = Palette.from_colors(
            [(0, 200, 0, 255), (30, 110, 190, 255), (200, 0, 0, 255)],
            PaletteMode.ADAPTIVE
        )
        matcher = ColorMatcher(palette)
        assert matcher.find_index((40, 100, 200, 255)) == 2

    def test_wood_pass(self):
        """Test browns match the palette brown even across translucency classes."""
        palette = Palette.from_colors(
            [(255, 0, 0, 255), (150, 100, 60, 180), (90, 90, 90, 255)],
            PaletteMode.ADAPTIVE
        )
        matcher = ColorMatcher(palette)
        assert matcher.find_index((140, 95, 60, 255)) == 2

    def test_translucency_fallback(self):
        """Test a translucent color still matches an all-opaque palette."""
        palette = Palette.from_colors(
            [(255, 0, 0, 255), (90, 140, 210, 255)],
            PaletteMode.ADAPTIVE
        )
        matcher = ColorMatcher(palette)
        assert matcher.find_index((100, 150, 200, 200)) == 2

    def test_translucency_preferred(self):
        """Test translucent targets prefer translucent entries."""
        palette = Palette.from_colors(
            [(100, 150, 200, 255), (255, 100, 100, 180)],
            PaletteMode.ADAPTIVE
        )
        matcher = ColorMatcher(palette)
        assert matcher.find_index((100, 150, 200, 190)) == 2

    def test_match_identical_colors(self):
        """Test identical colors always share an index."""
        palette = PaletteSynthesizer(PaletteMode.ADAPTIVE).synthesize(gradient_colors(24))
        colors = np.vstack([gradient_colors(24), gradient_colors(24)[::-1]])
        indices = ColorMatcher(palette).match(colors)

        assert indices.dtype == np.uint8
        assert np.array_equal(indices[:576], indices[576:][::-1])
        assert np.all(indices >= 1)


class TestSwatch(unittest.TestCase):
    """Tests for palette PNG swatches."""

    def test_round_trip(self):
        """Test a saved swatch loads back as the same colors."""
        colors = [(255, 0, 0, 255), (0, 128, 255, 200), (10, 20, 30, 255)]
        palette = Palette.from_colors(colors, PaletteMode.ADAPTIVE)

        with tempfile.TemporaryDirectory() as tmp:
            path = save_palette_png(palette, Path(tmp) / "palette.png")
            loaded = load_palette_png(path)

        assert [loaded[i] for i in range(1, len(loaded))] == colors

    def test_image_size(self):
        """Test the swatch is 256x1 pixels."""
        from PIL import Image
        palette = PaletteSynthesizer(PaletteMode.PRESET).synthesize(np.zeros((0, 4), dtype=np.uint8))

        with tempfile.TemporaryDirectory() as tmp:
            path = save_palette_png(palette, Path(tmp) / "preset.png")
            with Image.open(path) as img:
                assert img.size == (256, 1)
                assert img.mode == "RGBA"

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_palette_png("/nonexistent/palette.png")


if __name__ == "__main__":
    unittest.main()
