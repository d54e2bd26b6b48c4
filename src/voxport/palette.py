"""
Palette Synthesis

The .vox format holds at most 256 palette entries, with entry 0 reserved
for "empty". This module turns an arbitrary set of voxel colors into such
a palette.

Modes:
- PRESET: the fixed MagicaVoxel reference table, no quantization
- ADAPTIVE: built from the model's own colors by a PaletteStrategy:
    - HueBucketStrategy: base palette + per-hue-category representatives,
      vivid blues, translucent colors and a generated HSV sweep
    - MedianCutStrategy: MMCQ median-cut quantization in RGB space

Key colors (primaries, grays and common building colors) can be forced
into adaptive palettes ahead of quantization.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence
import numpy as np

from .color import ColorKey, color_key, rgb_to_hsv, hsv_to_rgb, unique_colors
from .config import ExportConfig, PaletteMode
from .presets import preset_palette


logger = logging.getLogger(__name__)


# Palette capacity, excluding the reserved transparent entry 0
MAX_COLORS = 255
PALETTE_SIZE = 256
TRANSPARENT: ColorKey = (0, 0, 0, 0)

HUE_CATEGORIES = 12
BLUE_CATEGORY = int(240 / 360 * HUE_CATEGORIES)
MAX_TRANSLUCENT_SLOTS = 25
MAX_BLUE_VARIANTS = 5

KEY_COLORS: List[ColorKey] = [
    (255, 255, 255, 255),  # White
    (0, 0, 0, 255),        # Black
    (128, 128, 128, 255),  # Gray
    (255, 0, 0, 255),      # Red
    (0, 255, 0, 255),      # Green
    (0, 0, 255, 255),      # Blue
    (170, 170, 170, 255),  # Concrete
    (160, 120, 90, 255),   # Wood
    (140, 80, 60, 255),    # Brick
    (30, 110, 190, 255),   # Roof blue
]

# Building-oriented base palette for the hue-bucket strategy
BASE_PALETTE: List[ColorKey] = [
    (255, 255, 255, 255), (0, 0, 0, 255),
    # Grays
    (32, 32, 32, 255), (64, 64, 64, 255), (96, 96, 96, 255), (128, 128, 128, 255),
    (160, 160, 160, 255), (192, 192, 192, 255), (224, 224, 224, 255),
    # Stone
    (200, 200, 210, 255), (210, 206, 200, 255), (180, 180, 185, 255), (170, 170, 170, 255),
    # Wood
    (110, 80, 50, 255), (160, 120, 90, 255), (200, 170, 120, 255), (180, 150, 100, 255),
    # Roof blues
    (20, 80, 170, 255), (30, 110, 190, 255), (40, 130, 210, 255), (70, 160, 230, 255),
    # Flag reds
    (170, 30, 30, 255), (200, 50, 50, 255), (230, 70, 70, 255),
    # Gold
    (200, 170, 50, 255), (230, 200, 80, 255), (170, 140, 30, 255),
    # Vegetation
    (30, 120, 50, 255), (50, 150, 70, 255), (70, 180, 90, 255),
    # Brick and brown
    (140, 80, 60, 255), (120, 60, 40, 255), (100, 50, 30, 255),
    # Primaries and secondaries
    (255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255),
    (255, 255, 0, 255), (0, 255, 255, 255), (255, 0, 255, 255),
]


@dataclass(frozen=True)
class Palette:
    """
    An indexed palette.

    Attributes:
        entries: uint8 array of shape (N, 4), N <= 256, entry 0 transparent
        color_map: ColorKey -> index for entries 1..N-1
        mode: Mode the palette was built in
        source_colors: Number of distinct non-transparent input colors
    """

    entries: np.ndarray
    color_map: Dict[ColorKey, int] = field(repr=False)
    mode: PaletteMode = PaletteMode.ADAPTIVE
    source_colors: int = 0

    @classmethod
    def from_colors(
        cls,
        colors: Iterable[ColorKey],
        mode: PaletteMode,
        source_colors: int = 0
    ) -> "Palette":
        """
        Build a palette from colors for indices 1, 2, ...

        Colors past the 255-entry capacity are dropped with a warning.
        When a color occurs twice the lower index is kept in the map.
        """
        colors = [tuple(int(c) for c in color) for color in colors]
        if len(colors) > MAX_COLORS:
            logger.warning(
                "Palette has %d colors, truncating to %d", len(colors), MAX_COLORS
            )
            colors = colors[:MAX_COLORS]

        entries = np.array([TRANSPARENT] + colors, dtype=np.uint8).reshape(-1, 4)
        entries.setflags(write=False)

        color_map: Dict[ColorKey, int] = {}
        for index, color in enumerate(colors, start=1):
            color_map.setdefault(color, index)

        return cls(entries, color_map, mode, source_colors)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> ColorKey:
        return color_key(self.entries[index])

    def index_of(self, color) -> Optional[int]:
        """Exact-match index of a color, or None."""
        return self.color_map.get(color_key(color))

    def to_table(self) -> np.ndarray:
        """Full (256, 4) table, unused entries zero, entry 0 zero."""
        table = np.zeros((PALETTE_SIZE, 4), dtype=np.uint8)
        table[:len(self.entries)] = self.entries
        table[0] = TRANSPARENT
        return table


@dataclass(frozen=True)
class ColorStats:
    """Distinct non-transparent colors and how often each occurs."""
    colors: np.ndarray
    counts: np.ndarray

    @classmethod
    def collect(cls, colors: np.ndarray) -> "ColorStats":
        """
        Deduplicate colors by ColorKey, dropping fully transparent ones.

        Args:
            colors: uint8 array of shape (N, 4)
        """
        colors = np.asarray(colors, dtype=np.uint8).reshape(-1, 4)
        unique, counts, _ = unique_colors(colors[colors[:, 3] > 0])
        return cls(unique, counts)

    def keys(self) -> List[ColorKey]:
        return [color_key(c) for c in self.colors]

    def __len__(self) -> int:
        return len(self.colors)


class _ColorList:
    """Ordered, duplicate-free list of ColorKeys."""

    def __init__(self, colors: Iterable[ColorKey] = ()):
        self.colors: List[ColorKey] = []
        self._seen = set()
        for color in colors:
            self.add(color)

    def add(self, color: ColorKey) -> bool:
        if color in self._seen:
            return False
        self._seen.add(color)
        self.colors.append(color)
        return True

    def __len__(self) -> int:
        return len(self.colors)


class PaletteStrategy:
    """
    Base class for adaptive palette strategies.

    A strategy receives the input color statistics and the fixed colors
    that must lead the palette, and returns the ordered palette colors
    (without the transparent entry 0).
    """

    name = "base"
    base_colors: Sequence[ColorKey] = ()

    def build(self, stats: ColorStats, fixed: Sequence[ColorKey]) -> List[ColorKey]:
        raise NotImplementedError


@dataclass
class _HueEntry:
    color: ColorKey
    h: float
    s: float
    v: float
    count: int

    @property
    def importance(self) -> float:
        return (self.s * 0.7 + 0.3) * (self.v * 0.7 + 0.3) * math.log10(1 + self.count)


class HueBucketStrategy(PaletteStrategy):
    """
    Hue-bucketed representative selection.

    If every distinct color fits next to the base palette they are all
    used. Otherwise opaque colors are grouped into 12 hue categories of
    30 degrees; each category contributes its most frequent dark, mid
    and bright color, then extra colors by importance in proportion to
    its share of all colors. Vivid blues, translucent colors and a
    generated HSV sweep fill the remaining slots.
    """

    name = "hue_bucket"
    base_colors = BASE_PALETTE

    def build(self, stats: ColorStats, fixed: Sequence[ColorKey]) -> List[ColorKey]:
        palette = _ColorList(fixed)

        if len(stats) <= MAX_COLORS - len(palette):
            for color in stats.keys():
                palette.add(color)
            return palette.colors

        logger.info("Quantizing %d colors", len(stats))

        opaque: List[_HueEntry] = []
        translucent: List[ColorKey] = []
        for color, count in zip(stats.keys(), stats.counts):
            if color[3] < 255:
                translucent.append(color)
                continue
            h, s, v = rgb_to_hsv(color[0], color[1], color[2])
            opaque.append(_HueEntry(color, h, s, v, int(count)))

        categories: Dict[int, List[_HueEntry]] = {}
        for entry in opaque:
            category = int(entry.h / 360 * HUE_CATEGORIES)
            categories.setdefault(category, []).append(entry)

        reserved = min(MAX_TRANSLUCENT_SLOTS, len(translucent))
        remaining = MAX_COLORS - len(palette) - reserved
        min_per_category = min(3, remaining // len(categories)) if categories else 0
        pool = remaining - min_per_category * len(categories)

        for category in sorted(categories):
            entries = categories[category]
            ranked = sorted(entries, key=lambda e: e.importance, reverse=True)

            dark = sorted((e for e in ranked if e.v < 0.4), key=lambda e: e.count, reverse=True)
            mid = sorted((e for e in ranked if 0.4 <= e.v < 0.7), key=lambda e: e.count, reverse=True)
            bright = sorted((e for e in ranked if e.v >= 0.7), key=lambda e: e.count, reverse=True)

            selected: List[ColorKey] = []
            for band in (dark, mid, bright):
                if band and len(selected) < min_per_category:
                    selected.append(band[0].color)

            if pool > 0:
                share = math.floor(pool * len(entries) / len(opaque) + 0.5)
                extra = min(max(1, share), pool)
                for entry in ranked:
                    if len(selected) >= min_per_category + extra:
                        break
                    if entry.color not in selected:
                        selected.append(entry.color)
                pool -= len(selected) - min_per_category

            for color in selected:
                palette.add(color)

        blues = [
            e for e in categories.get(BLUE_CATEGORY, [])
            if e.s > 0.5 and e.v > 0.5
        ]
        blues.sort(key=lambda e: e.count, reverse=True)
        for entry in blues[:MAX_BLUE_VARIANTS]:
            palette.add(entry.color)

        for color in translucent[:reserved]:
            if len(palette) >= MAX_COLORS:
                break
            palette.add(color)

        _fill_hsv_sweep(palette)
        return palette.colors


def _fill_hsv_sweep(palette: _ColorList):
    """Fill free slots with hues every 60 degrees at several s/v levels."""
    h = 0
    while h < 360 and len(palette) < MAX_COLORS:
        s = 0.3
        while s <= 1 and len(palette) < MAX_COLORS:
            v = 0.3
            while v <= 1 and len(palette) < MAX_COLORS:
                r, g, b = hsv_to_rgb(float(h), s, v)
                palette.add((r, g, b, 255))
                v += 0.35
            s += 0.35
        h += 60


class _ColorCube:
    """A box in RGB space holding a subset of the input colors."""

    def __init__(self, colors: np.ndarray):
        self.colors = colors
        self.count = len(colors)
        rgb = colors[:, :3].astype(np.int64)
        self.lo = rgb.min(axis=0)
        self.hi = rgb.max(axis=0)
        self.volume = int(np.prod(self.hi - self.lo + 1))

    @property
    def longest_channel(self) -> int:
        # Ties resolve r, then g, then b
        return int(np.argmax(self.hi - self.lo))

    def split(self):
        channel = self.longest_channel
        order = np.argsort(self.colors[:, channel], kind="stable")
        ordered = self.colors[order]
        mid = self.count // 2
        return _ColorCube(ordered[:mid]), _ColorCube(ordered[mid:])

    def average(self) -> ColorKey:
        mean = self.colors.astype(np.float64).mean(axis=0)
        return color_key(np.floor(mean + 0.5).astype(np.int64))


def median_cut(colors: np.ndarray, max_colors: int) -> List[ColorKey]:
    """
    MMCQ median-cut quantization.

    The cube with the largest RGB volume is split at the median of its
    longest channel until max_colors cubes exist or no cube can be split.

    Args:
        colors: uint8 array of shape (N, 4); repeated colors weigh more
        max_colors: Maximum number of output colors

    Returns:
        Average color of each final cube
    """
    if len(colors) == 0 or max_colors <= 0:
        return []

    cubes = [_ColorCube(colors)]
    while len(cubes) < max_colors:
        cubes.sort(key=lambda c: c.volume, reverse=True)
        largest = cubes.pop(0)
        if largest.count <= 1:
            cubes.insert(0, largest)
            break
        cubes.extend(largest.split())

    return [cube.average() for cube in cubes][:max_colors]


class MedianCutStrategy(PaletteStrategy):
    """
    Median-cut (MMCQ) quantization over RGB cubes.

    Colors are weighted by how many voxels use them, and only colors with
    alpha above 128 take part in quantization.
    """

    name = "median_cut"

    def build(self, stats: ColorStats, fixed: Sequence[ColorKey]) -> List[ColorKey]:
        palette = _ColorList(fixed)
        budget = MAX_COLORS - len(palette)

        if len(stats) <= budget:
            for color in stats.keys():
                palette.add(color)
            return palette.colors

        logger.info("Median-cut quantizing %d colors to %d", len(stats), budget)
        weighted = np.repeat(stats.colors, stats.counts, axis=0)
        weighted = weighted[weighted[:, 3] > 128]

        for color in median_cut(weighted, budget):
            palette.add(color)
        return palette.colors


STRATEGIES = {
    HueBucketStrategy.name: HueBucketStrategy,
    MedianCutStrategy.name: MedianCutStrategy,
}


class PaletteSynthesizer:
    """
    Builds the export palette for a set of voxel colors.

    Usage:
        synthesizer = PaletteSynthesizer(PaletteMode.ADAPTIVE)
        palette = synthesizer.synthesize(colors_rgba8)
    """

    def __init__(
        self,
        mode: PaletteMode = PaletteMode.PRESET,
        strategy: Optional[PaletteStrategy] = None,
        inject_key_colors: bool = True
    ):
        """
        Initialize the synthesizer.

        Args:
            mode: Preset or adaptive palette
            strategy: Adaptive strategy (hue-bucket if None)
            inject_key_colors: Force KEY_COLORS into adaptive palettes
        """
        self.mode = mode
        self.strategy = strategy or HueBucketStrategy()
        self.inject_key_colors = inject_key_colors

    @classmethod
    def from_config(cls, config: ExportConfig) -> "PaletteSynthesizer":
        return cls(
            mode=config.palette_mode,
            strategy=STRATEGIES[config.strategy](),
            inject_key_colors=config.inject_key_colors,
        )

    def fixed_colors(self) -> List[ColorKey]:
        """Colors that lead an adaptive palette."""
        fixed = _ColorList()
        if self.inject_key_colors:
            for color in KEY_COLORS:
                fixed.add(color)
        for color in self.strategy.base_colors:
            fixed.add(color)
        return fixed.colors

    def synthesize(self, colors: np.ndarray) -> Palette:
        """
        Build the palette.

        Args:
            colors: uint8 array of shape (N, 4) with voxel colors

        Returns:
            Palette with at most 255 colors after the transparent entry
        """
        stats = ColorStats.collect(colors)

        if self.mode is PaletteMode.PRESET:
            table = preset_palette()
            logger.debug("Using preset palette (%d entries)", len(table))
            return Palette.from_colors(
                (color_key(c) for c in table[1:]),
                PaletteMode.PRESET,
                source_colors=len(stats),
            )

        colors = self.strategy.build(stats, self.fixed_colors())
        palette = Palette.from_colors(colors, PaletteMode.ADAPTIVE, source_colors=len(stats))
        logger.debug(
            "Built %s palette: %d colors from %d distinct",
            self.strategy.name, len(palette) - 1, len(stats)
        )
        return palette
