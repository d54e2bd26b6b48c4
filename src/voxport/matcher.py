"""
Palette Index Assignment

Maps RGBA colors to the closest palette index.

Order of evaluation for one color:
1. alpha < 128                 -> 0 (empty)
2. exact ColorKey hit          -> mapped index
3. preset palette              -> nearest entry by Euclidean RGB distance
4. adaptive palette:
   a. blue roof band (h 200-250, s > 0.5, v > 0.5) against palette blues
   b. grays (s < 0.15) by value against palette grays
   c. wood / brick band (h 10-50, mid s and v) against the same band
   d. weighted HSV distance over entries of the same translucency class

Each of a-c returns early only when its best candidate is under a fixed
threshold. Matching runs once per distinct color; the kernels only read
the palette arrays, so they run in parallel over colors.
"""

import logging
import numpy as np
from numba import njit, prange

from .color import color_key, rgb_to_hsv, rgb_to_hsv_array, unique_colors
from .config import PaletteMode
from .palette import Palette


logger = logging.getLogger(__name__)


OPACITY_THRESHOLD = 128
SEMI_TRANSPARENT_MAX = 250

BLUE_ROOF_THRESHOLD = 0.4
GRAY_THRESHOLD = 0.15
WOOD_THRESHOLD = 0.3


@njit(cache=True)
def _find_preset(r: int, g: int, b: int, entries: np.ndarray) -> int:
    """Nearest entry by Euclidean RGB distance; lowest index wins ties."""
    closest = 1
    best = np.inf
    for i in range(1, entries.shape[0]):
        dr = r - entries[i, 0]
        dg = g - entries[i, 1]
        db = b - entries[i, 2]
        distance = np.sqrt(dr * dr + dg * dg + db * db)
        if distance < best:
            best = distance
            closest = i
    return closest


@njit(cache=True)
def hsv_distance(th: float, ts: float, tv: float, h: float, s: float, v: float) -> float:
    """
    Perceptually weighted HSV distance.

    Hue difference is circular and normalized by 180 degrees. Weights
    shift toward value for washed-out or dark colors and toward hue when
    both colors are strongly saturated.
    """
    hue_diff = abs(th - h)
    if hue_diff > 180.0:
        hue_diff = 360.0 - hue_diff
    hue_diff /= 180.0
    sat_diff = abs(ts - s)
    val_diff = abs(tv - v)

    hue_weight = 1.0
    sat_weight = 1.0
    val_weight = 1.2

    if ts < 0.2 or s < 0.2:
        hue_weight = 0.3
        val_weight = 1.8

    if ts > 0.7 and s > 0.7:
        hue_weight = 1.5
        sat_weight = 0.8

    if tv < 0.2 or v < 0.2:
        sat_weight = 0.5
        val_weight = 1.8

    return np.sqrt(
        hue_weight * hue_diff * hue_diff +
        sat_weight * sat_diff * sat_diff +
        val_weight * val_diff * val_diff
    )


@njit(cache=True)
def _is_semi_transparent(a: int) -> bool:
    return OPACITY_THRESHOLD <= a < SEMI_TRANSPARENT_MAX


@njit(cache=True)
def _general_search(
    th: float, ts: float, tv: float, a: int,
    entries: np.ndarray, hsv: np.ndarray,
    match_translucency: bool
):
    closest = 1
    best = np.inf
    found = False
    target_semi = _is_semi_transparent(a)

    for i in range(1, entries.shape[0]):
        if match_translucency and _is_semi_transparent(entries[i, 3]) != target_semi:
            continue
        found = True
        distance = hsv_distance(th, ts, tv, hsv[i, 0], hsv[i, 1], hsv[i, 2])
        if distance < best:
            best = distance
            closest = i

    return closest, found


@njit(cache=True)
def _find_adaptive(r: int, g: int, b: int, a: int, entries: np.ndarray, hsv: np.ndarray) -> int:
    th, ts, tv = rgb_to_hsv(r, g, b)
    n = entries.shape[0]

    if 200.0 <= th <= 250.0 and ts > 0.5 and tv > 0.5:
        best_index = 1
        best = np.inf
        for i in range(n):
            if entries[i, 3] == 0:
                continue
            h = hsv[i, 0]
            s = hsv[i, 1]
            v = hsv[i, 2]
            if 200.0 <= h <= 250.0 and s > 0.4:
                diff = abs(th - h) / 50.0 * 0.3 + abs(ts - s) * 0.3 + abs(tv - v) * 0.4
                if diff < best:
                    best = diff
                    best_index = i
        if best < BLUE_ROOF_THRESHOLD:
            return best_index

    if ts < 0.15:
        best_index = 1
        best = np.inf
        for i in range(n):
            if entries[i, 3] == 0:
                continue
            if hsv[i, 1] < 0.15:
                diff = abs(hsv[i, 2] - tv)
                if diff < best:
                    best = diff
                    best_index = i
        if best < GRAY_THRESHOLD:
            return best_index

    if 10.0 <= th <= 50.0 and 0.2 < ts < 0.8 and 0.2 < tv < 0.8:
        best_index = 1
        best = np.inf
        for i in range(n):
            if entries[i, 3] == 0:
                continue
            h = hsv[i, 0]
            s = hsv[i, 1]
            v = hsv[i, 2]
            if 10.0 <= h <= 50.0 and 0.2 < s < 0.8 and 0.2 < v < 0.8:
                diff = abs(th - h) / 40.0 * 0.4 + abs(ts - s) * 0.3 + abs(tv - v) * 0.3
                if diff < best:
                    best = diff
                    best_index = i
        if best < WOOD_THRESHOLD:
            return best_index

    closest, found = _general_search(th, ts, tv, a, entries, hsv, True)
    if not found:
        # No entry shares the target's translucency class
        closest, found = _general_search(th, ts, tv, a, entries, hsv, False)
    return closest


@njit(cache=True, parallel=True)
def _match_colors(targets: np.ndarray, entries: np.ndarray, hsv: np.ndarray, preset: bool) -> np.ndarray:
    n = targets.shape[0]
    result = np.empty(n, dtype=np.int64)
    for i in prange(n):
        r = targets[i, 0]
        g = targets[i, 1]
        b = targets[i, 2]
        a = targets[i, 3]
        if a < OPACITY_THRESHOLD:
            result[i] = 0
        elif preset:
            result[i] = _find_preset(r, g, b, entries)
        else:
            result[i] = _find_adaptive(r, g, b, a, entries, hsv)
    return result


class ColorMatcher:
    """
    Assigns palette indices to colors.

    Usage:
        matcher = ColorMatcher(palette)
        indices = matcher.match(colors_rgba8)
    """

    def __init__(self, palette: Palette):
        """
        Initialize the matcher.

        Args:
            palette: Palette to match against (read-only)
        """
        self.palette = palette
        self._entries = np.ascontiguousarray(palette.entries, dtype=np.int64)
        self._hsv = rgb_to_hsv_array(self._entries)
        self._preset = palette.mode is PaletteMode.PRESET

    def find_index(self, color) -> int:
        """
        Find the palette index for one 8-bit RGBA color.

        Args:
            color: (r, g, b, a) with 0-255 components

        Returns:
            Palette index (0 for colors below the opacity threshold)
        """
        return int(self.match(np.array([color_key(color)], dtype=np.uint8))[0])

    def match(self, colors: np.ndarray) -> np.ndarray:
        """
        Find palette indices for many colors.

        Args:
            colors: uint8 array of shape (N, 4)

        Returns:
            uint8 array of shape (N,) with palette indices
        """
        colors = np.asarray(colors, dtype=np.uint8).reshape(-1, 4)
        unique, _, inverse = unique_colors(colors)

        result = np.zeros(len(unique), dtype=np.int64)
        pending = []
        for i, color in enumerate(unique):
            if color[3] < OPACITY_THRESHOLD:
                continue
            index = self.palette.color_map.get(color_key(color))
            if index is None:
                pending.append(i)
            else:
                result[i] = index

        if pending:
            pending = np.array(pending, dtype=np.int64)
            result[pending] = _match_colors(
                unique[pending].astype(np.int64), self._entries, self._hsv, self._preset
            )

        logger.debug(
            "Matched %d distinct colors, %d by nearest search",
            len(unique), len(pending)
        )
        return result[inverse].astype(np.uint8)
