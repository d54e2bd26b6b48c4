"""
Color Management Module

Handles:
- Quantizing normalized RGBA colors to 8-bit components
- ColorKey canonicalization for palette lookups
- RGB <-> HSV conversion (palette bucketing and color matching)
- RGB <-> HSL conversion (lighting pass)
- First-seen-order deduplication of color arrays

HSV hue is rounded to whole degrees, matching how palette entries and
targets are compared during matching. All rounding is half-up so results
are stable across platforms.
"""

from typing import Tuple
import numpy as np
from numba import njit, prange


ColorKey = Tuple[int, int, int, int]


@njit(cache=True)
def _round_half_up(x: float) -> float:
    return np.floor(x + 0.5)


@njit(cache=True)
def rgb_to_hsv(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """
    Convert an 8-bit RGB color to HSV.

    Args:
        r, g, b: Color components (0-255)

    Returns:
        (h, s, v) with h in whole degrees [0, 360), s and v in [0, 1]
    """
    rn = r / 255.0
    gn = g / 255.0
    bn = b / 255.0

    mx = max(rn, gn, bn)
    mn = min(rn, gn, bn)
    delta = mx - mn

    s = 0.0 if mx == 0.0 else delta / mx
    v = mx

    if delta == 0.0:
        h = 0.0
    elif mx == rn:
        h = np.fmod((gn - bn) / delta, 6.0)
    elif mx == gn:
        h = (bn - rn) / delta + 2.0
    else:
        h = (rn - gn) / delta + 4.0

    h = _round_half_up(h * 60.0)
    if h < 0.0:
        h += 360.0
    if h >= 360.0:
        h -= 360.0

    return h, s, v


@njit(cache=True)
def hsv_to_rgb(h: float, s: float, v: float) -> Tuple[int, int, int]:
    """
    Convert HSV to an 8-bit RGB color.

    Args:
        h: Hue in degrees [0, 360)
        s, v: Saturation and value in [0, 1]

    Returns:
        (r, g, b) components (0-255)
    """
    c = v * s
    x = c * (1.0 - abs(np.fmod(h / 60.0, 2.0) - 1.0))
    m = v - c

    if h < 60.0:
        r, g, b = c, x, 0.0
    elif h < 120.0:
        r, g, b = x, c, 0.0
    elif h < 180.0:
        r, g, b = 0.0, c, x
    elif h < 240.0:
        r, g, b = 0.0, x, c
    elif h < 300.0:
        r, g, b = x, 0.0, c
    else:
        r, g, b = c, 0.0, x

    return (
        int(_round_half_up((r + m) * 255.0)),
        int(_round_half_up((g + m) * 255.0)),
        int(_round_half_up((b + m) * 255.0)),
    )


@njit(cache=True)
def rgb_to_hsl(r: float, g: float, b: float) -> Tuple[float, float, float]:
    """
    Convert a normalized RGB color to HSL.

    Args:
        r, g, b: Color components in [0, 1]

    Returns:
        (h, s, l), all in [0, 1]
    """
    mx = max(r, g, b)
    mn = min(r, g, b)
    l = (mx + mn) / 2.0

    if mx == mn:
        return 0.0, 0.0, l

    d = mx - mn
    if l > 0.5:
        s = d / (2.0 - mx - mn)
    else:
        s = d / (mx + mn)

    if mx == r:
        h = (g - b) / d + (6.0 if g < b else 0.0)
    elif mx == g:
        h = (b - r) / d + 2.0
    else:
        h = (r - g) / d + 4.0

    return h / 6.0, s, l


@njit(cache=True)
def _hue_to_channel(p: float, q: float, t: float) -> float:
    if t < 0.0:
        t += 1.0
    if t > 1.0:
        t -= 1.0
    if t < 1.0 / 6.0:
        return p + (q - p) * 6.0 * t
    if t < 0.5:
        return q
    if t < 2.0 / 3.0:
        return p + (q - p) * (2.0 / 3.0 - t) * 6.0
    return p


@njit(cache=True)
def hsl_to_rgb(h: float, s: float, l: float) -> Tuple[float, float, float]:
    """
    Convert HSL to a normalized RGB color.

    Args:
        h, s, l: Hue, saturation and lightness in [0, 1]

    Returns:
        (r, g, b) in [0, 1]
    """
    if s == 0.0:
        return l, l, l

    q = l * (1.0 + s) if l < 0.5 else l + s - l * s
    p = 2.0 * l - q
    return (
        _hue_to_channel(p, q, h + 1.0 / 3.0),
        _hue_to_channel(p, q, h),
        _hue_to_channel(p, q, h - 1.0 / 3.0),
    )


@njit(cache=True, parallel=True)
def rgb_to_hsv_array(colors: np.ndarray) -> np.ndarray:
    """
    Convert 8-bit colors to HSV.

    Args:
        colors: Array of shape (N, 3) or (N, 4) with 0-255 values

    Returns:
        Array of shape (N, 3) with (h, s, v) rows
    """
    n = colors.shape[0]
    result = np.empty((n, 3), dtype=np.float64)

    for i in prange(n):
        h, s, v = rgb_to_hsv(colors[i, 0], colors[i, 1], colors[i, 2])
        result[i, 0] = h
        result[i, 1] = s
        result[i, 2] = v

    return result


def to_rgba8(colors: np.ndarray) -> np.ndarray:
    """
    Quantize normalized RGBA colors to 8-bit components.

    Args:
        colors: Array of shape (N, 4) with values in [0, 1]

    Returns:
        uint8 array of the same shape
    """
    clamped = np.clip(np.asarray(colors, dtype=np.float64), 0.0, 1.0)
    return np.floor(clamped * 255.0 + 0.5).astype(np.uint8)


def color_key(color) -> ColorKey:
    """Canonical (r, g, b, a) key of an 8-bit color."""
    return (int(color[0]), int(color[1]), int(color[2]), int(color[3]))


def unique_colors(colors: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Deduplicate 8-bit RGBA colors, keeping first-seen order.

    Args:
        colors: uint8 array of shape (N, 4)

    Returns:
        Tuple of (unique, counts, inverse) where:
        - unique: Array of shape (M, 4), ordered by first occurrence
        - counts: Occurrences of each unique color
        - inverse: Array of shape (N,) mapping each input to its unique row
    """
    colors = np.ascontiguousarray(colors, dtype=np.uint8).reshape(-1, 4)
    if len(colors) == 0:
        return (
            np.zeros((0, 4), dtype=np.uint8),
            np.zeros(0, dtype=np.int64),
            np.zeros(0, dtype=np.int64),
        )

    # Pack RGBA into one integer per color for a 1-D unique
    packed = colors.astype(np.uint32)
    packed = (packed[:, 0] << 24) | (packed[:, 1] << 16) | (packed[:, 2] << 8) | packed[:, 3]

    _, first, inverse, counts = np.unique(
        packed, return_index=True, return_inverse=True, return_counts=True
    )
    inverse = inverse.reshape(-1)

    order = np.argsort(first, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))

    return colors[first[order]], counts[order].astype(np.int64), rank[inverse].astype(np.int64)
