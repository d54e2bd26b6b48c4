"""
Heuristic Material Classification

Tags each voxel with a coarse material from its height within the model
and its raw color. The rules are tuned for architectural models and
overlap on purpose, so they are evaluated in order and the first match
wins:

1. low (< 20% height) and blue-dominant or bright   -> GROUND
2. mid-height (30%-80%) and bright                  -> WINDOW
3. high (> 75% height) and red-dominant             -> ROOF
4. bright and gray                                  -> METAL
5. mid luma and red-dominant                        -> WOOD
6. gray, or dark and neither red nor blue dominant  -> STONE
7. anything else                                    -> UNKNOWN
"""

from enum import IntEnum
import numpy as np
from numba import njit, prange

from .mesh import Bounds, Voxel, VoxelMesh


class MaterialTag(IntEnum):
    """Material categories."""
    STONE = 0
    WOOD = 1
    METAL = 2
    WINDOW = 3
    ROOF = 4
    GROUND = 5
    UNKNOWN = 6


@njit(cache=True)
def classify_material(height: float, r: float, g: float, b: float) -> int:
    """
    Classify one voxel.

    Args:
        height: Height percentile within the model, (y - min.y) / size.y
        r, g, b: Raw color components in [0, 1]

    Returns:
        MaterialTag value
    """
    luma = 0.299 * r + 0.587 * g + 0.114 * b
    grayscale = abs(r - g) < 0.1 and abs(r - b) < 0.1
    red_dominant = r > 1.2 * g and r > 1.2 * b
    blue_dominant = b > 1.2 * r and b > 1.2 * g

    if height < 0.2 and (blue_dominant or luma > 0.7):
        return 5  # GROUND
    if 0.3 < height < 0.8 and luma > 0.6:
        return 3  # WINDOW
    if height > 0.75 and red_dominant:
        return 4  # ROOF
    if luma > 0.7 and grayscale:
        return 2  # METAL
    if 0.3 < luma < 0.7 and red_dominant:
        return 1  # WOOD
    if grayscale or (luma < 0.5 and not red_dominant and not blue_dominant):
        return 0  # STONE
    return 6  # UNKNOWN


@njit(cache=True, parallel=True)
def _classify_all(heights: np.ndarray, colors: np.ndarray) -> np.ndarray:
    n = heights.shape[0]
    tags = np.empty(n, dtype=np.int8)
    for i in prange(n):
        tags[i] = classify_material(heights[i], colors[i, 0], colors[i, 1], colors[i, 2])
    return tags


def height_percentiles(positions: np.ndarray, bounds: Bounds) -> np.ndarray:
    """Relative height of each position: (y - min.y) / size.y."""
    model_height = float(bounds.size[1])
    return (np.asarray(positions, dtype=np.float64)[:, 1] - bounds.min[1]) / model_height


def classify_voxels(mesh: VoxelMesh) -> np.ndarray:
    """
    Classify every voxel of a mesh.

    Args:
        mesh: Voxel mesh

    Returns:
        int8 array of shape (N,) with MaterialTag values
    """
    heights = height_percentiles(mesh.positions, mesh.bounds)
    return _classify_all(heights, mesh.colors)


def classify_voxel(voxel: Voxel, bounds: Bounds) -> MaterialTag:
    """Classify a single voxel within the given bounds."""
    model_height = float(bounds.size[1])
    height = (voxel.position[1] - bounds.min[1]) / model_height
    r, g, b = voxel.color[:3]
    return MaterialTag(classify_material(height, float(r), float(g), float(b)))
