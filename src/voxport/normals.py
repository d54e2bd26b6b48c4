"""
Per-Voxel Normal Estimation

A voxel's normal is derived from which of its 6 axis neighbors are empty:
the unit vectors pointing at every empty neighbor are summed. Buried
voxels (or symmetric exposure, where the sum cancels out) get "up".

The geometric normal is then pulled 40% toward the light direction and
renormalized. This is intentionally not a physically correct face
normal: biasing toward the light raises overall scene brightness.
"""

import numpy as np
from numba import njit, prange

from .adjacency import BoundsAdjacency


def _normalize(v) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    return v / np.linalg.norm(v)


# Light comes from above, slightly right and in front (Y-up)
LIGHT_DIRECTION = _normalize([0.5, 1.0, 0.3])

# Weight of the light direction in the blended normal
NORMAL_LIGHT_BIAS = 0.4

UP = np.array([0.0, 1.0, 0.0])

# -X, +X, -Y, +Y, -Z, +Z
NEIGHBOR_OFFSETS = np.array([
    [-1, 0, 0],
    [1, 0, 0],
    [0, -1, 0],
    [0, 1, 0],
    [0, 0, -1],
    [0, 0, 1],
], dtype=np.int64)


@njit(cache=True)
def _is_occupied(grid: np.ndarray, x: int, y: int, z: int) -> bool:
    """Check occupancy, treating anything outside the grid as empty."""
    sx, sy, sz = grid.shape
    if x < 0 or x >= sx or y < 0 or y >= sy or z < 0 or z >= sz:
        return False
    return grid[x, y, z]


@njit(cache=True, parallel=True)
def _estimate_normals(
    grid: np.ndarray,
    local: np.ndarray,
    offsets: np.ndarray,
    light: np.ndarray,
    bias: float
) -> np.ndarray:
    """
    Estimate light-biased normals for every voxel.

    Args:
        grid: Occupancy grid (X, Y, Z)
        local: (N, 3) voxel positions in grid space
        offsets: (6, 3) neighbor offsets
        light: Unit light direction
        bias: Weight of the light direction in the blend

    Returns:
        (N, 3) float64 unit normals
    """
    n = local.shape[0]
    normals = np.empty((n, 3), dtype=np.float64)

    for i in prange(n):
        x = local[i, 0]
        y = local[i, 1]
        z = local[i, 2]

        sx = 0.0
        sy = 0.0
        sz = 0.0
        for d in range(6):
            ox = offsets[d, 0]
            oy = offsets[d, 1]
            oz = offsets[d, 2]
            if not _is_occupied(grid, x + ox, y + oy, z + oz):
                sx += ox
                sy += oy
                sz += oz

        length = np.sqrt(sx * sx + sy * sy + sz * sz)
        if length < 1e-6:
            sx, sy, sz = 0.0, 1.0, 0.0
        else:
            sx /= length
            sy /= length
            sz /= length

        bx = sx * (1.0 - bias) + light[0] * bias
        by = sy * (1.0 - bias) + light[1] * bias
        bz = sz * (1.0 - bias) + light[2] * bias
        length = np.sqrt(bx * bx + by * by + bz * bz)

        normals[i, 0] = bx / length
        normals[i, 1] = by / length
        normals[i, 2] = bz / length

    return normals


def estimate_normals(adjacency: BoundsAdjacency) -> np.ndarray:
    """
    Estimate a light-biased outward normal for each voxel.

    Args:
        adjacency: Bounds and occupancy of the mesh

    Returns:
        Array of shape (N, 3) with unit normals
    """
    return _estimate_normals(
        adjacency.occupancy,
        adjacency.local_positions,
        NEIGHBOR_OFFSETS,
        LIGHT_DIRECTION,
        NORMAL_LIGHT_BIAS,
    )
