"""
Bounds and Neighbor Occupancy

BoundsAdjacency answers "is there a voxel at P" in O(1) through a dense
occupancy grid spanning the model bounds. The grid is built once per
export and is read-only afterwards, so the per-voxel kernels can share it.

Memory: the grid is one byte per cell, at most 256³ = 16 MB.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np

from .errors import MissingMeshError, SizeLimitExceededError
from .mesh import Bounds, VoxelMesh


@dataclass(frozen=True)
class BoundsAdjacency:
    """
    Immutable bounds + occupancy lookup for one mesh.

    Attributes:
        bounds: Model bounds
        occupancy: Read-only bool array of shape bounds.size
        local_positions: (N, 3) int64 positions relative to bounds.min,
            floored; may fall outside the grid for voxels outside the bounds
    """

    bounds: Bounds
    occupancy: np.ndarray
    local_positions: np.ndarray

    @classmethod
    def from_mesh(
        cls,
        mesh: Optional[VoxelMesh],
        max_size: int = 256
    ) -> "BoundsAdjacency":
        """
        Build the lookup for a mesh.

        Args:
            mesh: Voxel mesh to index
            max_size: Maximum extent along any axis

        Returns:
            BoundsAdjacency instance

        Raises:
            MissingMeshError: If mesh is None
            SizeLimitExceededError: If the bounds exceed max_size on any axis
        """
        if mesh is None:
            raise MissingMeshError()

        bounds = mesh.bounds
        size = bounds.size

        if any(s > max_size for s in size):
            raise SizeLimitExceededError(size, max_size)
        if any(s < 1 for s in size):
            raise ValueError(f"Invalid bounds: {bounds}")

        local = np.floor(mesh.positions - np.array(bounds.min, dtype=np.float64))
        local = local.astype(np.int64)

        occupancy = np.zeros(size, dtype=np.bool_)
        inside = np.all((local >= 0) & (local < np.array(size)), axis=1)
        cells = local[inside]
        occupancy[cells[:, 0], cells[:, 1], cells[:, 2]] = True

        occupancy.setflags(write=False)
        local.setflags(write=False)

        return cls(bounds=bounds, occupancy=occupancy, local_positions=local)

    @property
    def size(self) -> Tuple[int, int, int]:
        return self.bounds.size

    def contains(self, x: int, y: int, z: int) -> bool:
        """Check if a voxel exists at a model-space position."""
        lx = int(np.floor(x)) - self.bounds.min[0]
        ly = int(np.floor(y)) - self.bounds.min[1]
        lz = int(np.floor(z)) - self.bounds.min[2]
        sx, sy, sz = self.occupancy.shape
        if not (0 <= lx < sx and 0 <= ly < sy and 0 <= lz < sz):
            return False
        return bool(self.occupancy[lx, ly, lz])
