"""
Voxel Mesh Data Structures

This module provides the read-only input side of the exporter:
- Voxel: a single lattice position with a normalized RGBA color
- Bounds: inclusive integer corners of a model
- VoxelMesh: a sparse voxel collection stored as numpy arrays

Coordinate system: X-right, Y-up, Z-forward. The .vox writer swaps
Y and Z when serializing because MagicaVoxel is Z-up.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
import numpy as np


@dataclass(frozen=True)
class Voxel:
    """A voxel: integer position plus RGBA color in [0, 1]."""
    position: Tuple[float, float, float]
    color: Tuple[float, float, float, float]


@dataclass(frozen=True)
class Bounds:
    """Inclusive integer bounding box."""
    min: Tuple[int, int, int]
    max: Tuple[int, int, int]

    @property
    def size(self) -> Tuple[int, int, int]:
        """Extent along each axis (max - min + 1)."""
        return tuple(int(hi - lo + 1) for lo, hi in zip(self.min, self.max))

    @classmethod
    def from_positions(cls, positions: np.ndarray) -> "Bounds":
        """
        Compute tight bounds around a set of positions.

        Args:
            positions: Array of shape (N, 3)

        Returns:
            Bounds covering every position (origin for an empty array)
        """
        if len(positions) == 0:
            return cls((0, 0, 0), (0, 0, 0))
        lo = np.floor(positions.min(axis=0)).astype(np.int64)
        hi = np.floor(positions.max(axis=0)).astype(np.int64)
        return cls(tuple(int(v) for v in lo), tuple(int(v) for v in hi))


class VoxelMesh:
    """
    Sparse, read-only voxel collection.

    Positions and colors are held as parallel numpy arrays so the
    per-voxel passes can run as vectorized or JIT-compiled loops.
    Both arrays are flagged read-only after construction.
    """

    def __init__(
        self,
        positions: np.ndarray,
        colors: np.ndarray,
        bounds: Optional[Bounds] = None
    ):
        """
        Initialize the mesh.

        Args:
            positions: Array of shape (N, 3) with lattice positions
            colors: Array of shape (N, 4) with RGBA values in [0, 1]
            bounds: Precomputed bounds; derived from positions if None
        """
        positions = np.array(positions, dtype=np.float64).reshape(-1, 3)
        colors = np.array(colors, dtype=np.float64).reshape(-1, 4)

        if len(positions) != len(colors):
            raise ValueError(
                f"Got {len(positions)} positions but {len(colors)} colors"
            )

        positions.setflags(write=False)
        colors.setflags(write=False)

        self._positions = positions
        self._colors = colors
        self._bounds = bounds if bounds is not None else Bounds.from_positions(positions)

    @classmethod
    def from_voxels(
        cls,
        voxels: Iterable[Voxel],
        bounds: Optional[Bounds] = None
    ) -> "VoxelMesh":
        """Build a mesh from Voxel objects."""
        voxels = list(voxels)
        positions = np.array([v.position for v in voxels], dtype=np.float64)
        colors = np.array([v.color for v in voxels], dtype=np.float64)
        return cls(positions, colors, bounds)

    @classmethod
    def from_rgba8(
        cls,
        positions: np.ndarray,
        colors: np.ndarray,
        bounds: Optional[Bounds] = None
    ) -> "VoxelMesh":
        """Build a mesh from 8-bit RGBA colors."""
        colors = np.asarray(colors, dtype=np.float64) / 255.0
        return cls(positions, colors, bounds)

    @property
    def positions(self) -> np.ndarray:
        return self._positions

    @property
    def colors(self) -> np.ndarray:
        return self._colors

    @property
    def bounds(self) -> Bounds:
        return self._bounds

    def get_voxels(self) -> List[Voxel]:
        """Materialize the mesh as a list of Voxel objects."""
        return [
            Voxel(tuple(p.tolist()), tuple(c.tolist()))
            for p, c in zip(self._positions, self._colors)
        ]

    def __len__(self) -> int:
        return len(self._positions)

    def __repr__(self) -> str:
        return f"VoxelMesh(voxels={len(self)}, bounds={self._bounds})"


def load_npz(path) -> VoxelMesh:
    """
    Load a mesh from an .npz archive.

    The archive must contain `positions` (N, 3) and `colors` (N, 4).
    Colors stored as uint8 are treated as 0-255, floats as 0-1. Optional
    `bounds_min` / `bounds_max` arrays supply precomputed bounds.
    """
    with np.load(path) as data:
        positions = data["positions"]
        colors = data["colors"]
        bounds = None
        if "bounds_min" in data.files and "bounds_max" in data.files:
            bounds = Bounds(
                tuple(int(v) for v in data["bounds_min"]),
                tuple(int(v) for v in data["bounds_max"]),
            )

    if colors.dtype == np.uint8:
        return VoxelMesh.from_rgba8(positions, colors, bounds)
    return VoxelMesh(positions, colors, bounds)


def save_npz(mesh: VoxelMesh, path):
    """Write a mesh to an .npz archive readable by load_npz."""
    np.savez_compressed(
        path,
        positions=mesh.positions,
        colors=mesh.colors,
        bounds_min=np.array(mesh.bounds.min),
        bounds_max=np.array(mesh.bounds.max),
    )
