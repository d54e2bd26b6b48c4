"""
Lighting / Color Enhancement Pass

Turns each voxel's normal and material tag into an enhanced color:

    light  = MIN_LIGHT + (MAX_LIGHT - MIN_LIGHT) * |dot(normal, light_dir)|
    final  = AMBIENT + light * (1 - AMBIENT) * light_boost
    s'     = min(1, s * saturation_multiplier)
    l'     = min(1, l * final + brightness_shift)

computed in HSL space. MIN_LIGHT keeps a dark floor above zero, so no
voxel turns black from lighting alone. This is a global brightening pass
("fake AO"), not physically based shading. Alpha is never touched.
"""

from dataclasses import dataclass
from typing import Dict, Iterator
import numpy as np
from numba import njit, prange

from .adjacency import BoundsAdjacency
from .color import hsl_to_rgb, rgb_to_hsl, to_rgba8
from .materials import MaterialTag, classify_voxels
from .mesh import VoxelMesh
from .normals import LIGHT_DIRECTION, estimate_normals


MIN_LIGHT = 0.5
MAX_LIGHT = 1.0
AMBIENT = 0.4


@dataclass(frozen=True)
class MaterialProfile:
    """Lighting response of a material."""
    light_boost: float
    saturation_multiplier: float
    brightness_shift: float


MATERIAL_PROFILES: Dict[MaterialTag, MaterialProfile] = {
    MaterialTag.STONE: MaterialProfile(1.10, 0.90, 0.03),
    MaterialTag.WOOD: MaterialProfile(1.15, 1.10, 0.02),
    MaterialTag.METAL: MaterialProfile(1.20, 0.80, 0.05),
    MaterialTag.WINDOW: MaterialProfile(1.25, 1.00, 0.08),
    MaterialTag.ROOF: MaterialProfile(1.10, 1.20, 0.00),
    MaterialTag.GROUND: MaterialProfile(1.00, 1.00, 0.02),
    MaterialTag.UNKNOWN: MaterialProfile(1.00, 1.00, 0.00),
}


def _profile_table() -> np.ndarray:
    """MATERIAL_PROFILES as a (tags, 3) array indexed by tag value."""
    table = np.zeros((len(MaterialTag), 3), dtype=np.float64)
    for tag, profile in MATERIAL_PROFILES.items():
        table[int(tag)] = (
            profile.light_boost,
            profile.saturation_multiplier,
            profile.brightness_shift,
        )
    return table


@njit(cache=True)
def light_level(normal: np.ndarray, light: np.ndarray, min_light: float, max_light: float) -> float:
    """Scalar light level for a unit normal."""
    d = normal[0] * light[0] + normal[1] * light[1] + normal[2] * light[2]
    return min_light + (max_light - min_light) * abs(d)


@njit(cache=True, parallel=True)
def _shade(
    colors: np.ndarray,
    normals: np.ndarray,
    tags: np.ndarray,
    profiles: np.ndarray,
    light: np.ndarray,
    min_light: float,
    max_light: float,
    ambient: float
):
    n = colors.shape[0]
    levels = np.empty(n, dtype=np.float64)
    out = np.empty((n, 4), dtype=np.float64)

    for i in prange(n):
        level = light_level(normals[i], light, min_light, max_light)
        levels[i] = level

        boost = profiles[tags[i], 0]
        sat_mul = profiles[tags[i], 1]
        shift = profiles[tags[i], 2]

        h, s, l = rgb_to_hsl(colors[i, 0], colors[i, 1], colors[i, 2])
        final_light = ambient + level * (1.0 - ambient) * boost
        s = min(1.0, s * sat_mul)
        l = min(1.0, l * final_light + shift)
        r, g, b = hsl_to_rgb(h, s, l)

        out[i, 0] = r
        out[i, 1] = g
        out[i, 2] = b
        out[i, 3] = colors[i, 3]

    return levels, out


@dataclass(frozen=True)
class LitVoxel:
    """A voxel together with everything the lighting pass derived for it."""
    position: tuple
    color: tuple
    normal: tuple
    light_level: float
    material: MaterialTag
    enhanced_color: tuple


@dataclass(frozen=True)
class LitVoxels:
    """
    Struct-of-arrays result of the lighting pass.

    Attributes:
        positions: (N, 3) source positions
        colors: (N, 4) raw colors in [0, 1]
        normals: (N, 3) light-biased unit normals
        light_levels: (N,) scalar light levels
        materials: (N,) MaterialTag values
        enhanced_colors: (N, 4) enhanced colors in [0, 1]
    """

    positions: np.ndarray
    colors: np.ndarray
    normals: np.ndarray
    light_levels: np.ndarray
    materials: np.ndarray
    enhanced_colors: np.ndarray

    def __len__(self) -> int:
        return len(self.positions)

    def __getitem__(self, i: int) -> LitVoxel:
        return LitVoxel(
            position=tuple(self.positions[i].tolist()),
            color=tuple(self.colors[i].tolist()),
            normal=tuple(self.normals[i].tolist()),
            light_level=float(self.light_levels[i]),
            material=MaterialTag(int(self.materials[i])),
            enhanced_color=tuple(self.enhanced_colors[i].tolist()),
        )

    def __iter__(self) -> Iterator[LitVoxel]:
        for i in range(len(self)):
            yield self[i]

    def rgba8(self) -> np.ndarray:
        """Enhanced colors quantized to 8 bits."""
        return to_rgba8(self.enhanced_colors)


def shade_colors(
    colors: np.ndarray,
    normals: np.ndarray,
    materials: np.ndarray
):
    """
    Apply the lighting formula to raw colors.

    Args:
        colors: (N, 4) raw colors in [0, 1]
        normals: (N, 3) unit normals
        materials: (N,) MaterialTag values

    Returns:
        Tuple of (light_levels, enhanced_colors)
    """
    return _shade(
        np.ascontiguousarray(colors, dtype=np.float64),
        np.ascontiguousarray(normals, dtype=np.float64),
        np.ascontiguousarray(materials, dtype=np.int64),
        _profile_table(),
        LIGHT_DIRECTION,
        MIN_LIGHT,
        MAX_LIGHT,
        AMBIENT,
    )


def light_mesh(
    mesh: VoxelMesh,
    adjacency: BoundsAdjacency,
    enabled: bool = True
) -> LitVoxels:
    """
    Run normal estimation, material classification and lighting.

    Args:
        mesh: Source voxel mesh (not modified)
        adjacency: Occupancy lookup built from the same mesh
        enabled: If False, enhanced colors equal the raw colors

    Returns:
        LitVoxels for every voxel of the mesh
    """
    normals = estimate_normals(adjacency)
    materials = classify_voxels(mesh)

    if enabled:
        levels, enhanced = shade_colors(mesh.colors, normals, materials)
    else:
        levels = np.ones(len(mesh), dtype=np.float64)
        enhanced = np.array(mesh.colors, dtype=np.float64)

    return LitVoxels(
        positions=mesh.positions,
        colors=mesh.colors,
        normals=normals,
        light_levels=levels,
        materials=materials,
        enhanced_colors=enhanced,
    )
