"""
Voxport
=======

MagicaVoxel (.vox) export for colored voxel models.

This package turns a sparse voxel mesh with free-form RGBA colors into a
byte-exact .vox file with a 256-entry indexed palette.

Key Features:
- Fake ambient occlusion: surface normals from empty neighbors and
  per-material lighting, computed with Numba JIT kernels
- Preset (MagicaVoxel reference) or adaptive palettes, with hue-bucket
  or median-cut quantization
- Perceptual HSV color matching with special cases for roofs, grays and wood
- Palette swatch import/export as 256x1 PNG

Example Usage:
    from voxport import ExportConfig, VoxExporter, VoxelMesh

    mesh = VoxelMesh.from_rgba8(positions, colors)
    exporter = VoxExporter(ExportConfig(palette_mode="adaptive"))
    exporter.export_to_file(mesh, "model.vox")
"""

__version__ = "1.0.0"
__author__ = "Voxport Team"

from .config import ExportConfig, PaletteMode
from .errors import (
    VoxExportError,
    MissingMeshError,
    SizeLimitExceededError,
    VoxelCountExceededError,
    ExportAlreadyInProgressError,
    UnexpectedExportError,
)
from .mesh import Bounds, Voxel, VoxelMesh, load_npz, save_npz
from .palette import Palette, PaletteSynthesizer, HueBucketStrategy, MedianCutStrategy
from .matcher import ColorMatcher
from .status import StatusLevel, StatusSink, RecordingStatusSink
from .exporters import VoxExport, VoxExporter, load_vox, parse_vox, vox_to_mesh

__all__ = [
    "ExportConfig",
    "PaletteMode",
    "VoxExportError",
    "MissingMeshError",
    "SizeLimitExceededError",
    "VoxelCountExceededError",
    "ExportAlreadyInProgressError",
    "UnexpectedExportError",
    "Bounds",
    "Voxel",
    "VoxelMesh",
    "load_npz",
    "save_npz",
    "Palette",
    "PaletteSynthesizer",
    "HueBucketStrategy",
    "MedianCutStrategy",
    "ColorMatcher",
    "StatusLevel",
    "StatusSink",
    "RecordingStatusSink",
    "VoxExport",
    "VoxExporter",
    "load_vox",
    "parse_vox",
    "vox_to_mesh",
]
