"""
Export modules.

Supported formats:
- MagicaVoxel (.vox) - indexed 256-color palette, up to 256³ voxels
"""

from .vox_exporter import (
    ChunkWriter,
    VoxExport,
    VoxExporter,
    VoxFile,
    load_vox,
    parse_vox,
    vox_to_mesh,
)

__all__ = [
    "ChunkWriter",
    "VoxExport",
    "VoxExporter",
    "VoxFile",
    "load_vox",
    "parse_vox",
    "vox_to_mesh",
]
