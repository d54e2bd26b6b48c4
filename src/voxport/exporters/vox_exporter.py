"""
MagicaVoxel .vox Format Exporter

The .vox format is a RIFF-style chunk-based binary format used by MagicaVoxel.
It stores voxels as sparse data with a 256-color palette.

File Structure:
- Header: "VOX " (4 bytes) + version (4 bytes, int32)
- MAIN chunk (container, no content)
  - SIZE chunk: dimensions (x, z, y)
  - XYZI chunk: voxel count + (x, z, y, color_index) per voxel
  - RGBA chunk: 256 palette entries, each stored as (b, g, r, a)

Every chunk is [id:4][content_size:4][children_size:4][content][children]
with little-endian sizes.

Limitations:
- Maximum 255 colors (index 0 is empty)
- Maximum 256x256x256 dimensions per model
- Coordinates are uint8

The model is Y-up and MagicaVoxel is Z-up, so Y and Z are swapped on write.
"""

import logging
import struct
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union
import numpy as np

from ..adjacency import BoundsAdjacency
from ..config import ExportConfig, PaletteMode
from ..errors import (
    ExportAlreadyInProgressError,
    MissingMeshError,
    UnexpectedExportError,
    VoxExportError,
    VoxelCountExceededError,
)
from ..lighting import light_mesh
from ..matcher import ColorMatcher
from ..mesh import Bounds, VoxelMesh
from ..palette import MAX_COLORS, PALETTE_SIZE, Palette, PaletteSynthesizer
from ..status import StatusSink


logger = logging.getLogger(__name__)


# VOX format constants
VOX_MAGIC = b'VOX '
VOX_VERSION = 150
MAX_COORD = 255

# Stored palette byte order: B, G, R, A
RGBA_STORED_ORDER = [2, 1, 0, 3]


class VoxChunk:
    """Base class for VOX chunks."""

    def __init__(self, chunk_id: bytes):
        self.chunk_id = chunk_id
        self.content = b''
        self.children = b''

    def pack(self) -> bytes:
        """Pack the chunk into bytes."""
        return (
            self.chunk_id +
            struct.pack('<ii', len(self.content), len(self.children)) +
            self.content +
            self.children
        )


class SizeChunk(VoxChunk):
    """SIZE chunk containing model dimensions."""

    def __init__(self, size_x: int, size_y: int, size_z: int):
        super().__init__(b'SIZE')
        # VOX is Z-up: write x, z, y
        self.content = struct.pack('<iii', size_x, size_z, size_y)


class XYZIChunk(VoxChunk):
    """XYZI chunk containing voxel positions and color indices."""

    def __init__(self):
        super().__init__(b'XYZI')
        self._voxels = np.zeros((0, 4), dtype=np.uint8)

    def set_voxels(self, coords: np.ndarray, indices: np.ndarray):
        """
        Set the voxels of the chunk.

        Args:
            coords: (N, 3) local x, y, z coordinates, each in 0-255
            indices: (N,) palette indices
        """
        voxels = np.empty((len(coords), 4), dtype=np.uint8)
        voxels[:, 0] = coords[:, 0]
        voxels[:, 1] = coords[:, 2]
        voxels[:, 2] = coords[:, 1]
        voxels[:, 3] = indices
        self._voxels = voxels

    def finalize(self):
        """Build the content bytes from the voxels."""
        self.content = struct.pack('<i', len(self._voxels)) + self._voxels.tobytes()


class RGBAChunk(VoxChunk):
    """RGBA chunk containing the 256-color palette."""

    def __init__(self):
        super().__init__(b'RGBA')
        self._palette = np.zeros((PALETTE_SIZE, 4), dtype=np.uint8)

    def set_palette(self, palette: Palette):
        """Set the palette; entries past the palette length stay zero."""
        self._palette = palette.to_table()

    def finalize(self):
        """Build the content bytes from the palette (1024 bytes)."""
        table = self._palette.copy()
        table[0] = 0
        self.content = np.ascontiguousarray(table[:, RGBA_STORED_ORDER]).tobytes()


class MainChunk(VoxChunk):
    """MAIN container chunk."""

    def __init__(self):
        super().__init__(b'MAIN')

    def add_child(self, chunk: VoxChunk):
        """Add a child chunk."""
        self.children += chunk.pack()


class ChunkWriter:
    """
    Serializes voxels and a palette into a .vox byte buffer.

    Voxels whose local coordinates fall outside 0-255 are dropped; the
    voxel count written always matches the voxels actually emitted.
    """

    def write(
        self,
        local_coords: np.ndarray,
        indices: np.ndarray,
        size: Tuple[int, int, int],
        palette: Palette
    ) -> bytes:
        """
        Build the complete file.

        Args:
            local_coords: (N, 3) coordinates relative to the bounds minimum
            indices: (N,) palette indices
            size: Model size (x, y, z)
            palette: Export palette

        Returns:
            File contents
        """
        local_coords = np.floor(np.asarray(local_coords)).astype(np.int64).reshape(-1, 3)
        indices = np.asarray(indices).reshape(-1)

        in_range = np.all((local_coords >= 0) & (local_coords <= MAX_COORD), axis=1)
        dropped = int(len(in_range) - np.count_nonzero(in_range))
        if dropped:
            logger.warning("Dropped %d voxels outside the 0-%d range", dropped, MAX_COORD)

        size_chunk = SizeChunk(int(size[0]), int(size[1]), int(size[2]))

        xyzi_chunk = XYZIChunk()
        xyzi_chunk.set_voxels(local_coords[in_range], indices[in_range])
        xyzi_chunk.finalize()

        rgba_chunk = RGBAChunk()
        rgba_chunk.set_palette(palette)
        rgba_chunk.finalize()

        main_chunk = MainChunk()
        main_chunk.add_child(size_chunk)
        main_chunk.add_child(xyzi_chunk)
        main_chunk.add_child(rgba_chunk)

        header = VOX_MAGIC + struct.pack('<i', VOX_VERSION)
        return header + main_chunk.pack()


@dataclass(frozen=True)
class VoxExport:
    """Result of an export: the file contents and the palette written to them."""
    content: bytes
    palette: Palette
    extension: str = ".vox"


class VoxExporter:
    """
    Export a voxel mesh to MagicaVoxel .vox format.

    Pipeline: bounds/adjacency -> lighting -> palette -> index assignment
    -> chunks. Only one export may run per exporter at a time.

    Usage:
        exporter = VoxExporter(ExportConfig(palette_mode="adaptive"))
        result = exporter.export(mesh)
    """

    def __init__(
        self,
        config: Optional[ExportConfig] = None,
        status: Optional[StatusSink] = None
    ):
        """
        Initialize the exporter.

        Args:
            config: Export configuration (defaults if None)
            status: Progress/status sink (logging sink if None)
        """
        self.config = config or ExportConfig()
        self.status = status or StatusSink()
        self._lock = threading.Lock()

    def get_format_filter(self) -> dict:
        return {"name": "MagicaVoxel", "extension": "vox"}

    @property
    def is_exporting(self) -> bool:
        return self._lock.locked()

    def export(self, mesh: Optional[VoxelMesh]) -> VoxExport:
        """
        Export a mesh to an in-memory .vox buffer.

        Args:
            mesh: Voxel mesh

        Returns:
            VoxExport with the file contents and palette

        Raises:
            ExportAlreadyInProgressError: If another export is running
            MissingMeshError: If mesh is None
            VoxelCountExceededError: If the mesh has too many voxels
            SizeLimitExceededError: If the model is larger than the format allows
            UnexpectedExportError: For any other failure
        """
        if not self._lock.acquire(blocking=False):
            raise ExportAlreadyInProgressError()

        try:
            self._notify("start", "Exporting")
            self._notify("progress", 0.01)
            self._notify("info", "Exporting structure")
            content, palette = self._export(mesh)
            self._notify("progress", 1.0)
            return VoxExport(content, palette)
        except VoxExportError as e:
            self._notify("failure", str(e))
            raise
        except Exception as e:
            logger.exception("VOX export failed")
            error = UnexpectedExportError()
            self._notify("failure", str(error))
            raise error from e
        finally:
            self._notify("end")
            self._lock.release()

    def export_to_file(
        self,
        mesh: Optional[VoxelMesh],
        output_path: Union[str, Path]
    ) -> Path:
        """
        Export a mesh and write it to disk.

        Args:
            mesh: Voxel mesh
            output_path: Output file path

        Returns:
            Path written
        """
        result = self.export(mesh)
        output_path = Path(output_path)
        with open(output_path, 'wb') as f:
            f.write(result.content)
        return output_path

    def _notify(self, method: str, *args):
        """Forward an update to the status sink; sink errors are logged, not raised."""
        try:
            getattr(self.status, method)(*args)
        except Exception:
            logger.warning("Status sink %s() failed", method, exc_info=True)

    def _export(self, mesh: Optional[VoxelMesh]) -> Tuple[bytes, Palette]:
        if mesh is None:
            raise MissingMeshError()

        if len(mesh) > self.config.max_safe_voxels:
            raise VoxelCountExceededError(len(mesh), self.config.max_safe_voxels)

        logger.debug("Processing %d voxels for VOX export", len(mesh))

        adjacency = BoundsAdjacency.from_mesh(mesh, self.config.max_size)
        lit = light_mesh(mesh, adjacency, enabled=self.config.lighting)
        colors = lit.rgba8()

        palette = PaletteSynthesizer.from_config(self.config).synthesize(colors)
        if palette.mode is PaletteMode.ADAPTIVE and palette.source_colors > MAX_COLORS:
            self._notify(
                "warning",
                f"Model uses {palette.source_colors} colors; "
                f"reduced to a {len(palette) - 1}-color palette"
            )
        self._notify("progress", 0.5)

        indices = ColorMatcher(palette).match(colors)

        content = ChunkWriter().write(
            adjacency.local_positions, indices, adjacency.size, palette
        )
        return content, palette


@dataclass(frozen=True)
class VoxFile:
    """Parsed .vox contents."""
    version: int
    size: Tuple[int, int, int]
    voxels: np.ndarray     # (N, 4) uint8 x, z, y, color_index as stored
    palette: np.ndarray    # (256, 4) uint8 RGBA
    main_children_size: int


def parse_vox(data: bytes) -> VoxFile:
    """
    Parse a .vox buffer produced by ChunkWriter.

    Args:
        data: File contents

    Returns:
        VoxFile; palette entries are converted back to (r, g, b, a)
    """
    if data[:4] != VOX_MAGIC:
        raise ValueError(f"Invalid VOX file: bad magic {data[:4]!r}")

    version = struct.unpack_from('<i', data, 4)[0]

    offset = 8
    main_id = data[offset:offset + 4]
    if main_id != b'MAIN':
        raise ValueError("Expected MAIN chunk")
    main_content, main_children = struct.unpack_from('<ii', data, offset + 4)
    offset += 12 + main_content

    size = None
    voxels = np.zeros((0, 4), dtype=np.uint8)
    palette = np.zeros((PALETTE_SIZE, 4), dtype=np.uint8)

    end = offset + main_children
    while offset < end:
        chunk_id = data[offset:offset + 4]
        content_size, children_size = struct.unpack_from('<ii', data, offset + 4)
        content = data[offset + 12:offset + 12 + content_size]

        if chunk_id == b'SIZE':
            size = struct.unpack_from('<iii', content, 0)

        elif chunk_id == b'XYZI':
            num_voxels = struct.unpack_from('<i', content, 0)[0]
            voxels = np.frombuffer(content, dtype=np.uint8, count=num_voxels * 4, offset=4)
            voxels = voxels.reshape(-1, 4).copy()

        elif chunk_id == b'RGBA':
            stored = np.frombuffer(content, dtype=np.uint8, count=PALETTE_SIZE * 4)
            stored = stored.reshape(-1, 4)
            palette = np.empty_like(stored)
            palette[:, RGBA_STORED_ORDER] = stored

        offset += 12 + content_size + children_size

    return VoxFile(version, size, voxels, palette, main_children)


def load_vox(source: Union[str, Path, bytes]) -> VoxFile:
    """Load and parse a .vox file, or an in-memory buffer."""
    if isinstance(source, (bytes, bytearray)):
        return parse_vox(bytes(source))
    with open(Path(source), 'rb') as f:
        return parse_vox(f.read())


def vox_to_mesh(vox: VoxFile) -> VoxelMesh:
    """
    Convert a parsed .vox model back into a Y-up VoxelMesh.

    Voxels with palette index 0 are skipped.
    """
    voxels = vox.voxels[vox.voxels[:, 3] > 0]
    positions = np.stack(
        [voxels[:, 0], voxels[:, 2], voxels[:, 1]], axis=1
    ).astype(np.int64)
    colors = vox.palette[voxels[:, 3]]

    bounds = None
    if vox.size is not None:
        sx, sz, sy = vox.size
        bounds = Bounds((0, 0, 0), (sx - 1, sy - 1, sz - 1))

    return VoxelMesh.from_rgba8(positions, colors, bounds)
