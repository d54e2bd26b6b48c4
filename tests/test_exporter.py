"""
Unit tests for the .vox writer, the export pipeline and the CLI.
"""

import struct
import sys
import tempfile
import threading
from pathlib import Path
from unittest import mock
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voxport import (
    Bounds,
    ExportConfig,
    PaletteMode,
    RecordingStatusSink,
    StatusLevel,
    VoxelMesh,
    VoxExporter,
    load_vox,
    parse_vox,
    save_npz,
    vox_to_mesh,
)
from voxport.cli import main
from voxport.errors import (
    ExportAlreadyInProgressError,
    MissingMeshError,
    SizeLimitExceededError,
    UnexpectedExportError,
    VoxelCountExceededError,
    VoxExportError,
)
from voxport.exporters.vox_exporter import ChunkWriter, VOX_VERSION
from voxport.palette import Palette
from voxport.status import StatusSink
from voxport.swatch import load_palette_png


def make_mesh(positions, colors, bounds=None) -> VoxelMesh:
    return VoxelMesh.from_rgba8(np.array(positions), np.array(colors, dtype=np.uint8), bounds)


def find_chunk(data: bytes, chunk_id: bytes) -> bytes:
    """Content bytes of the first chunk with the given id."""
    offset = data.index(chunk_id)
    content_size = struct.unpack_from('<i', data, offset + 4)[0]
    return data[offset + 12:offset + 12 + content_size]


def ten_color_mesh() -> VoxelMesh:
    colors = [
        [200, 30, 30, 255], [30, 200, 30, 255], [30, 30, 200, 255], [200, 200, 30, 255],
        [30, 200, 200, 255], [200, 30, 200, 255], [90, 60, 40, 255], [15, 25, 35, 255],
        [240, 240, 230, 255], [100, 100, 110, 255],
    ]
    positions = [[i, i % 3, i % 2] for i in range(10)]
    return make_mesh(positions, colors)


class TestChunkWriter(unittest.TestCase):
    """Tests for binary serialization."""

    def setUp(self):
        self.palette = Palette.from_colors(
            [(255, 0, 0, 255), (0, 128, 255, 200)], PaletteMode.ADAPTIVE
        )

    def write(self, coords, indices, size=(4, 4, 4)):
        return ChunkWriter().write(np.array(coords), np.array(indices, dtype=np.uint8), size, self.palette)

    def test_header(self):
        """Test magic and version."""
        data = self.write([[0, 0, 0]], [1])
        assert data[:4] == b'VOX '
        assert struct.unpack_from('<i', data, 4)[0] == VOX_VERSION

    def test_main_children_size(self):
        """Test MAIN has no content and its children fill the rest of the file."""
        data = self.write([[0, 0, 0], [1, 2, 3]], [1, 2])
        assert data[8:12] == b'MAIN'
        content_size, children_size = struct.unpack_from('<ii', data, 12)
        assert content_size == 0
        assert children_size == len(data) - 20

    def test_chunk_sizes(self):
        """Test each sub-chunk declares its real content size."""
        data = self.write([[0, 0, 0], [1, 2, 3]], [1, 2])
        assert len(find_chunk(data, b'SIZE')) == 12
        assert len(find_chunk(data, b'XYZI')) == 4 + 2 * 4
        assert len(find_chunk(data, b'RGBA')) == 1024

    def test_axes_swapped(self):
        """Test SIZE and XYZI are written as x, z, y."""
        data = self.write([[1, 2, 3]], [1], size=(5, 6, 7))
        assert struct.unpack('<iii', find_chunk(data, b'SIZE')) == (5, 7, 6)
        assert list(find_chunk(data, b'XYZI')[4:]) == [1, 3, 2, 1]

    def test_palette_byte_order(self):
        """Test palette entries are stored B, G, R, A with entry 0 zero."""
        rgba = find_chunk(self.write([[0, 0, 0]], [1]), b'RGBA')
        assert list(rgba[0:4]) == [0, 0, 0, 0]
        assert list(rgba[4:8]) == [0, 0, 255, 255]
        assert list(rgba[8:12]) == [255, 128, 0, 200]
        assert not any(rgba[12:])

    def test_out_of_range_dropped(self):
        """Test voxels outside 0-255 are skipped and the count follows."""
        data = self.write([[0, 0, 0], [300, 0, 0], [-1, 0, 0], [255, 1, 1]], [1, 1, 1, 2])
        xyzi = find_chunk(data, b'XYZI')
        assert struct.unpack_from('<i', xyzi, 0)[0] == 2
        assert len(xyzi) == 4 + 2 * 4

    def test_reader_round_trip(self):
        """Test parse_vox undoes the axis swap and the palette byte order."""
        vox = parse_vox(self.write([[1, 2, 3]], [2], size=(5, 6, 7)))
        assert vox.version == VOX_VERSION
        assert vox.size == (5, 7, 6)
        assert vox.voxels.tolist() == [[1, 3, 2, 2]]
        assert vox.palette[2].tolist() == [0, 128, 255, 200]


class TestVoxExporter(unittest.TestCase):
    """Tests for the export pipeline."""

    def test_single_red_voxel(self):
        """Test one red voxel exports with a 1x1x1 size and a lit red palette entry."""
        mesh = make_mesh([[0, 0, 0]], [[255, 0, 0, 255]])
        exporter = VoxExporter(ExportConfig(palette_mode="adaptive"))
        result = exporter.export(mesh)

        assert result.extension == ".vox"
        vox = parse_vox(result.content)
        assert vox.size == (1, 1, 1)
        assert len(vox.voxels) == 1
        index = vox.voxels[0, 3]
        assert 1 <= index <= 255
        assert vox.palette[index].tolist() == [251, 0, 0, 255]

    def test_ten_colors_without_lighting(self):
        """Test a few unlit colors each get their own exact palette entry."""
        mesh = ten_color_mesh()
        exporter = VoxExporter(ExportConfig(palette_mode="adaptive", lighting=False))
        vox = parse_vox(exporter.export(mesh).content)

        by_position = {(x, z, y): i for x, y, z, i in vox.voxels.tolist()}
        rgba8 = np.floor(mesh.colors * 255 + 0.5).astype(int)
        for position, color in zip(mesh.positions.astype(int).tolist(), rgba8.tolist()):
            index = by_position[tuple(position)]
            assert vox.palette[index].tolist() == color
        assert len(set(by_position.values())) == 10

    def test_identical_colors_share_index(self):
        """Test equal colors on different voxels get the same index."""
        positions = [[x, 0, 0] for x in range(8)]
        colors = [[123, 77, 201, 255]] * 8
        for mode in ("preset", "adaptive"):
            config = ExportConfig(palette_mode=mode, lighting=False)
            vox = parse_vox(VoxExporter(config).export(make_mesh(positions, colors)).content)
            indices = set(vox.voxels[:, 3].tolist())
            assert len(indices) == 1
            assert 0 not in indices

    def test_voxel_outside_bounds_dropped(self):
        """Test a voxel outside the supplied bounds is left out of the file."""
        positions = [[x, 0, 0] for x in range(4)] + [[300, 0, 0]]
        mesh = make_mesh(positions, [[200, 50, 50, 255]] * 5, Bounds((0, 0, 0), (3, 0, 0)))
        vox = parse_vox(VoxExporter().export(mesh).content)

        assert vox.size == (4, 1, 1)
        assert len(vox.voxels) == 4
        assert vox.voxels[:, 0].max() <= 3

    def test_low_alpha_written_as_empty(self):
        """Test nearly transparent voxels are written with index 0."""
        mesh = make_mesh([[0, 0, 0], [1, 0, 0]], [[255, 0, 0, 255], [0, 255, 0, 40]])
        vox = parse_vox(VoxExporter().export(mesh).content)
        indices = dict(((x, y, z), i) for x, y, z, i in vox.voxels.tolist())
        assert indices[(1, 0, 0)] == 0
        assert indices[(0, 0, 0)] != 0

    def test_deterministic(self):
        """Test exporting the same mesh twice gives identical bytes."""
        mesh = ten_color_mesh()
        for config in (ExportConfig(), ExportConfig(palette_mode="adaptive"),
                       ExportConfig(palette_mode="adaptive", strategy="median_cut")):
            exporter = VoxExporter(config)
            assert exporter.export(mesh).content == exporter.export(mesh).content

    def test_progress_reported(self):
        """Test progress goes start -> palette -> done."""
        status = RecordingStatusSink()
        VoxExporter(status=status).export(ten_color_mesh())
        assert status.fractions == [0.01, 0.5, 1.0]
        assert status.active_task is None
        assert status.worst_level == StatusLevel.INFO

    def test_quantization_warning(self):
        """Test adaptive export of many colors reports a warning."""
        positions = [[x, y, z] for x in range(8) for y in range(8) for z in range(8)]
        colors = [[x * 32, y * 32, z * 32, 255] for x, y, z in positions]
        status = RecordingStatusSink()
        config = ExportConfig(palette_mode="adaptive", lighting=False)
        result = VoxExporter(config, status).export(make_mesh(positions, colors))

        assert status.worst_level == StatusLevel.WARNING
        assert "512" in status.text()
        assert len(parse_vox(result.content).voxels) == 512

    def test_export_to_file(self):
        """Test writing to disk and reading back into a mesh."""
        mesh = ten_color_mesh()
        with tempfile.TemporaryDirectory() as tmp:
            path = VoxExporter(ExportConfig(palette_mode="adaptive", lighting=False)).export_to_file(
                mesh, Path(tmp) / "model.vox"
            )
            loaded = vox_to_mesh(load_vox(path))

        assert len(loaded) == len(mesh)
        assert loaded.bounds == mesh.bounds
        assert sorted(map(tuple, loaded.positions.tolist())) == sorted(map(tuple, mesh.positions.tolist()))

    def test_result_carries_written_palette(self):
        """Test the returned palette is the one written to the RGBA chunk."""
        result = VoxExporter(ExportConfig(palette_mode="adaptive")).export(ten_color_mesh())

        assert result.palette.mode is PaletteMode.ADAPTIVE
        assert np.array_equal(parse_vox(result.content).palette, result.palette.to_table())

    def test_format_filter(self):
        assert VoxExporter().get_format_filter()["extension"] == "vox"


class TestExportErrors(unittest.TestCase):
    """Tests for export failures."""

    def test_missing_mesh(self):
        status = RecordingStatusSink()
        exporter = VoxExporter(status=status)
        with self.assertRaises(MissingMeshError):
            exporter.export(None)
        assert status.worst_level == StatusLevel.FAILURE
        assert not exporter.is_exporting

    def test_voxel_count(self):
        """Test the voxel-count ceiling is enforced."""
        exporter = VoxExporter(ExportConfig(max_safe_voxels=5))
        with self.assertRaises(VoxelCountExceededError) as ctx:
            exporter.export(ten_color_mesh())
        assert ctx.exception.count == 10
        assert ctx.exception.limit == 5

    def test_size_limit(self):
        """Test models over 256 along an axis are rejected."""
        mesh = make_mesh([[0, 0, 0], [300, 0, 0]], [[255, 0, 0, 255]] * 2)
        with self.assertRaises(SizeLimitExceededError):
            VoxExporter().export(mesh)

    def test_export_in_progress(self):
        """Test a second export is refused while one is running."""
        exporter = VoxExporter()
        entered = threading.Event()
        release = threading.Event()
        errors = []

        original = exporter._export

        def slow_export(mesh):
            entered.set()
            release.wait(5)
            return original(mesh)

        exporter._export = slow_export
        thread = threading.Thread(target=lambda: exporter.export(ten_color_mesh()))
        thread.start()
        entered.wait(5)

        try:
            exporter.export(ten_color_mesh())
        except ExportAlreadyInProgressError as e:
            errors.append(e)
        finally:
            release.set()
            thread.join(5)

        assert len(errors) == 1
        assert not exporter.is_exporting

    def test_unexpected_error_wrapped(self):
        """Test internal failures surface as UnexpectedExportError."""
        exporter = VoxExporter()
        with mock.patch(
            "voxport.exporters.vox_exporter.light_mesh",
            side_effect=RuntimeError("boom")
        ):
            with self.assertRaises(UnexpectedExportError) as ctx:
                exporter.export(ten_color_mesh())

        assert isinstance(ctx.exception.__cause__, RuntimeError)
        assert isinstance(ctx.exception, VoxExportError)
        assert not exporter.is_exporting

        # The guard is released, so the next export works
        assert exporter.export(ten_color_mesh()).content[:4] == b'VOX '

    def test_failing_status_sink(self):
        """Test a raising status sink neither fails nor wedges the export."""
        class FlakySink(StatusSink):
            def __init__(self):
                self.starts = 0

            def start(self, task):
                self.starts += 1
                if self.starts == 1:
                    raise RuntimeError("sink offline")

            def progress(self, fraction):
                raise RuntimeError("sink offline")

        sink = FlakySink()
        exporter = VoxExporter(status=sink)

        first = exporter.export(ten_color_mesh())
        assert not exporter.is_exporting
        second = exporter.export(ten_color_mesh())

        assert sink.starts == 2
        assert first.content == second.content
        assert first.content[:4] == b'VOX '

    def test_failing_status_sink_on_error(self):
        """Test export errors still surface when the sink raises too."""
        class BrokenSink(StatusSink):
            def failure(self, message):
                raise RuntimeError("sink offline")

            def end(self):
                raise RuntimeError("sink offline")

        exporter = VoxExporter(status=BrokenSink())
        with self.assertRaises(MissingMeshError):
            exporter.export(None)
        assert not exporter.is_exporting


class TestCLI(unittest.TestCase):
    """Tests for the command-line interface."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.input = self.tmp / "model.npz"
        save_npz(ten_color_mesh(), self.input)

    def tearDown(self):
        self._tmp.cleanup()

    def test_export(self):
        output = self.tmp / "out.vox"
        assert main([str(self.input), "-o", str(output)]) == 0
        assert len(load_vox(output).voxels) == 10

    def test_adaptive_with_swatch(self):
        output = self.tmp / "out.vox"
        swatch = self.tmp / "palette.png"
        code = main([
            str(self.input), "-o", str(output),
            "--palette", "adaptive", "--strategy", "median_cut",
            "--no-lighting", "--save-palette", str(swatch)
        ])
        assert code == 0
        assert output.exists()
        assert swatch.exists()
        assert np.array_equal(load_palette_png(swatch).to_table(), load_vox(output).palette)

    def test_reexport_vox(self):
        """Test a .vox file can be used as input."""
        first = self.tmp / "first.vox"
        second = self.tmp / "second.vox"
        assert main([str(self.input), "-o", str(first)]) == 0
        assert main([str(first), "-o", str(second), "--palette", "adaptive"]) == 0
        assert len(load_vox(second).voxels) == 10

    def test_missing_input(self):
        assert main([str(self.tmp / "missing.npz")]) == 1

    def test_unsupported_input(self):
        path = self.tmp / "model.txt"
        path.write_text("not a model")
        assert main([str(path), "-o", str(self.tmp / "out.vox")]) == 1


if __name__ == "__main__":
    unittest.main()
