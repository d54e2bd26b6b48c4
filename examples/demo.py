#!/usr/bin/env python3
"""
Voxport Demo Script

This script demonstrates the full export pipeline by:
1. Creating procedural test models (no external files needed)
2. Exporting each one with the preset and adaptive palettes
3. Reading the files back and printing statistics

Run with: python examples/demo.py
"""

import sys
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voxport import ExportConfig, VoxExporter, VoxelMesh, load_vox
from voxport.swatch import save_palette_png


def create_test_tower(width: int = 10, height: int = 32) -> VoxelMesh:
    """
    Create a hollow stone tower with windows, a wooden door and a red roof.

    Returns:
        VoxelMesh
    """
    positions = []
    colors = []

    roof_start = height - height // 5

    # Grass base
    for x in range(-2, width + 2):
        for z in range(-2, width + 2):
            positions.append([x, 0, z])
            colors.append([70, 140, 60, 255])

    for y in range(1, height):
        if y >= roof_start:
            # Stepped roof
            inset = y - roof_start
            if inset * 2 >= width:
                break
            for x in range(inset, width - inset):
                for z in range(inset, width - inset):
                    positions.append([x, y, z])
                    colors.append([180, 45, 40, 255])
            continue

        for x in range(width):
            for z in range(width):
                if 0 < x < width - 1 and 0 < z < width - 1:
                    continue

                on_face_center = x in (width // 2 - 1, width // 2) or z in (width // 2 - 1, width // 2)
                if y < 4 and z == 0 and on_face_center:
                    colors.append([120, 80, 45, 255])      # Door
                elif y % 6 == 3 and on_face_center:
                    colors.append([170, 210, 240, 200])    # Glass
                else:
                    shade = 110 + (x * 7 + y * 13 + z * 5) % 40
                    colors.append([shade, shade, shade + 5, 255])
                positions.append([x, y, z])

    return VoxelMesh.from_rgba8(np.array(positions), np.array(colors, dtype=np.uint8))


def create_test_gradient(size: int = 24) -> VoxelMesh:
    """
    Create a solid cube with a full RGB gradient (far more than 255 colors).

    Returns:
        VoxelMesh
    """
    axis = np.arange(size)
    x, y, z = np.meshgrid(axis, axis, axis, indexing="ij")
    positions = np.stack([x.ravel(), y.ravel(), z.ravel()], axis=1)
    colors = np.empty((len(positions), 4), dtype=np.uint8)
    colors[:, :3] = (positions * 255 // (size - 1)).astype(np.uint8)
    colors[:, 3] = 255
    return VoxelMesh.from_rgba8(positions, colors)


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("Voxport - Demo")
    print("=" * 60)
    print()

    # Create output directory
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    test_models = [
        ("tower", create_test_tower()),
        ("gradient", create_test_gradient()),
    ]

    configs = [
        ("preset", ExportConfig(palette_mode="preset")),
        ("adaptive", ExportConfig(palette_mode="adaptive")),
        ("median_cut", ExportConfig(palette_mode="adaptive", strategy="median_cut")),
    ]

    total_start = time.time()

    for name, mesh in test_models:
        print(f"\n--- Processing: {name} ---")
        print(f"Voxels: {len(mesh):,}, size: {mesh.bounds.size}")

        for label, config in configs:
            output_path = output_dir / f"{name}_{label}.vox"

            start = time.time()
            try:
                result = VoxExporter(config).export(mesh)
            except Exception as e:
                print(f"  {label}: export failed: {e}")
                continue
            elapsed = time.time() - start
            output_path.write_bytes(result.content)

            vox = load_vox(output_path)
            used = len(np.unique(vox.voxels[:, 3]))
            print(f"  {label}:")
            print(f"    Export: {elapsed*1000:.1f}ms, {output_path.stat().st_size:,} bytes")
            print(f"    Voxels written: {len(vox.voxels):,}, palette indices used: {used}")
            print(f"    Saved: {output_path}")

            if label == "adaptive":
                swatch_path = save_palette_png(result.palette, output_dir / f"{name}_palette.png")
                print(f"    Palette swatch: {swatch_path}")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    run_demo()
