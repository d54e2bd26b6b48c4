"""
Command-Line Interface for Voxport

Usage:
    voxport model.npz -o model.vox
    voxport model.npz -o model.vox --palette adaptive --strategy median_cut
    voxport old.vox -o new.vox --palette adaptive --save-palette palette.png

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .config import ExportConfig, PaletteMode, STRATEGY_NAMES
from .exporters import VoxExporter, load_vox, vox_to_mesh
from .mesh import VoxelMesh, load_npz
from .swatch import save_palette_png


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="voxport",
        description="Voxport - Export colored voxel models to MagicaVoxel .vox",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voxport model.npz -o model.vox
      Export with the MagicaVoxel reference palette

  voxport model.npz -o model.vox --palette adaptive
      Build a palette from the model's own colors

  voxport model.npz -o model.vox --palette adaptive --strategy median_cut
      Use median-cut quantization instead of hue buckets

  voxport model.vox -o flat.vox --no-lighting --save-palette palette.png
      Re-export a .vox model without lighting and save its palette swatch

Input Formats:
  .npz  - arrays `positions` (N, 3) and `colors` (N, 4), uint8 or 0-1 floats
  .vox  - files written by voxport (first model only). Palettes are read
          in voxport's B,G,R,A slot order, so palettes saved by MagicaVoxel
          itself come back with red and blue swapped
        """
    )

    # Input
    parser.add_argument(
        "input",
        help="Input model (.npz or .vox)"
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Output .vox path (default: input name with .vox suffix)"
    )

    # Palette settings
    parser.add_argument(
        "-p", "--palette",
        choices=[mode.value for mode in PaletteMode],
        default=PaletteMode.PRESET.value,
        help="Palette mode (default: preset)"
    )

    parser.add_argument(
        "--strategy",
        choices=list(STRATEGY_NAMES),
        default="hue_bucket",
        help="Adaptive palette strategy (default: hue_bucket)"
    )

    parser.add_argument(
        "--no-key-colors",
        action="store_true",
        help="Don't force key colors into adaptive palettes"
    )

    parser.add_argument(
        "--no-lighting",
        action="store_true",
        help="Export raw colors without the lighting pass"
    )

    parser.add_argument(
        "--save-palette",
        help="Also write the palette as a 256x1 PNG swatch"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with debug logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def load_mesh(input_path: Path) -> VoxelMesh:
    """Load a mesh from an .npz archive or a .vox file."""
    suffix = input_path.suffix.lower()
    if suffix == ".npz":
        return load_npz(input_path)
    if suffix == ".vox":
        return vox_to_mesh(load_vox(input_path))
    raise ValueError(f"Unsupported input format: {suffix}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else input_path.with_suffix(".vox")
    if output_path.resolve() == input_path.resolve():
        print("Error: Output would overwrite the input file", file=sys.stderr)
        return 1

    start_time = time.time()

    try:
        config = ExportConfig(
            palette_mode=args.palette,
            strategy=args.strategy,
            inject_key_colors=not args.no_key_colors,
            lighting=not args.no_lighting
        )

        if args.verbose:
            print(f"Loading: {input_path}")

        mesh = load_mesh(input_path)

        if args.verbose:
            print(f"Loaded {len(mesh):,} voxels, size {mesh.bounds.size}")

        result = VoxExporter(config).export(mesh)
        output_path.write_bytes(result.content)

        if args.verbose:
            print(f"Exported: {output_path}")

        if args.save_palette:
            save_palette_png(result.palette, args.save_palette)
            if args.verbose:
                print(f"Saved palette: {args.save_palette}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
