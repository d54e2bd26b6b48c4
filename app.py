#!/usr/bin/env python3
"""
Voxport Web Interface

A simple Gradio-based web UI for exporting voxel models to MagicaVoxel .vox.

Run with: python app.py
Then open http://localhost:7860 in your browser
"""

import sys
from pathlib import Path
import tempfile
import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import gradio as gr
from voxport import (
    ExportConfig,
    RecordingStatusSink,
    StatusLevel,
    VoxExportError,
    VoxExporter,
    VoxelMesh,
    load_npz,
    load_vox,
    vox_to_mesh,
)
from voxport.swatch import palette_to_image


STATUS_HEADINGS = {
    StatusLevel.INFO: "## Export Complete!",
    StatusLevel.WARNING: "## Export Complete (with warnings)",
    StatusLevel.FAILURE: "## Export Failed",
}


def create_demo_model(style: str):
    """Create a demo voxel model."""
    positions = []
    colors = []

    if style == "Tower":
        for y in range(24):
            for x in range(8):
                for z in range(8):
                    if 0 < x < 7 and 0 < z < 7 and y < 20:
                        continue
                    if y >= 20:
                        colors.append([170, 40, 35, 255])      # roof
                    elif y % 5 == 2 and (x in (3, 4) or z in (3, 4)):
                        colors.append([150, 200, 255, 255])    # windows
                    else:
                        colors.append([128, 128, 128, 255])    # stone
                    positions.append([x, y, z])

    elif style == "Gradient Cube":
        size = 16
        for y in range(size):
            for x in range(size):
                for z in range(size):
                    positions.append([x, y, z])
                    colors.append([
                        int(255 * x / (size - 1)),
                        int(255 * y / (size - 1)),
                        int(255 * z / (size - 1)),
                        255
                    ])

    elif style == "Glass Box":
        for y in range(10):
            for x in range(10):
                for z in range(10):
                    if 0 < x < 9 and 0 < y < 9 and 0 < z < 9:
                        continue
                    positions.append([x, y, z])
                    if y == 0:
                        colors.append([101, 67, 33, 255])
                    else:
                        colors.append([120, 180, 230, 180])

    else:
        return None

    return VoxelMesh.from_rgba8(np.array(positions), np.array(colors, dtype=np.uint8))


def load_model(model_file, demo_style: str):
    """Load the uploaded model, or build the selected demo."""
    if model_file is not None:
        path = Path(model_file if isinstance(model_file, str) else model_file.name)
        if path.suffix.lower() == ".vox":
            return vox_to_mesh(load_vox(path))
        return load_npz(path)
    if demo_style:
        return create_demo_model(demo_style)
    return None


def export_model(
    model_file,
    demo_style: str,
    palette_mode: str,
    strategy: str,
    lighting: bool,
    key_colors: bool
):
    """
    Export a model and report the outcome.

    Returns status text, the .vox path for download and the palette swatch.
    """
    config = ExportConfig(
        palette_mode=palette_mode.lower(),
        strategy=strategy,
        inject_key_colors=key_colors,
        lighting=lighting
    )
    status = RecordingStatusSink()
    exporter = VoxExporter(config, status)

    try:
        mesh = load_model(model_file, demo_style)
    except (OSError, ValueError, KeyError) as e:
        return f"{STATUS_HEADINGS[StatusLevel.FAILURE]}\n\n{e}", None, None

    export_dir = tempfile.mkdtemp(prefix="voxport_")
    vox_path = Path(export_dir) / "model.vox"

    try:
        result = exporter.export(mesh)
    except VoxExportError:
        return f"{STATUS_HEADINGS[status.worst_level]}\n\n{status.text()}", None, None

    vox_path.write_bytes(result.content)
    palette = result.palette
    swatch = np.array(palette_to_image(palette).resize((512, 32)))

    stats_text = f"""{STATUS_HEADINGS[status.worst_level]}

| Metric | Value |
|--------|-------|
| Voxel Count | {len(mesh):,} |
| Model Size | {mesh.bounds.size} |
| Source Colors | {palette.source_colors:,} |
| Palette Colors | {len(palette) - 1} |

**Settings:** {palette_mode}, {strategy}, lighting={'on' if lighting else 'off'}

{status.text()}
"""

    return stats_text, str(vox_path), swatch


# Build the Gradio interface
with gr.Blocks(title="Voxport") as app:

    gr.Markdown("""
    # Voxport
    ### Export Voxel Models to MagicaVoxel

    Upload a model (.npz, or a .vox written by voxport) or try a demo, pick a palette, and download the .vox file!
    """)

    with gr.Row():
        # Left column - Input
        with gr.Column(scale=1):
            gr.Markdown("### Input Model")

            model_input = gr.File(
                label="Upload Model (.npz or .vox)",
                file_types=[".npz", ".vox"]
            )

            demo_dropdown = gr.Dropdown(
                choices=["Tower", "Gradient Cube", "Glass Box"],
                value="Tower",
                label="Or use a demo"
            )

            gr.Markdown("### Settings")

            palette_mode = gr.Radio(
                choices=["Preset", "Adaptive"],
                value="Adaptive",
                label="Palette Mode"
            )

            strategy = gr.Dropdown(
                choices=["hue_bucket", "median_cut"],
                value="hue_bucket",
                label="Adaptive Strategy"
            )

            lighting = gr.Checkbox(value=True, label="Lighting")
            key_colors = gr.Checkbox(value=True, label="Key Colors")

            export_btn = gr.Button("Export .vox", variant="primary")

        # Right column - Results
        with gr.Column(scale=2):
            stats_output = gr.Markdown(
                value="Pick a model and click 'Export' to see results."
            )

            palette_output = gr.Image(label="Palette", type="numpy")
            vox_output = gr.File(label="VOX (MagicaVoxel)")

            gr.Markdown("""
            ---
            **Tips:**
            - **Preset** = MagicaVoxel default palette
            - **Adaptive** = palette built from the model's colors
            - **median_cut** works best for photo-like gradients
            """)

    # Wire up events
    export_btn.click(
        fn=export_model,
        inputs=[
            model_input,
            demo_dropdown,
            palette_mode,
            strategy,
            lighting,
            key_colors
        ],
        outputs=[stats_output, vox_output, palette_output]
    )


if __name__ == "__main__":
    print("\n" + "="*60)
    print("Voxport Web Interface")
    print("="*60)
    print("\nStarting server...")
    print("Open http://localhost:7860 in your browser\n")

    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False
    )
