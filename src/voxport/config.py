"""Export configuration."""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class PaletteMode(Enum):
    """How the output palette is produced."""
    PRESET = "preset"        # Fixed MagicaVoxel reference palette
    ADAPTIVE = "adaptive"    # Built from the model's own colors


STRATEGY_NAMES = ("hue_bucket", "median_cut")


@dataclass
class ExportConfig:
    """Configuration for a .vox export.

    Attributes:
        palette_mode: Preset reference palette or adaptive palette
        strategy: Adaptive palette strategy ("hue_bucket" or "median_cut")
        inject_key_colors: Force the key colors into adaptive palettes
        lighting: Apply the normal/material lighting pass before palette
            synthesis
        max_safe_voxels: Voxel-count ceiling checked before any processing
        max_size: Maximum model extent along any axis
    """

    palette_mode: Union[PaletteMode, str] = PaletteMode.PRESET
    strategy: str = "hue_bucket"
    inject_key_colors: bool = True
    lighting: bool = True
    max_safe_voxels: int = 400000
    max_size: int = 256

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.palette_mode, str):
            self.palette_mode = PaletteMode(self.palette_mode)

        if self.strategy not in STRATEGY_NAMES:
            raise ValueError(
                f"Unknown palette strategy: {self.strategy} "
                f"(expected one of {', '.join(STRATEGY_NAMES)})"
            )

        if self.max_safe_voxels <= 0:
            raise ValueError(
                f"max_safe_voxels must be positive, got {self.max_safe_voxels}"
            )

        if not 1 <= self.max_size <= 256:
            raise ValueError(
                f"max_size must be between 1 and 256, got {self.max_size}"
            )
