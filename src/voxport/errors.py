"""
Export Error Types

Every failure raised out of an export is a VoxExportError. The specific
subclasses describe conditions a user can act on (the model is too big,
another export is running); anything else is wrapped into
UnexpectedExportError so the caller only ever has to handle one family.
"""

from typing import Tuple


class VoxExportError(Exception):
    """Base class for all export failures."""


class MissingMeshError(VoxExportError):
    """Raised when no voxel mesh was supplied to the exporter."""

    def __init__(self):
        super().__init__("No voxel mesh to export")


class SizeLimitExceededError(VoxExportError):
    """Raised when the model bounds exceed the .vox axis limit."""

    def __init__(self, size: Tuple[int, int, int], max_size: int):
        self.size = tuple(int(s) for s in size)
        self.max_size = max_size
        super().__init__(
            f"VOX format limited to {max_size}x{max_size}x{max_size}. "
            f"Model size: {self.size}"
        )


class VoxelCountExceededError(VoxExportError):
    """Raised when the voxel count exceeds the safety ceiling."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Model has {count:,} voxels, the export limit is {limit:,}"
        )


class ExportAlreadyInProgressError(VoxExportError):
    """Raised when an export is started while another one is running."""

    def __init__(self):
        super().__init__(
            "An export is already in progress. Please wait for it to complete."
        )


class UnexpectedExportError(VoxExportError):
    """Generic failure wrapping any internal error."""

    def __init__(self, message: str = "Something went wrong during export"):
        super().__init__(message)
