"""Error taxonomy for the image diff engine."""

from __future__ import annotations


class ImageDiffError(Exception):
    """Base class for all comparison failures."""


class LoadError(ImageDiffError):
    """An image reference could not be fetched or decoded."""

    def __init__(self, ref: str, reason: str):
        self.ref = ref
        self.reason = reason
        super().__init__(f"Failed to load image {ref}: {reason}")


class DimensionError(ImageDiffError):
    """Both images are degenerate (zero width or height)."""


class EncodeError(ImageDiffError):
    """The diff raster could not be serialized."""
