"""In-memory RGBA raster used by every stage of the diff engine."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class RasterImage:
    """Decoded image: ``pixels`` is a ``(height, width, 4)`` uint8 RGBA array."""

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid raster size {self.width}x{self.height}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Raster pixels must be uint8, got {self.pixels.dtype}")
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Raster buffer shape {self.pixels.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> RasterImage:
        height, width = pixels.shape[:2]
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def from_buffer(cls, width: int, height: int, buffer: bytes | bytearray) -> RasterImage:
        """Build a raster from a flat RGBA byte buffer (row-major)."""
        expected = width * height * 4
        if len(buffer) != expected:
            raise ValueError(f"Buffer length {len(buffer)} != {width}*{height}*4 ({expected})")
        pixels = np.frombuffer(bytes(buffer), dtype=np.uint8).reshape(height, width, 4).copy()
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def from_pil(cls, image: Image.Image) -> RasterImage:
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls.from_array(np.array(rgba, dtype=np.uint8))

    @classmethod
    def solid(
        cls, width: int, height: int, color: tuple[int, int, int] | tuple[int, int, int, int]
    ) -> RasterImage:
        rgba = tuple(color) if len(color) == 4 else (*color, 255)
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = rgba
        return cls(width=width, height=height, pixels=pixels)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def buffer(self) -> bytes:
        return self.pixels.tobytes()

    def copy(self) -> RasterImage:
        return RasterImage(width=self.width, height=self.height, pixels=self.pixels.copy())

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))
