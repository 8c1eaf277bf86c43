"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from snapdiff.models.comparison import ComparisonPolicy
from snapdiff.models.config import DiffConfig
from snapdiff.models.image import RasterImage


# ============================================================================
# Raster Fixtures
# ============================================================================


GRAY = (128, 128, 128)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)
RED = (255, 0, 0)


def png_bytes(raster: RasterImage) -> bytes:
    """Encode a raster as PNG without going through the encoder under test."""
    buf = io.BytesIO()
    Image.fromarray(raster.pixels).save(buf, format="PNG")
    return buf.getvalue()


def with_pixel(raster: RasterImage, x: int, y: int, color: tuple[int, ...]) -> RasterImage:
    changed = raster.copy()
    changed.pixels[y, x] = (*color, 255) if len(color) == 3 else color
    return changed


@pytest.fixture
def gray_image() -> RasterImage:
    """Uniform gray 10x10 raster."""
    return RasterImage.solid(10, 10, GRAY)


@pytest.fixture
def red_pixel_image(gray_image: RasterImage) -> RasterImage:
    """The gray raster with its (5, 5) pixel turned pure red."""
    return with_pixel(gray_image, 5, 5, RED)


@pytest.fixture
def black_image() -> RasterImage:
    return RasterImage.solid(20, 20, BLACK)


@pytest.fixture
def white_image() -> RasterImage:
    return RasterImage.solid(20, 20, WHITE)


@pytest.fixture
def hard_edge_image() -> RasterImage:
    """10x10 raster: black in columns 0-4, white in columns 5-9."""
    pixels = np.zeros((10, 10, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[:, 5:, :3] = 255
    return RasterImage.from_array(pixels)


@pytest.fixture
def smoothed_edge_image(hard_edge_image: RasterImage) -> RasterImage:
    """The hard edge with column 5 softened to mid gray, as anti-aliasing does."""
    smoothed = hard_edge_image.copy()
    smoothed.pixels[:, 5, :3] = 128
    return smoothed


@pytest.fixture
def gradient_image() -> RasterImage:
    """32x24 raster with distinct colors per pixel."""
    ys, xs = np.mgrid[0:24, 0:32]
    pixels = np.zeros((24, 32, 4), dtype=np.uint8)
    pixels[..., 0] = xs * 8
    pixels[..., 1] = ys * 10
    pixels[..., 2] = (xs + ys) * 4
    pixels[..., 3] = 255
    return RasterImage.from_array(pixels)


@pytest.fixture
def image_file(tmp_path: Path, gradient_image: RasterImage) -> Path:
    """The gradient raster saved as a PNG file."""
    path = tmp_path / "gradient.png"
    path.write_bytes(png_bytes(gradient_image))
    return path


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def default_policy() -> ComparisonPolicy:
    return ComparisonPolicy()


@pytest.fixture
def diff_config(tmp_path: Path) -> DiffConfig:
    """Config writing its store into the test's temp directory."""
    return DiffConfig(
        store_path=str(tmp_path / "store" / "snapshots.json"),
        fetch_timeout_seconds=5.0,
    )


@pytest.fixture
def temp_config_file(diff_config: DiffConfig, tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_file = tmp_path / "snapdiff.json"
    diff_config.save(config_file)
    return config_file
