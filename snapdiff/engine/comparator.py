"""Pixel comparator — classifies pixels as changed and renders the diff raster.

The comparison is a pure function of its two rasters and the policy. All work
happens on arrays owned by the call, so concurrent comparisons never share
mutable state.

Tolerances:

* ``PIXEL_TOLERANCE``: a pixel counts as changed when its delta (max channel
  difference, or luminance difference with ``ignore_colors``) exceeds 16/255.
  Font hinting and color-profile drift stay below it; real content changes
  land far above it.
* Anti-aliasing: a changed pixel is ignored when, in either image, it sits
  between a darker and a brighter neighbor, has at most two neighbors of equal
  luminance, and its darkest or brightest neighbor lies in a flat area of both
  images (edge smoothing between two solid regions).
* Sampling: above ``large_image_threshold`` only every ``step``-th row and
  column is classified. The anti-aliasing check then runs on that strided
  grid, so its "neighbors" are ``step`` pixels apart rather than the true
  3x3 neighborhood. Thin smoothed edges may therefore be reported as changed
  on sampled comparisons.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from PIL import Image

from snapdiff.engine.errors import DimensionError
from snapdiff.models.comparison import ComparisonPolicy, DimensionDifference, ErrorType
from snapdiff.models.image import RasterImage

logger = logging.getLogger(__name__)

PIXEL_TOLERANCE = 16.0
MOVEMENT_INTENSITY_WEIGHT = 0.8
FLAT_SIBLING_COUNT = 3  # equal neighbors needed for a pixel to count as part of a solid area
MAX_EQUAL_SIBLINGS = 2

_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)
_NEIGHBOR_OFFSETS = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 1),
    (1, -1), (1, 0), (1, 1),
)


@dataclass(frozen=True)
class PixelDiff:
    diff_image: RasterImage
    mismatched_pixels: int
    total_pixels: int
    is_same_dimensions: bool
    dimension_difference: DimensionDifference | None = None
    sampled: bool = False

    @property
    def diff_percentage(self) -> float:
        if self.total_pixels == 0:
            return 0.0
        return round(self.mismatched_pixels / self.total_pixels * 100, 2)


def compare_pixels(
    a: RasterImage, b: RasterImage, policy: ComparisonPolicy | None = None
) -> PixelDiff:
    """Compare two rasters pixel by pixel.

    ``a`` is the baseline and ``b`` the current image. Rasters of different
    sizes are either resampled to a common size (``scale_to_same_size``) or
    compared on their overlap with the remainder counted as changed.
    Raises DimensionError when both rasters are empty.
    """
    policy = policy or ComparisonPolicy()
    if a.is_empty and b.is_empty:
        raise DimensionError(f"Cannot compare two empty images ({a.width}x{a.height}, {b.width}x{b.height})")

    same_size = a.size == b.size
    dimension_difference = None
    if not same_size:
        dimension_difference = DimensionDifference(width=a.width - b.width, height=a.height - b.height)

    overlap: tuple[int, int] | None = None
    if same_size:
        pa, pb, base = a.pixels, b.pixels, b.pixels
    elif policy.scale_to_same_size and not a.is_empty and not b.is_empty:
        pa, pb = _scale_to_common_size(a, b)
        base = pb
    else:
        pa, pb, base, overlap = _pad_to_canvas(a, b)

    height, width = pa.shape[:2]
    step = sampling_step(width, height, policy.large_image_threshold)
    if step > 1:
        logger.debug("Sampling every %d pixels of %dx%d canvas", step, width, height)
        sa, sb = pa[::step, ::step], pb[::step, ::step]
    else:
        sa, sb = pa, pb

    delta = pixel_delta(sa, sb, policy)
    mismatch = delta > PIXEL_TOLERANCE
    if policy.ignore_antialiasing:
        mismatch &= ~antialiased_mask(sa, sb, policy.ignore_alpha)

    if overlap is not None:
        rows = math.ceil(overlap[0] / step)
        cols = math.ceil(overlap[1] / step)
        outside = np.ones(mismatch.shape, dtype=bool)
        outside[:rows, :cols] = False
        mismatch |= outside
        delta[outside] = 255.0

    mismatched = int(mismatch.sum())
    total = int(mismatch.size)

    if step > 1:
        mismatch = _expand(mismatch, step, height, width)
        delta = _expand(delta, step, height, width)

    diff = render_diff(base, mismatch, delta, policy)
    return PixelDiff(
        diff_image=RasterImage.from_array(diff),
        mismatched_pixels=mismatched,
        total_pixels=total,
        is_same_dimensions=same_size,
        dimension_difference=dimension_difference,
        sampled=step > 1,
    )


def sampling_step(width: int, height: int, threshold: int) -> int:
    longest = max(width, height)
    if longest <= threshold:
        return 1
    return math.ceil(longest / threshold)


def pixel_delta(pa: np.ndarray, pb: np.ndarray, policy: ComparisonPolicy) -> np.ndarray:
    """Per-pixel difference magnitude on a 0-255 scale."""
    rgb_a = _color_planes(pa, policy.ignore_alpha)
    rgb_b = _color_planes(pb, policy.ignore_alpha)
    if policy.ignore_colors:
        return np.abs(_luminance(rgb_a) - _luminance(rgb_b))

    delta = np.abs(rgb_a - rgb_b).max(axis=2)
    if not policy.ignore_alpha:
        alpha_delta = np.abs(pa[..., 3].astype(np.float32) - pb[..., 3].astype(np.float32))
        delta = np.maximum(delta, alpha_delta)
    return delta


def antialiased_mask(pa: np.ndarray, pb: np.ndarray, ignore_alpha: bool = False) -> np.ndarray:
    """True where a pixel looks like edge smoothing in either image."""
    lum_a = _luminance(_color_planes(pa, ignore_alpha))
    lum_b = _luminance(_color_planes(pb, ignore_alpha))
    flat = (_equal_sibling_count(lum_a) >= FLAT_SIBLING_COUNT) & (
        _equal_sibling_count(lum_b) >= FLAT_SIBLING_COUNT
    )
    return _on_smooth_edge(lum_a, flat) | _on_smooth_edge(lum_b, flat)


def render_diff(
    base: np.ndarray, mismatch: np.ndarray, delta: np.ndarray, policy: ComparisonPolicy
) -> np.ndarray:
    """Paint changed pixels over ``base`` according to the policy's error type."""
    out = base.copy()
    unchanged = ~mismatch
    if policy.error_type is ErrorType.DIFF_ONLY:
        out[unchanged] = 0
    elif policy.transparency < 1.0:
        faded = np.round(base[..., 3].astype(np.float32) * policy.transparency).astype(np.uint8)
        out[..., 3] = np.where(unchanged, faded, base[..., 3])

    if not mismatch.any():
        return out

    color = np.array(policy.error_color, dtype=np.float32)
    changed = base[mismatch][:, :3].astype(np.float32)
    alpha: np.ndarray | int = 255
    match policy.error_type:
        case ErrorType.FLAT | ErrorType.DIFF_ONLY:
            rgb = np.broadcast_to(color, changed.shape)
        case ErrorType.MOVEMENT:
            rgb = (changed * (color / 255.0) + color) / 2.0
        case ErrorType.FLAT_DIFFERENCE_INTENSITY:
            rgb = np.broadcast_to(color, changed.shape)
            alpha = np.clip(np.round(delta[mismatch]), 0, 255).astype(np.uint8)
        case ErrorType.MOVEMENT_DIFFERENCE_INTENSITY:
            ratio = (delta[mismatch] / 255.0 * MOVEMENT_INTENSITY_WEIGHT)[:, None]
            rgb = (1.0 - ratio) * (changed * (color / 255.0)) + ratio * color

    out[mismatch, :3] = np.clip(np.round(rgb), 0, 255).astype(np.uint8)
    out[mismatch, 3] = alpha
    return out


def _color_planes(pixels: np.ndarray, ignore_alpha: bool) -> np.ndarray:
    rgb = pixels[..., :3].astype(np.float32)
    if ignore_alpha:
        return rgb
    # Composite over white so transparency shows up in color and luminance
    alpha = pixels[..., 3:4].astype(np.float32) / 255.0
    return rgb * alpha + 255.0 * (1.0 - alpha)


def _luminance(rgb: np.ndarray) -> np.ndarray:
    return rgb @ _LUMA_WEIGHTS


def _neighbors(plane: np.ndarray) -> np.ndarray:
    """Stack of the 8 neighbors of every pixel, shape (8, H, W); edges replicate."""
    height, width = plane.shape
    padded = np.pad(plane, 1, mode="edge")
    return np.stack([
        padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]
        for dy, dx in _NEIGHBOR_OFFSETS
    ])


def _equal_sibling_count(lum: np.ndarray) -> np.ndarray:
    return (_neighbors(lum) == lum).sum(axis=0)


def _on_smooth_edge(lum: np.ndarray, flat: np.ndarray) -> np.ndarray:
    deltas = _neighbors(lum) - lum
    equal = (deltas == 0).sum(axis=0)
    candidate = (
        (equal <= MAX_EQUAL_SIBLINGS)
        & (deltas.min(axis=0) < 0)
        & (deltas.max(axis=0) > 0)
    )
    flat_neighbors = _neighbors(flat)
    darkest = np.take_along_axis(flat_neighbors, deltas.argmin(axis=0)[None], axis=0)[0]
    brightest = np.take_along_axis(flat_neighbors, deltas.argmax(axis=0)[None], axis=0)[0]
    return candidate & (darkest | brightest)


def _scale_to_common_size(a: RasterImage, b: RasterImage) -> tuple[np.ndarray, np.ndarray]:
    # Target is the larger of (area, width, height) so both argument orders share a canvas
    if _size_key(b) > _size_key(a):
        logger.debug("Scaling baseline %dx%d to %dx%d", a.width, a.height, b.width, b.height)
        return _resize(a, b.size), b.pixels
    logger.debug("Scaling current %dx%d to %dx%d", b.width, b.height, a.width, a.height)
    return a.pixels, _resize(b, a.size)


def _size_key(image: RasterImage) -> tuple[int, int, int]:
    return image.width * image.height, image.width, image.height


def _resize(image: RasterImage, size: tuple[int, int]) -> np.ndarray:
    resized = image.to_pil().resize(size, Image.Resampling.BILINEAR)
    return np.array(resized, dtype=np.uint8)


def _pad_to_canvas(
    a: RasterImage, b: RasterImage
) -> tuple[np.ndarray, np.ndarray, np.ndarray, tuple[int, int]]:
    width = max(a.width, b.width)
    height = max(a.height, b.height)
    pa = np.zeros((height, width, 4), dtype=np.uint8)
    pb = np.zeros((height, width, 4), dtype=np.uint8)
    pa[:a.height, :a.width] = a.pixels
    pb[:b.height, :b.width] = b.pixels
    base = pa.copy()
    base[:b.height, :b.width] = b.pixels
    overlap = (min(a.height, b.height), min(a.width, b.width))
    return pa, pb, base, overlap


def _expand(grid: np.ndarray, step: int, height: int, width: int) -> np.ndarray:
    return np.repeat(np.repeat(grid, step, axis=0), step, axis=1)[:height, :width]
