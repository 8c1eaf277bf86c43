"""Region masker — blanks known-dynamic areas before comparison."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from snapdiff.models.comparison import IgnoreRegion
from snapdiff.models.image import RasterImage

logger = logging.getLogger(__name__)

DEFAULT_FILL_COLOR = (128, 128, 128)


def clip_region(region: IgnoreRegion, width: int, height: int) -> tuple[int, int, int, int] | None:
    """Clip a region to the image bounds, returning (x0, y0, x1, y1) or None if empty."""
    x0 = max(0, region.x)
    y0 = max(0, region.y)
    x1 = min(width, region.x + region.width)
    y1 = min(height, region.y + region.height)
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def mask_regions(
    image: RasterImage,
    regions: Sequence[IgnoreRegion],
    fill_color: tuple[int, int, int] = DEFAULT_FILL_COLOR,
) -> RasterImage:
    """Return a copy of ``image`` with every region filled with an opaque color.

    With no regions the input is returned as is. The input buffer is never
    written to.
    """
    if not regions:
        return image

    masked = image.copy()
    fill = (*fill_color, 255)
    applied = 0
    for region in regions:
        bounds = clip_region(region, image.width, image.height)
        if bounds is None:
            continue
        x0, y0, x1, y1 = bounds
        masked.pixels[y0:y1, x0:x1] = fill
        applied += 1

    logger.debug("Masked %d/%d regions on %dx%d image", applied, len(regions), image.width, image.height)
    return masked
