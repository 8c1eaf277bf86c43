"""Result encoder — serializes diff rasters into transportable image artifacts."""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path

from snapdiff.engine.errors import EncodeError
from snapdiff.models.image import RasterImage

logger = logging.getLogger(__name__)

PNG_DATA_URL_PREFIX = "data:image/png;base64,"


def encode_png(raster: RasterImage) -> bytes:
    """Encode a raster as lossless RGBA PNG bytes."""
    if raster.is_empty:
        raise EncodeError(f"Cannot encode an empty {raster.width}x{raster.height} raster")
    buf = io.BytesIO()
    try:
        raster.to_pil().save(buf, format="PNG")
    except (OSError, ValueError, MemoryError) as e:
        raise EncodeError(f"PNG encoding failed: {e}") from e
    return buf.getvalue()


def to_data_url(png: bytes) -> str:
    return PNG_DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")


def encode(raster: RasterImage, output_path: str | Path | None = None) -> str:
    """Serialize a diff raster and return a reference to it.

    Without ``output_path`` the reference is a ``data:image/png;base64`` URL;
    otherwise the PNG is written there and the path is returned.
    """
    png = encode_png(raster)
    if output_path is None:
        return to_data_url(png)

    path = Path(output_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(png)
    except OSError as e:
        raise EncodeError(f"Cannot write diff image to {path}: {e}") from e
    logger.debug("Wrote %d byte diff image to %s", len(png), path)
    return str(path)
