"""Image loader — fetches an image reference and decodes it into a RasterImage."""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
from pathlib import Path
from typing import Union
from urllib.parse import unquote_to_bytes, urlparse
from urllib.request import url2pathname

import httpx
from PIL import Image, UnidentifiedImageError

from snapdiff.engine.errors import LoadError
from snapdiff.models.image import RasterImage

logger = logging.getLogger(__name__)

ImageReference = Union[str, Path, bytes]

DEFAULT_TIMEOUT_SECONDS = 30.0


def describe_ref(ref: ImageReference) -> str:
    """Short printable form of a reference for logs and errors."""
    if isinstance(ref, bytes):
        return f"<{len(ref)} bytes>"
    text = str(ref)
    if text.startswith("data:"):
        return text[: text.find(",") + 1] + "..." if "," in text else "data:..."
    return text


def decode_image(data: bytes, ref: str = "<bytes>") -> RasterImage:
    """Decode encoded image bytes (PNG, JPEG, WebP, ...) into an RGBA raster.

    Alpha is kept as is; formats without alpha come out fully opaque.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            raster = RasterImage.from_pil(img)
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as e:
        raise LoadError(ref, f"cannot decode image: {e}") from e
    logger.debug("Decoded %s (%dx%d)", ref, raster.width, raster.height)
    return raster


def _decode_data_url(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep:
        raise LoadError(describe_ref(url), "malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise LoadError(describe_ref(url), f"invalid base64 payload: {e}") from e
    return unquote_to_bytes(payload)


def _local_path(ref: str | Path) -> Path:
    if isinstance(ref, Path):
        return ref
    parsed = urlparse(ref)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    return Path(ref)


async def _fetch_http(url: str, timeout: float, client: httpx.AsyncClient | None) -> bytes:
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as own_client:
                response = await own_client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        raise LoadError(url, f"timed out after {timeout}s") from e
    except httpx.HTTPStatusError as e:
        raise LoadError(url, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise LoadError(url, f"request failed: {e}") from e
    return response.content


async def _read_file(path: Path) -> bytes:
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as e:
        raise LoadError(str(path), f"cannot read file: {e}") from e


async def fetch_bytes(
    ref: ImageReference,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
) -> bytes:
    """Resolve a reference to its encoded bytes without decoding."""
    if isinstance(ref, bytes):
        return ref
    if isinstance(ref, str):
        scheme = urlparse(ref).scheme.lower()
        if scheme == "data":
            return _decode_data_url(ref)
        if scheme in ("http", "https"):
            return await _fetch_http(ref, timeout, client)
        if len(scheme) > 1 and scheme != "file":
            raise LoadError(ref, f"unsupported scheme '{scheme}'")
    return await _read_file(_local_path(ref))


async def load_image(
    ref: ImageReference,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
) -> RasterImage:
    """Fetch and decode an image reference.

    ``ref`` may be raw bytes, a local path (str or Path), a ``file://`` URL,
    a ``data:`` URL, or an ``http(s)://`` URL. Raises LoadError on any fetch
    or decode failure. Nothing is cached.
    """
    label = describe_ref(ref)
    logger.debug("Loading image %s", label)
    data = await fetch_bytes(ref, timeout=timeout, client=client)
    return await asyncio.to_thread(decode_image, data, label)
