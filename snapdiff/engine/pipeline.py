"""Comparison pipeline — load, mask, compare and encode in one call."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from pathlib import Path

import httpx

from snapdiff.engine.comparator import PixelDiff, compare_pixels
from snapdiff.engine.encoder import encode
from snapdiff.engine.errors import EncodeError
from snapdiff.engine.loader import DEFAULT_TIMEOUT_SECONDS, ImageReference, describe_ref, load_image
from snapdiff.engine.masker import DEFAULT_FILL_COLOR, mask_regions
from snapdiff.models.comparison import ComparisonPolicy, ComparisonResult, IgnoreRegion
from snapdiff.models.image import RasterImage

logger = logging.getLogger(__name__)


def _masked_diff(
    a: RasterImage,
    b: RasterImage,
    policy: ComparisonPolicy,
    regions: Sequence[IgnoreRegion],
    fill_color: tuple[int, int, int],
) -> PixelDiff:
    a = mask_regions(a, regions, fill_color)
    b = mask_regions(b, regions, fill_color)
    return compare_pixels(a, b, policy)


def _build_result(diff: PixelDiff, diff_image_url: str, elapsed_ms: float) -> ComparisonResult:
    return ComparisonResult(
        diff_percentage=diff.diff_percentage,
        diff_image_url=diff_image_url,
        is_same_dimensions=diff.is_same_dimensions,
        dimension_difference=diff.dimension_difference,
        analysis_time_ms=round(elapsed_ms, 3),
        mismatched_pixels=diff.mismatched_pixels,
        total_pixels=diff.total_pixels,
        sampled=diff.sampled,
    )


def compare(
    a: RasterImage,
    b: RasterImage,
    policy: ComparisonPolicy | None = None,
    regions: Sequence[IgnoreRegion] | None = None,
    *,
    fill_color: tuple[int, int, int] = DEFAULT_FILL_COLOR,
    output_path: str | Path | None = None,
) -> ComparisonResult:
    """Compare two decoded rasters and return the full result record.

    Both rasters are masked with the same regions first. The caller's
    rasters are left untouched.
    """
    started = time.perf_counter()
    diff = _masked_diff(a, b, policy or ComparisonPolicy(), list(regions or []), fill_color)
    diff_image_url = encode(diff.diff_image, output_path)
    return _build_result(diff, diff_image_url, (time.perf_counter() - started) * 1000)


async def compare_images(
    baseline_ref: ImageReference,
    current_ref: ImageReference,
    regions: Sequence[IgnoreRegion] | None = None,
    policy: ComparisonPolicy | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
    fill_color: tuple[int, int, int] = DEFAULT_FILL_COLOR,
    output_path: str | Path | None = None,
) -> ComparisonResult:
    """Load two image references and compare them.

    Both images are fetched concurrently; the pixel work runs in a worker
    thread so the event loop stays responsive. Cancelling the awaiting task
    abandons the comparison.
    """
    started = time.perf_counter()
    baseline, current = await asyncio.gather(
        load_image(baseline_ref, timeout=timeout, client=client),
        load_image(current_ref, timeout=timeout, client=client),
    )
    result = await asyncio.to_thread(
        compare,
        baseline,
        current,
        policy,
        regions,
        fill_color=fill_color,
        output_path=output_path,
    )
    total_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "Compared %s vs %s: %.2f%% mismatch (%.0fms)",
        describe_ref(baseline_ref), describe_ref(current_ref),
        result.diff_percentage, total_ms,
    )
    return result


def _encode_all(
    diffs: Sequence[tuple[PixelDiff, float]], output_dir: str | Path | None
) -> list[ComparisonResult]:
    results = []
    written: list[Path] = []
    try:
        for index, (diff, elapsed_ms) in enumerate(diffs):
            started = time.perf_counter()
            output_path = Path(output_dir) / f"diff_{index}.png" if output_dir is not None else None
            diff_image_url = encode(diff.diff_image, output_path)
            if output_path is not None:
                written.append(output_path)
            elapsed_ms += (time.perf_counter() - started) * 1000
            results.append(_build_result(diff, diff_image_url, elapsed_ms))
    except EncodeError:
        for path in written:
            path.unlink(missing_ok=True)
        raise
    return results


async def compare_many(
    pairs: Sequence[tuple[ImageReference, ImageReference]],
    policy: ComparisonPolicy | None = None,
    regions: Sequence[IgnoreRegion] | None = None,
    *,
    max_parallel: int = 4,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    fill_color: tuple[int, int, int] = DEFAULT_FILL_COLOR,
    output_dir: str | Path | None = None,
) -> list[ComparisonResult]:
    """Run several comparisons concurrently, bounded by ``max_parallel``.

    Results come back in input order. The first failure cancels the
    remaining comparisons and is raised. Diff rasters stay in memory until
    every comparison has succeeded, so a failed call writes nothing to
    ``output_dir``.
    """
    policy = policy or ComparisonPolicy()
    regions = list(regions or [])
    semaphore = asyncio.Semaphore(max_parallel)

    async with httpx.AsyncClient(follow_redirects=True) as client:

        async def _diff_one(index: int, baseline_ref: ImageReference, current_ref: ImageReference) -> tuple[PixelDiff, float]:
            async with semaphore:
                logger.debug("Running comparison [%d/%d]", index + 1, len(pairs))
                baseline, current = await asyncio.gather(
                    load_image(baseline_ref, timeout=timeout, client=client),
                    load_image(current_ref, timeout=timeout, client=client),
                )
                started = time.perf_counter()
                diff = await asyncio.to_thread(_masked_diff, baseline, current, policy, regions, fill_color)
                return diff, (time.perf_counter() - started) * 1000

        tasks = [
            asyncio.create_task(_diff_one(i, baseline, current))
            for i, (baseline, current) in enumerate(pairs)
        ]
        try:
            diffs = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    results = await asyncio.to_thread(_encode_all, diffs, output_dir)
    logger.info("Compared %d image pairs", len(results))
    return results
