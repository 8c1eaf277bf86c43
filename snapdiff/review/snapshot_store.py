"""Snapshot store — persists snapshots and their review status as JSON."""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path

from snapdiff.engine.pipeline import compare_images
from snapdiff.engine.significance import is_significant
from snapdiff.models.comparison import ComparisonResult
from snapdiff.models.config import DiffConfig
from snapdiff.models.snapshot import Snapshot, SnapshotRegistry, SnapshotStatus

logger = logging.getLogger(__name__)


class SnapshotNotFoundError(KeyError):
    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")

    def __str__(self) -> str:
        return self.args[0]


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class SnapshotStore:
    """Owns the snapshot registry file and the review status transitions."""

    def __init__(self, registry_path: Path):
        self.registry_path = Path(registry_path)

    def load(self) -> SnapshotRegistry:
        """Load registry from disk, or create a new one."""
        if self.registry_path.exists():
            try:
                with open(self.registry_path) as f:
                    data = json.load(f)
                return SnapshotRegistry(**data)
            except Exception as e:
                logger.warning("Failed to load snapshot registry: %s. Creating new.", e)
        return SnapshotRegistry()

    def save(self, registry: SnapshotRegistry) -> None:
        """Persist registry to disk."""
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        registry.last_updated = _now()
        with open(self.registry_path, "w") as f:
            json.dump(registry.model_dump(mode="json"), f, indent=2)
        logger.debug("Saved snapshot registry to %s", self.registry_path)

    def add_snapshot(
        self,
        registry: SnapshotRegistry,
        *,
        test_id: str,
        project_id: str,
        name: str,
        current_url: str,
        baseline_url: str | None = None,
        browser: str = "",
        viewport: str = "",
    ) -> Snapshot:
        """Register a newly captured screenshot."""
        now = _now()
        snapshot = Snapshot(
            id=f"snap-{uuid.uuid4().hex[:8]}",
            test_id=test_id,
            project_id=project_id,
            name=name,
            status=SnapshotStatus.PENDING if baseline_url else SnapshotStatus.NEW,
            baseline_url=baseline_url,
            current_url=current_url,
            created_at=now,
            updated_at=now,
            browser=browser,
            viewport=viewport,
        )
        registry.snapshots[snapshot.id] = snapshot
        logger.info("Added snapshot %s (%s)", snapshot.id, name)
        return snapshot

    def get(self, registry: SnapshotRegistry, snapshot_id: str) -> Snapshot:
        snapshot = registry.snapshots.get(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return snapshot

    def list_snapshots(self, registry: SnapshotRegistry, test_id: str | None = None) -> list[Snapshot]:
        snapshots = registry.snapshots.values()
        if test_id is not None:
            return [s for s in snapshots if s.test_id == test_id]
        return list(snapshots)

    def _set_status(self, registry: SnapshotRegistry, snapshot_id: str, status: SnapshotStatus) -> Snapshot:
        snapshot = self.get(registry, snapshot_id)
        snapshot.status = status
        snapshot.updated_at = _now()
        logger.info("Snapshot %s %s", snapshot_id, status.value)
        return snapshot

    def approve(self, registry: SnapshotRegistry, snapshot_id: str) -> Snapshot:
        return self._set_status(registry, snapshot_id, SnapshotStatus.APPROVED)

    def reject(self, registry: SnapshotRegistry, snapshot_id: str) -> Snapshot:
        return self._set_status(registry, snapshot_id, SnapshotStatus.REJECTED)

    def set_as_baseline(self, registry: SnapshotRegistry, snapshot_id: str) -> Snapshot:
        """Promote the current image to baseline and approve it."""
        snapshot = self.get(registry, snapshot_id)
        snapshot.baseline_url = snapshot.current_url
        snapshot.diff_url = None
        snapshot.diff_percentage = 0.0
        snapshot.status = SnapshotStatus.APPROVED
        snapshot.updated_at = _now()
        logger.info("Snapshot %s set as baseline", snapshot_id)
        return snapshot

    async def compare_snapshot(
        self, registry: SnapshotRegistry, snapshot_id: str, config: DiffConfig
    ) -> ComparisonResult | None:
        """Diff a snapshot against its baseline and record the outcome.

        Returns None for snapshots without a baseline; they stay ``new``.
        Comparison errors propagate and leave the snapshot unchanged.
        """
        snapshot = self.get(registry, snapshot_id)
        if not snapshot.baseline_url:
            logger.info("Snapshot %s has no baseline, nothing to compare", snapshot_id)
            return None

        output_path = None
        if config.diff_output_dir:
            output_path = Path(config.diff_output_dir) / f"{snapshot_id}.png"

        result = await compare_images(
            snapshot.baseline_url,
            snapshot.current_url,
            config.ignore_regions,
            config.policy,
            timeout=config.fetch_timeout_seconds,
            fill_color=config.mask_fill_color,
            output_path=output_path,
        )

        snapshot.diff_url = result.diff_image_url
        snapshot.diff_percentage = result.diff_percentage
        if is_significant(result.diff_percentage, config.significance_threshold):
            snapshot.status = SnapshotStatus.FAILED
        else:
            snapshot.status = SnapshotStatus.PENDING
        snapshot.updated_at = _now()
        logger.info(
            "Snapshot %s compared: %.2f%% (%s)",
            snapshot_id, result.diff_percentage, snapshot.status.value,
        )
        return result
