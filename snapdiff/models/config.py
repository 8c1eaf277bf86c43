"""Configuration models for snapdiff."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from snapdiff.models.comparison import Channel, ComparisonPolicy, IgnoreRegion


class DiffConfig(BaseModel):
    # Comparison policy used by the dashboard: structural (luminance) comparison
    policy: ComparisonPolicy = Field(default_factory=lambda: ComparisonPolicy(ignore_colors=True))
    ignore_regions: list[IgnoreRegion] = Field(default_factory=list)
    mask_fill_color: tuple[Channel, Channel, Channel] = (128, 128, 128)

    # Review thresholds
    significance_threshold: float = Field(default=5.0, ge=0.0, le=100.0)

    # Loading
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    max_parallel_comparisons: int = Field(default=4, ge=1)

    # Output
    diff_output_dir: Optional[str] = None  # None -> embed diffs as data URLs
    store_path: str = ".snapdiff/snapshots.json"

    @classmethod
    def load(cls, path: str | Path) -> "DiffConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
