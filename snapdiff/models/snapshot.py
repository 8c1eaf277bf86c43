"""Snapshot review data structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SnapshotStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"
    NEW = "new"
    FAILED = "failed"


class Snapshot(BaseModel):
    id: str
    test_id: str
    project_id: str
    name: str
    status: SnapshotStatus = SnapshotStatus.NEW
    baseline_url: Optional[str] = None
    current_url: str
    diff_url: Optional[str] = None
    diff_percentage: Optional[float] = None
    created_at: str  # ISO timestamp
    updated_at: str
    browser: str = ""
    viewport: str = ""  # e.g. "1920x1080"


class SnapshotRegistry(BaseModel):
    last_updated: str = ""
    snapshots: dict[str, Snapshot] = Field(default_factory=dict)
