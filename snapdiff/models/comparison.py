"""Comparison policy and result data structures."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Channel = Annotated[int, Field(ge=0, le=255)]


class ErrorType(str, Enum):
    """How changed pixels are painted into the diff image."""

    FLAT = "flat"
    MOVEMENT = "movement"
    FLAT_DIFFERENCE_INTENSITY = "flatDifferenceIntensity"
    MOVEMENT_DIFFERENCE_INTENSITY = "movementDifferenceIntensity"
    DIFF_ONLY = "diffOnly"


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class IgnoreRegion(_CamelModel):
    x: int
    y: int
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    @classmethod
    def parse(cls, text: str) -> "IgnoreRegion":
        """Parse an ``x,y,width,height`` string."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 4:
            raise ValueError(f"Expected x,y,width,height but got '{text}'")
        x, y, width, height = (int(p) for p in parts)
        return cls(x=x, y=y, width=width, height=height)


class ComparisonPolicy(_CamelModel):
    ignore_colors: bool = False
    ignore_antialiasing: bool = False
    ignore_alpha: bool = False
    scale_to_same_size: bool = True
    error_type: ErrorType = ErrorType.FLAT
    error_color: tuple[Channel, Channel, Channel] = (255, 0, 255)
    transparency: float = Field(default=1.0, ge=0.0, le=1.0)
    large_image_threshold: int = Field(default=1200, gt=0)

    @field_validator("error_color", mode="before")
    @classmethod
    def accept_color_mapping(cls, v: Any) -> Any:
        # {"red": 255, "green": 0, "blue": 255} as well as [255, 0, 255]
        if isinstance(v, dict):
            return (v.get("red", v.get("r")), v.get("green", v.get("g")), v.get("blue", v.get("b")))
        return v


class DimensionDifference(_CamelModel):
    width: int
    height: int


class ComparisonResult(_CamelModel):
    diff_percentage: float = Field(ge=0.0, le=100.0)
    diff_image_url: str
    is_same_dimensions: bool = True
    dimension_difference: Optional[DimensionDifference] = None
    analysis_time_ms: float = 0.0
    mismatched_pixels: int = 0
    total_pixels: int = 0
    sampled: bool = False  # large-image sampling path was used

    @property
    def dimension_mismatch(self) -> bool:
        return not self.is_same_dimensions

    def to_payload(self) -> dict[str, Any]:
        """Serialize with the camelCase keys the dashboard expects."""
        return self.model_dump(mode="json", by_alias=True)
