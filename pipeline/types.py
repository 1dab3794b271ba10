from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class BoundingBox:
    """Normalized box, every coordinate in [0, 1]."""

    x_min: float
    y_min: float
    x_max: float
    y_max: float

    def __post_init__(self):
        if self.x_min > self.x_max or self.y_min > self.y_max:
            raise ValueError(f"inverted bounding box: {self}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "x_min": self.x_min,
            "y_min": self.y_min,
            "x_max": self.x_max,
            "y_max": self.y_max,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["BoundingBox"]:
        if not data:
            return None
        return cls(data["x_min"], data["y_min"], data["x_max"], data["y_max"])


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"negative pixel rect: {self}")

    @property
    def has_area(self) -> bool:
        return self.width > 0 and self.height > 0

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["PixelRect"]:
        if not data:
            return None
        return cls(data["x"], data["y"], data["width"], data["height"])


@dataclass(frozen=True)
class DetectedObject:
    label: str
    confidence: float
    box: Optional[BoundingBox] = None


@dataclass(frozen=True)
class CategorizedObject:
    """
    A detection after categorization.

    `box` is None when the detector returned no polygon; `crop` is None in
    exactly the same case and is expressed in original-image pixels once
    reconciled.
    """

    id: str
    label: str
    category: str
    confidence: float
    box: Optional[BoundingBox] = None
    crop: Optional[PixelRect] = None
    thumbnail_url: Optional[str] = None

    def with_crop(self, crop: Optional[PixelRect]) -> "CategorizedObject":
        return replace(self, crop=crop)

    def with_thumbnail(self, url: Optional[str]) -> "CategorizedObject":
        return replace(self, thumbnail_url=url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category,
            "confidence": self.confidence,
            "bounding_box": self.box.to_dict() if self.box else {},
            "thumbnail_crop": self.crop.to_dict() if self.crop else {},
            "thumbnail_url": self.thumbnail_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategorizedObject":
        return cls(
            id=data["id"],
            label=data["label"],
            category=data["category"],
            confidence=data["confidence"],
            box=BoundingBox.from_dict(data.get("bounding_box") or {}),
            crop=PixelRect.from_dict(data.get("thumbnail_crop") or {}),
            thumbnail_url=data.get("thumbnail_url"),
        )


@dataclass(frozen=True)
class DetectionSummary:
    total_objects: int
    categories: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {"total_objects": self.total_objects, "categories": dict(self.categories)}


@dataclass(frozen=True)
class CacheEntry:
    image_hash: str
    image_url: str
    annotated_image_path: str
    image_width: int
    image_height: int
    total_objects: int
    categories: Dict[str, int]
    objects: List[CategorizedObject] = field(default_factory=list)
    created_at: Optional[str] = None


def summarize(objects: List[CategorizedObject]) -> DetectionSummary:
    categories: Dict[str, int] = {}
    for obj in objects:
        categories[obj.category] = categories.get(obj.category, 0) + 1
    return DetectionSummary(total_objects=len(objects), categories=categories)
