from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class DetectRequest(BaseModel):
    image_url: str = Field(..., description="URL of the image to analyze")


class ImageInfo(BaseModel):
    original_url: str
    annotated_image_url: str


class Summary(BaseModel):
    total_objects: int
    categories: Dict[str, int]


class BoundingBox(BaseModel):
    x_min: float
    y_min: float
    x_max: float
    y_max: float


class ThumbnailCrop(BaseModel):
    x: int
    y: int
    width: int
    height: int


class DetectedObject(BaseModel):
    id: str
    label: str
    category: str
    confidence: float
    bounding_box: Union[BoundingBox, Dict[str, float]]
    thumbnail_crop: Union[ThumbnailCrop, Dict[str, int]]
    thumbnail_url: Optional[str] = None


class DetectResponse(BaseModel):
    image: ImageInfo
    summary: Summary
    objects: List[DetectedObject]


class ErrorResponse(BaseModel):
    status: bool = False
    message: str
    code: int


class TaxonomyReloadResponse(BaseModel):
    status: bool = True
    categories: int
    labels: int
