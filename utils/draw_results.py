from __future__ import annotations

from typing import Dict, List, Tuple

import cv2
import numpy as np

from pipeline.taxonomy import DEFAULT_CATEGORY
from pipeline.types import CategorizedObject

# RGB, keyed by taxonomy category
CATEGORY_COLORS: Dict[str, Tuple[int, int, int]] = {
    "furniture": (255, 0, 0),
    "people": (0, 255, 0),
    "vehicle": (0, 0, 255),
    "electronics": (255, 165, 0),
    "appliance": (128, 0, 128),
    DEFAULT_CATEGORY: (128, 128, 128),
}

STROKE = 3
LABEL_MARGIN = 3
FONT_SCALE = 0.5


def category_color(category: str) -> Tuple[int, int, int]:
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS[DEFAULT_CATEGORY])


def label_text(obj: CategorizedObject) -> str:
    return f"{obj.label} ({int(obj.confidence * 100)}%)"


def draw_detections(
    image_bgr: np.ndarray,
    objects: List[CategorizedObject],
) -> np.ndarray:
    """
    Draw category-coloured boxes and labels on a copy of the image.

    Args:
        image_bgr: Input image in BGR format (as used by OpenCV).
        objects: Categorized objects whose `crop` is in this image's pixels.
            Objects without a crop are skipped.

    Returns:
        A copy of the image with visualizations applied.
    """
    out = image_bgr.copy()

    for obj in objects:
        if obj.crop is None:
            continue
        r, g, b = category_color(obj.category)
        color = (b, g, r)
        x1, y1 = obj.crop.x, obj.crop.y
        x2, y2 = x1 + obj.crop.width, y1 + obj.crop.height

        cv2.rectangle(out, (x1, y1), (x2, y2), color, STROKE)

        # Text anchored inside the top-left corner; putText takes the baseline.
        text = label_text(obj)
        (_, text_h), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, FONT_SCALE, 2)
        origin = (x1 + LABEL_MARGIN, y1 + LABEL_MARGIN + text_h)
        cv2.putText(
            out,
            text,
            origin,
            cv2.FONT_HERSHEY_SIMPLEX,
            FONT_SCALE,
            (255, 255, 255),
            3,
            cv2.LINE_AA,
        )
        cv2.putText(
            out,
            text,
            origin,
            cv2.FONT_HERSHEY_SIMPLEX,
            FONT_SCALE,
            color,
            1,
            cv2.LINE_AA,
        )

    return out
