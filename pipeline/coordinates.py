from __future__ import annotations

import logging
from typing import List

from pipeline.types import BoundingBox, CategorizedObject, PixelRect

log = logging.getLogger(__name__)


def to_pixels(box: BoundingBox, width: int, height: int) -> PixelRect:
    """Normalized box -> integer pixel rect at the given resolution (truncating)."""
    return PixelRect(
        x=int(box.x_min * width),
        y=int(box.y_min * height),
        width=int((box.x_max - box.x_min) * width),
        height=int((box.y_max - box.y_min) * height),
    )


def scale_rect(rect: PixelRect, scale_x: float, scale_y: float) -> PixelRect:
    return PixelRect(
        x=int(rect.x * scale_x),
        y=int(rect.y * scale_y),
        width=int(rect.width * scale_x),
        height=int(rect.height * scale_y),
    )


def reconcile(
    objects: List[CategorizedObject],
    working_w: int,
    working_h: int,
    original_w: int,
    original_h: int,
    scaled: bool,
) -> List[CategorizedObject]:
    """
    Attach original-resolution crops to every boxed object.

    Boxes are first converted at the working resolution (what the detector
    analyzed) and, when the working copy was downsampled, rescaled per axis
    to the original resolution. Objects without a box keep `crop=None`.
    """
    scale_x = original_w / working_w if scaled else 1.0
    scale_y = original_h / working_h if scaled else 1.0
    if scaled:
        log.info("[RECONCILE] scaling crops by %.4f x %.4f", scale_x, scale_y)

    out = []
    for obj in objects:
        if obj.box is None:
            out.append(obj.with_crop(None))
            continue
        rect = to_pixels(obj.box, working_w, working_h)
        if scaled:
            rect = scale_rect(rect, scale_x, scale_y)
        out.append(obj.with_crop(rect))
    return out
