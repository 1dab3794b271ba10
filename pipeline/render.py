from __future__ import annotations

import logging
import os
import shutil
import time
import uuid
from typing import List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from pipeline.acquire import AcquiredImage, open_image, unbounded_pixels
from pipeline.config import THUMBNAIL_MIN
from pipeline.errors import AnnotationFailed
from pipeline.types import CategorizedObject
from utils.draw_results import draw_detections

log = logging.getLogger(__name__)

ANNOTATED_DIR = "annotated_images"
THUMBNAIL_DIR = "thumbnails"

_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "GIF": ".gif", "WEBP": ".webp"}


class ArtifactStore:
    """
    Local filesystem store for rendered artifacts.

    Files live under `root/<kind>/` and are addressed on the web as
    `/<kind>/<name>`, matching a static mount of `root` at `/`.
    """

    def __init__(self, root: str):
        self.root = root

    def allocate(self, kind: str, prefix: str, ext: str) -> Tuple[str, str]:
        """Return (filesystem path, web path) for a new unique file."""
        directory = os.path.join(self.root, kind)
        os.makedirs(directory, exist_ok=True)
        filename = f"{prefix}_{int(time.time())}_{uuid.uuid4().hex[:16]}{ext}"
        return os.path.join(directory, filename), f"/{kind}/{filename}"


def thumbnail_size(width: int, height: int, floor: int = THUMBNAIL_MIN) -> Tuple[int, int]:
    """Uniformly upscale so both sides reach `floor`; larger sizes pass through."""
    if width >= floor and height >= floor:
        return width, height
    scale = max(floor / width, floor / height)
    return max(floor, round(width * scale)), max(floor, round(height * scale))


class Renderer:
    def __init__(self, store: ArtifactStore, thumbnail_min: int = THUMBNAIL_MIN):
        self.store = store
        self.thumbnail_min = thumbnail_min

    def annotate(self, original: AcquiredImage, objects: List[CategorizedObject]) -> str:
        """
        Draw every boxed object onto a full-resolution copy, saved as JPEG.

        With nothing to draw the original bytes are copied unchanged.
        Returns the web path of the written file.
        """
        boxed = [o for o in objects if o.box is not None and o.crop is not None]

        try:
            if not boxed:
                ext = _EXTENSIONS.get(original.format, ".img")
                fs_path, web_path = self.store.allocate(ANNOTATED_DIR, "original", ext)
                shutil.copyfile(original.path, fs_path)
                log.info("[RENDER] nothing to draw, copied original to %s", web_path)
                return web_path

            with open_image(original.path) as img:
                rgb = np.array(img.convert("RGB"))
            annotated = draw_detections(cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR), boxed)

            fs_path, web_path = self.store.allocate(ANNOTATED_DIR, "annotated", ".jpg")
            if not cv2.imwrite(fs_path, annotated):
                raise AnnotationFailed(f"Failed to write annotated image {fs_path}")
        except AnnotationFailed:
            raise
        except Exception as e:
            raise AnnotationFailed(f"Failed to annotate image: {e}")

        log.info("[RENDER] annotated %d objects -> %s", len(boxed), web_path)
        return web_path

    def thumbnail(self, original: AcquiredImage, obj: CategorizedObject) -> Optional[str]:
        if obj.crop is None or not obj.crop.has_area:
            return None
        try:
            img = open_image(original.path)
        except Exception as e:
            log.warning("[RENDER] cannot open %s for thumbnail: %s", original.path, e)
            return None
        with img:
            return self._thumbnail(img, obj)

    def thumbnails(
        self, original: AcquiredImage, objects: List[CategorizedObject]
    ) -> List[CategorizedObject]:
        """Attach a thumbnail URL to each object; a failing object just gets None."""
        try:
            img = open_image(original.path)
            img.load()
        except Exception as e:
            log.warning("[RENDER] cannot open %s for thumbnails: %s", original.path, e)
            return [o.with_thumbnail(None) for o in objects]

        with img:
            return [o.with_thumbnail(self._thumbnail(img, o)) for o in objects]

    def _thumbnail(self, img: Image.Image, obj: CategorizedObject) -> Optional[str]:
        crop = obj.crop
        if crop is None or not crop.has_area:
            return None

        try:
            left, top = max(0, crop.x), max(0, crop.y)
            right = min(img.width, crop.x + crop.width)
            bottom = min(img.height, crop.y + crop.height)
            if right <= left or bottom <= top:
                return None

            with unbounded_pixels():
                piece = img.crop((left, top, right, bottom)).convert("RGB")
            size = thumbnail_size(piece.width, piece.height, self.thumbnail_min)
            if size != piece.size:
                piece = piece.resize(size, Image.LANCZOS)

            fs_path, web_path = self.store.allocate(THUMBNAIL_DIR, obj.id, ".jpg")
            piece.save(fs_path, format="JPEG", quality=90)
            return web_path
        except Exception as e:
            log.warning("[RENDER] thumbnail for %s failed: %s", obj.id, e)
            return None
