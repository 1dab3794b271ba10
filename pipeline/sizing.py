from __future__ import annotations

import logging
import math
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Tuple

from PIL import Image

from pipeline.acquire import AcquiredImage, open_image
from pipeline.config import PIXEL_BUDGET

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Constrained:
    """The image the detector will actually see."""

    path: str
    width: int
    height: int
    scaled: bool


def scaled_size(width: int, height: int, budget: int = PIXEL_BUDGET) -> Tuple[int, int]:
    """
    Uniformly shrink (width, height) so the pixel count fits `budget`.

    Sizes already within budget are returned unchanged.
    """
    pixels = width * height
    if pixels <= budget:
        return width, height

    scale = math.sqrt(budget / pixels)
    new_w = max(1, int(width * scale))
    new_h = max(1, int(height * scale))
    # float error in sqrt can leave the floored product one row over
    while new_w * new_h > budget:
        if new_w >= new_h:
            new_w -= 1
        else:
            new_h -= 1
    return new_w, new_h


class SizeGuard:
    def __init__(self, budget: int = PIXEL_BUDGET):
        self.budget = budget

    @contextmanager
    def constrain(self, image: AcquiredImage) -> Iterator[Constrained]:
        """
        Yield a working copy within the pixel budget.

        The original file is never modified. A resized copy lives in its own
        temp file, removed when the context exits. If resizing fails the
        original is used as-is with `scaled=False`.
        """
        if image.pixels <= self.budget:
            yield Constrained(image.path, image.width, image.height, scaled=False)
            return

        new_w, new_h = scaled_size(image.width, image.height, self.budget)
        log.info(
            "[SIZE] %dx%d exceeds %d px, resizing to %dx%d",
            image.width, image.height, self.budget, new_w, new_h,
        )

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(delete=False, suffix=".jpg") as tmp:
                tmp_path = tmp.name
            with open_image(image.path) as img:
                # JPEG decodes at a reduced scale; other formats shrink
                # before the colour conversion so the full-size RGB copy
                # never exists
                img.draft("RGB", (new_w, new_h))
                working_img = img.resize((new_w, new_h), Image.LANCZOS, reducing_gap=3.0)
                working_img.convert("RGB").save(tmp_path, format="JPEG", quality=90)
            working = Constrained(tmp_path, new_w, new_h, scaled=True)
        except Exception as e:
            log.warning("[SIZE] resize failed, using original: %s", e)
            working = Constrained(image.path, image.width, image.height, scaled=False)

        try:
            yield working
        finally:
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    log.warning("Failed to remove temp file %s", tmp_path)
