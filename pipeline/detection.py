from __future__ import annotations

import abc
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from pipeline.config import MAX_OBJECTS
from pipeline.errors import DetectionFailed
from pipeline.sizing import Constrained
from pipeline.types import BoundingBox, DetectedObject

log = logging.getLogger(__name__)

# Used when the taxonomy is empty and offers no vocabulary to prompt with.
FALLBACK_VOCABULARY = ("person", "chair", "table", "car", "laptop", "bottle", "dog", "cat")


def _clamp(v: float) -> float:
    return min(1.0, max(0.0, float(v)))


def polygon_to_box(vertices: Optional[Sequence[Sequence[float]]]) -> Optional[BoundingBox]:
    """
    Reduce a normalized polygon to its axis-aligned bounding box.

    x and y extremes are taken independently, so vertex order does not
    matter. Returns None when there is no polygon at all, which is distinct
    from a zero-area box.
    """
    if not vertices:
        return None
    xs = [v[0] for v in vertices if v[0] is not None]
    ys = [v[1] for v in vertices if v[1] is not None]
    if not xs or not ys:
        return None
    return BoundingBox(
        x_min=_clamp(min(xs)),
        y_min=_clamp(min(ys)),
        x_max=_clamp(max(xs)),
        y_max=_clamp(max(ys)),
    )


class Detector(abc.ABC):
    """Object-localization capability."""

    @abc.abstractmethod
    def detect(self, image_path: str, max_objects: int) -> List[DetectedObject]:
        """Return at most `max_objects` detections for the image at `image_path`."""


class GroundingDinoDetector(Detector):
    """
    Local open-vocabulary localizer.

    Grounding DINO needs a text prompt, so the detector is prompted with the
    taxonomy's label vocabulary.
    """

    def __init__(
        self,
        vocabulary: Callable[[], Iterable[str]],
        box_threshold: float = 0.35,
        text_threshold: float = 0.25,
        config_path: str = "",
        weights_path: str = "",
    ):
        self.vocabulary = vocabulary
        self.box_threshold = box_threshold
        self.text_threshold = text_threshold
        self.config_path = config_path
        self.weights_path = weights_path

    def prompt(self) -> str:
        labels = sorted({label.strip().lower() for label in self.vocabulary() if label.strip()})
        return " . ".join(labels or FALLBACK_VOCABULARY)

    def detect(self, image_path: str, max_objects: int) -> List[DetectedObject]:
        from pipeline.tools import run_grounding_dino

        result = run_grounding_dino.invoke(
            {
                "image_path": image_path,
                "prompt": self.prompt(),
                "box_thresh": self.box_threshold,
                "text_thresh": self.text_threshold,
                "config_path": self.config_path,
                "weights_path": self.weights_path,
            }
        )
        raw = sorted(result["objects"], key=lambda o: o["score"], reverse=True)
        return [
            DetectedObject(
                label=o["name"],
                confidence=_clamp(o["score"]),
                box=polygon_to_box(o.get("vertices")),
            )
            for o in raw[:max_objects]
        ]


class DetectionClient:
    """Single-shot wrapper around a `Detector`: no retries, no partial results."""

    def __init__(self, detector: Detector, max_objects: int = MAX_OBJECTS):
        self.detector = detector
        self.max_objects = max_objects

    def detect(self, working: Constrained) -> Tuple[List[DetectedObject], int, int]:
        try:
            objects = self.detector.detect(working.path, self.max_objects)
        except DetectionFailed:
            raise
        except Exception as e:
            raise DetectionFailed(f"Object detection failed: {e}")

        objects = list(objects)[: self.max_objects]
        log.info("[DETECT] %d objects: %s", len(objects), [o.label for o in objects])
        return objects, working.width, working.height
