from typing import Any, Dict, List, Optional, TypedDict

from pipeline.acquire import AcquiredImage
from pipeline.errors import PipelineError
from pipeline.sizing import Constrained
from pipeline.types import CacheEntry, CategorizedObject, DetectedObject


class DetectionState(TypedDict, total=False):
    """
    Request-scoped state passed between LangGraph nodes.

    Every key is written by exactly one node; `failure` may be written by
    any of them and routes the run to the terminal `failed` node.
    """

    image_url: str
    base_url: str

    # cache_check / caching
    cached: Optional[CacheEntry]
    entry: Optional[CacheEntry]

    # acquire / size_constrain
    source: AcquiredImage
    working: Constrained

    # detect
    detected: List[DetectedObject]
    working_width: int
    working_height: int

    # categorize -> reconcile -> render
    objects: List[CategorizedObject]
    annotated_image_path: str

    # respond
    response: Dict[str, Any]

    failure: Optional[PipelineError]
