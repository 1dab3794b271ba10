"""LangGraph node callables operating over `DetectionState`."""

from __future__ import annotations

import functools
import logging
from contextlib import ExitStack
from typing import Any, Dict, List, Optional

from langchain_core.runnables import RunnableConfig

from pipeline.acquire import Acquirer
from pipeline.cache import Cache, hash_for_url
from pipeline.coordinates import reconcile as reconcile_coordinates
from pipeline.detection import DetectionClient
from pipeline.errors import CacheConflict, PipelineError, Unclassified
from pipeline.render import Renderer
from pipeline.sizing import SizeGuard
from pipeline.state import DetectionState
from pipeline.taxonomy import Categorizer
from pipeline.types import CacheEntry, CategorizedObject, DetectionSummary, summarize

log = logging.getLogger(__name__)


def absolute_url(path: str, base_url: str) -> str:
    return path if path.startswith("http") else f"{base_url}{path}"


def build_response(
    image_url: str,
    annotated_image_path: str,
    summary: DetectionSummary,
    objects: List[CategorizedObject],
    base_url: str = "",
) -> Dict[str, Any]:
    return {
        "image": {
            "original_url": image_url,
            "annotated_image_url": absolute_url(annotated_image_path, base_url),
        },
        "summary": summary.to_dict(),
        "objects": [o.to_dict() for o in objects],
    }


def entry_response(entry: CacheEntry, base_url: str = "") -> Dict[str, Any]:
    return build_response(
        entry.image_url,
        entry.annotated_image_path,
        DetectionSummary(entry.total_objects, entry.categories),
        entry.objects,
        base_url,
    )


def _resources(config: Optional[RunnableConfig]) -> ExitStack:
    resources = ((config or {}).get("configurable") or {}).get("resources")
    if resources is None:
        raise Unclassified("Pipeline invoked without a resource scope")
    return resources


def guarded(stage: str):
    """Record any failure in the state's `failure` slot instead of raising."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, state, config=None):
            try:
                return fn(self, state, config)
            except PipelineError as e:
                log.error("[%s] %s: %s", stage, e.reason, e.message)
                return {"failure": e}
            except Exception as e:
                log.exception("[%s] unexpected error", stage)
                return {"failure": Unclassified(str(e))}

        return wrapper

    return decorator


class PipelineNodes:
    """The services one detection run needs, exposed as graph nodes."""

    def __init__(
        self,
        acquirer: Acquirer,
        size_guard: SizeGuard,
        client: DetectionClient,
        categorizer: Categorizer,
        renderer: Renderer,
        cache: Optional[Cache] = None,
    ):
        self.acquirer = acquirer
        self.size_guard = size_guard
        self.client = client
        self.categorizer = categorizer
        self.renderer = renderer
        self.cache = cache

    @guarded("CACHE")
    def cache_check(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        if self.cache is None:
            return {"cached": None}
        cached = self.cache.lookup(state["image_url"])
        if cached is not None:
            log.info("[CACHE] hit %s", cached.image_hash[:12])
        return {"cached": cached}

    @guarded("ACQUIRE")
    def acquire(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        source = _resources(config).enter_context(self.acquirer.acquire(state["image_url"]))
        return {"source": source}

    @guarded("SIZE")
    def size_constrain(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        working = _resources(config).enter_context(self.size_guard.constrain(state["source"]))
        return {"working": working}

    @guarded("DETECT")
    def detect(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        detected, width, height = self.client.detect(state["working"])
        return {"detected": detected, "working_width": width, "working_height": height}

    @guarded("CATEGORIZE")
    def categorize(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        objects = [
            CategorizedObject(
                id=f"obj_{index}",
                label=d.label,
                category=self.categorizer.categorize(d.label),
                confidence=d.confidence,
                box=d.box,
            )
            for index, d in enumerate(state.get("detected") or [], start=1)
        ]
        log.info("[CATEGORIZE] %s", summarize(objects).categories)
        return {"objects": objects}

    @guarded("RECONCILE")
    def reconcile(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        source, working = state["source"], state["working"]
        objects = reconcile_coordinates(
            state.get("objects") or [],
            state["working_width"],
            state["working_height"],
            source.width,
            source.height,
            working.scaled,
        )
        return {"objects": objects}

    @guarded("RENDER")
    def render(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        source = state["source"]
        objects = state.get("objects") or []
        annotated = self.renderer.annotate(source, objects)
        return {
            "annotated_image_path": annotated,
            "objects": self.renderer.thumbnails(source, objects),
        }

    @guarded("CACHE")
    def caching(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        url = state["image_url"]
        source = state["source"]
        objects = state.get("objects") or []
        summary = summarize(objects)
        entry = CacheEntry(
            image_hash=hash_for_url(url),
            image_url=url,
            annotated_image_path=state["annotated_image_path"],
            image_width=source.width,
            image_height=source.height,
            total_objects=summary.total_objects,
            categories=summary.categories,
            objects=objects,
        )
        try:
            return {"entry": self.cache.store(entry)}
        except CacheConflict:
            existing = self.cache.lookup(url)
            log.warning("[CACHE] %s stored concurrently, using existing entry", entry.image_hash[:12])
            return {"entry": existing or entry}

    @guarded("RESPOND")
    def respond(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        base_url = state.get("base_url", "")
        entry = state.get("cached") or state.get("entry")
        if entry is not None:
            return {"response": entry_response(entry, base_url)}

        objects = state.get("objects") or []
        return {
            "response": build_response(
                state["image_url"],
                state["annotated_image_path"],
                summarize(objects),
                objects,
                base_url,
            )
        }

    def failed(self, state: DetectionState, config: RunnableConfig = None) -> Dict[str, Any]:
        failure = state.get("failure")
        log.error("Pipeline failed for %s: %s", state.get("image_url"), failure and failure.reason)
        return {}
