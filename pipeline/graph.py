from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Any, Dict, Optional

from langgraph.graph import END, StateGraph

from pipeline.acquire import Acquirer
from pipeline.cache import Cache, SqliteCache, hash_for_url
from pipeline.config import Settings
from pipeline.detection import DetectionClient, Detector, GroundingDinoDetector
from pipeline.errors import Unclassified
from pipeline.flight import SingleFlight
from pipeline.nodes import PipelineNodes
from pipeline.render import ArtifactStore, Renderer
from pipeline.sizing import SizeGuard
from pipeline.state import DetectionState
from pipeline.taxonomy import Categorizer

log = logging.getLogger(__name__)

STAGES = (
    "acquire",
    "size_constrain",
    "detect",
    "categorize",
    "reconcile",
    "render",
)


def _route_to(next_node: str):
    """Router: a recorded failure always wins over the happy path."""

    def route(state: DetectionState) -> str:
        return "failed" if state.get("failure") else next_node

    return route


def should_skip_to_response(state: DetectionState) -> str:
    """Router: a cache hit goes straight to the response."""
    if state.get("failure"):
        return "failed"
    return "respond" if state.get("cached") else "acquire"


def build_graph(nodes: PipelineNodes, enable_caching: bool = True):
    workflow = StateGraph(DetectionState)

    workflow.add_node("cache_check", nodes.cache_check)
    workflow.add_node("acquire", nodes.acquire)
    workflow.add_node("size_constrain", nodes.size_constrain)
    workflow.add_node("detect", nodes.detect)
    workflow.add_node("categorize", nodes.categorize)
    workflow.add_node("reconcile", nodes.reconcile)
    workflow.add_node("render", nodes.render)
    workflow.add_node("caching", nodes.caching)
    workflow.add_node("respond", nodes.respond)
    workflow.add_node("failed", nodes.failed)

    workflow.set_entry_point("cache_check")

    workflow.add_conditional_edges(
        "cache_check",
        should_skip_to_response,
        {"respond": "respond", "acquire": "acquire", "failed": "failed"},
    )

    # acquire -> size_constrain -> ... -> render, bailing out on failure
    for stage, next_stage in zip(STAGES, STAGES[1:]):
        workflow.add_conditional_edges(
            stage,
            _route_to(next_stage),
            {next_stage: next_stage, "failed": "failed"},
        )

    after_render = "caching" if enable_caching else "respond"
    workflow.add_conditional_edges(
        "render",
        _route_to(after_render),
        {after_render: after_render, "failed": "failed"},
    )
    workflow.add_conditional_edges(
        "caching",
        _route_to("respond"),
        {"respond": "respond", "failed": "failed"},
    )

    workflow.add_edge("respond", END)
    workflow.add_edge("failed", END)

    return workflow.compile()


class DetectionPipeline:
    """
    Runs one image URL through the detection graph.

    Temp files opened by the acquire and size nodes are entered into an
    `ExitStack` owned by `run`, so they are released exactly once on every
    exit path. Identical URLs are serialized per process; a store that still
    loses a race is recovered by re-reading the winner's entry.
    """

    def __init__(self, nodes: PipelineNodes, enable_caching: bool = True):
        self.nodes = nodes
        self.enable_caching = enable_caching and nodes.cache is not None
        if not self.enable_caching:
            nodes.cache = None
        self.graph = build_graph(nodes, self.enable_caching)
        self._flights = SingleFlight()

    @property
    def categorizer(self) -> Categorizer:
        return self.nodes.categorizer

    def run(self, image_url: str, base_url: str = "") -> Dict[str, Any]:
        """Return the response payload or raise the run's `PipelineError`."""
        if not self.enable_caching:
            return self._invoke(image_url, base_url)
        with self._flights.hold(hash_for_url(image_url or "")):
            return self._invoke(image_url, base_url)

    def _invoke(self, image_url: str, base_url: str) -> Dict[str, Any]:
        with ExitStack() as resources:
            result = self.graph.invoke(
                {"image_url": image_url or "", "base_url": base_url, "failure": None},
                config={"configurable": {"resources": resources}},
            )

        failure = result.get("failure")
        if failure is not None:
            raise failure
        response = result.get("response")
        if response is None:
            raise Unclassified("Pipeline finished without a response")
        return response


def build_pipeline(
    settings: Settings,
    detector: Optional[Detector] = None,
    cache: Optional[Cache] = None,
) -> DetectionPipeline:
    """Wire the services from settings; `detector`/`cache` override the defaults."""
    categorizer = Categorizer.from_file(settings.taxonomy_file)

    if detector is None:
        detector = GroundingDinoDetector(
            vocabulary=categorizer.labels,
            box_threshold=settings.box_threshold,
            text_threshold=settings.text_threshold,
            config_path=settings.gdino_config,
            weights_path=settings.gdino_weights,
        )
    if cache is None and settings.enable_caching:
        cache = SqliteCache(settings.cache_db)

    nodes = PipelineNodes(
        acquirer=Acquirer(settings.max_image_bytes, settings.fetch_timeout),
        size_guard=SizeGuard(settings.pixel_budget),
        client=DetectionClient(detector, settings.max_objects),
        categorizer=categorizer,
        renderer=Renderer(ArtifactStore(settings.public_dir), settings.thumbnail_min),
        cache=cache,
    )
    log.info(
        "Pipeline ready: caching=%s, taxonomy=%d labels",
        settings.enable_caching, len(categorizer.taxonomy),
    )
    return DetectionPipeline(nodes, enable_caching=settings.enable_caching)
