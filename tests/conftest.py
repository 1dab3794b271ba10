from __future__ import annotations

import io

import pytest
from PIL import Image

from pipeline.acquire import Acquirer
from pipeline.cache import MemoryCache
from pipeline.detection import DetectionClient, Detector
from pipeline.graph import DetectionPipeline
from pipeline.nodes import PipelineNodes
from pipeline.render import ArtifactStore, Renderer
from pipeline.sizing import SizeGuard
from pipeline.taxonomy import Categorizer, Taxonomy

TAXONOMY = {
    "furniture": ["Chair", "Table"],
    "people": ["Person"],
    "vehicle": ["Car"],
}


def image_bytes(fmt="PNG", size=(500, 500), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def bilevel_png(size) -> bytes:
    """A 1-bit PNG: huge in pixels, tiny in bytes."""
    img = Image.new("1", size, 1)
    img.paste(0, (size[0] // 4, size[1] // 4, size[0] // 2, size[1] // 2))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def noisy_bytes(fmt, size=(120, 90)) -> bytes:
    """An image that does not compress away, so truncating it loses pixel data."""
    buf = io.BytesIO()
    Image.effect_noise(size, 64).convert("RGB").save(buf, format=fmt)
    return buf.getvalue()


class FakeResponse:
    """Just enough of `requests.Response` for the acquirer."""

    def __init__(self, body: bytes = b"", status_code: int = 200, headers=None):
        self.body = body
        self.status_code = status_code
        self.headers = headers if headers is not None else {"Content-Length": str(len(body))}
        self.read_bytes = 0

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            chunk = self.body[i:i + chunk_size]
            self.read_bytes += len(chunk)
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeDetector(Detector):
    def __init__(self, objects=None, error=None):
        self.objects = list(objects or [])
        self.error = error
        self.calls = []

    def detect(self, image_path, max_objects):
        with Image.open(image_path) as img:
            self.calls.append({"path": image_path, "size": img.size, "max_objects": max_objects})
        if self.error:
            raise self.error
        return list(self.objects)


class FakeServer:
    def __init__(self):
        self.routes = {}
        self.requested = []

    def add(self, url, response):
        self.routes[url] = response
        return response

    def get(self, url, **kwargs):
        self.requested.append(url)
        return self.routes.get(url) or FakeResponse(b"not found", status_code=404)


@pytest.fixture
def serve(monkeypatch):
    """Route `requests.get` in the acquirer to canned responses by URL."""
    server = FakeServer()
    monkeypatch.setattr("pipeline.acquire.requests.get", server.get)
    return server


@pytest.fixture
def make_pipeline(tmp_path):
    def factory(
        detector,
        cache="memory",
        budget=75_000_000,
        enable_caching=True,
        taxonomy=TAXONOMY,
        taxonomy_file=None,
    ):
        if taxonomy_file:
            categorizer = Categorizer.from_file(taxonomy_file)
        else:
            categorizer = Categorizer(Taxonomy.from_mapping(taxonomy))
        if cache == "memory":
            cache = MemoryCache()
        nodes = PipelineNodes(
            acquirer=Acquirer(),
            size_guard=SizeGuard(budget),
            client=DetectionClient(detector),
            categorizer=categorizer,
            renderer=Renderer(ArtifactStore(str(tmp_path / "public"))),
            cache=cache,
        )
        return DetectionPipeline(nodes, enable_caching=enable_caching)

    return factory
