from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from conftest import FakeDetector, FakeResponse, image_bytes
from pipeline.config import Settings
from pipeline.errors import UnsupportedFormat
from pipeline.types import BoundingBox, DetectedObject

URL = "https://images.example.com/kitchen.jpg"


@pytest.fixture
def detector():
    return FakeDetector([DetectedObject("Chair", 0.9, BoundingBox(0.1, 0.1, 0.5, 0.5))])


@pytest.fixture
def client(tmp_path, make_pipeline, detector):
    taxonomy = tmp_path / "taxonomy.yaml"
    taxonomy.write_text("furniture:\n  - Chair\n")
    settings = Settings(public_dir=str(tmp_path / "public"), taxonomy_file=str(taxonomy))
    pipeline = make_pipeline(detector, taxonomy_file=str(taxonomy))
    return TestClient(create_app(settings=settings, pipeline=pipeline))


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_object_detection_ok(client, serve):
    serve.add(URL, FakeResponse(image_bytes("JPEG", size=(1000, 800))))

    r = client.post("/api/v1/object_detection", json={"image_url": URL})

    assert r.status_code == 200
    data = r.json()
    assert data["summary"] == {"total_objects": 1, "categories": {"furniture": 1}}
    assert data["objects"][0]["thumbnail_crop"] == {"x": 100, "y": 80, "width": 400, "height": 320}

    annotated = data["image"]["annotated_image_url"]
    assert annotated.startswith("http://testserver/annotated_images/")
    assert client.get(annotated).status_code == 200
    assert client.get(data["objects"][0]["thumbnail_url"]).status_code == 200


def test_repeated_request_is_byte_identical(client, serve, detector):
    serve.add(URL, FakeResponse(image_bytes("JPEG", size=(320, 240))))

    first = client.post("/api/v1/object_detection", json={"image_url": URL})
    second = client.post("/api/v1/object_detection", json={"image_url": URL})

    assert first.content == second.content
    assert len(detector.calls) == 1


def test_empty_url_is_400(client, serve):
    r = client.post("/api/v1/object_detection", json={"image_url": ""})
    assert r.status_code == 400
    assert r.json()["status"] is False
    assert r.json()["code"] == 400


def test_missing_body_field_is_400(client):
    r = client.post("/api/v1/object_detection", json={})
    assert r.status_code == 400
    assert r.json()["code"] == 400


def test_too_large_is_413(client, serve):
    serve.add(URL, FakeResponse(b"", headers={"Content-Length": str(10 * 1024 * 1024 + 1)}))
    r = client.post("/api/v1/object_detection", json={"image_url": URL})
    assert r.status_code == 413
    assert r.json() == {"status": False, "message": r.json()["message"], "code": 413}


def test_detector_failure_is_502(client, serve, detector):
    detector.error = RuntimeError("vision backend unavailable")
    serve.add(URL, FakeResponse(image_bytes()))
    r = client.post("/api/v1/object_detection", json={"image_url": URL})
    assert r.status_code == 502
    assert "vision backend unavailable" in r.json()["message"]


def test_empty_detections_is_200(client, serve, detector):
    detector.objects = []
    serve.add(URL, FakeResponse(image_bytes("PNG", size=(500, 500))))
    r = client.post("/api/v1/object_detection", json={"image_url": URL})
    assert r.status_code == 200
    assert r.json()["summary"] == {"total_objects": 0, "categories": {}}
    assert r.json()["objects"] == []


def test_taxonomy_reload(client, tmp_path):
    (tmp_path / "taxonomy.yaml").write_text("furniture:\n  - Chair\n  - Table\npeople:\n  - Person\n")
    r = client.post("/api/v1/taxonomy/reload")
    assert r.status_code == 200
    assert r.json() == {"status": True, "categories": 2, "labels": 3}


def test_unsupported_format_envelope(client, serve):
    serve.add(URL, FakeResponse(b"<html>not an image</html>"))
    r = client.post("/api/v1/object_detection", json={"image_url": URL})
    assert r.status_code == 400
    assert r.json() == UnsupportedFormat(r.json()["message"]).to_payload()


def test_artifact_dirs_created_on_startup_only(tmp_path, make_pipeline, detector):
    public = tmp_path / "public"
    app = create_app(settings=Settings(public_dir=str(public)), pipeline=make_pipeline(detector))
    assert not public.exists()

    with TestClient(app) as client:
        assert (public / "annotated_images").is_dir()
        assert (public / "thumbnails").is_dir()
        assert client.get("/annotated_images/missing.jpg").status_code == 404
