from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from api.schemas import DetectRequest, DetectResponse, ErrorResponse, TaxonomyReloadResponse
from pipeline.config import Settings
from pipeline.errors import PipelineError
from pipeline.graph import DetectionPipeline, build_pipeline
from pipeline.render import ANNOTATED_DIR, THUMBNAIL_DIR

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid image URL or format"},
    413: {"model": ErrorResponse, "description": "Image too large"},
    502: {"model": ErrorResponse, "description": "Object detector error"},
}


def _error(message: str, code: int) -> JSONResponse:
    return JSONResponse({"status": False, "message": message, "code": code}, status_code=code)


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[DetectionPipeline] = None,
) -> FastAPI:
    """
    Build the API. The pipeline is wired from `settings` on first use unless
    one is passed in.
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Object Lens",
        version="1.0.0",
        description="Object detection with taxonomy categories, annotated images and thumbnails.",
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_pipeline() -> DetectionPipeline:
        if app.state.pipeline is None:
            app.state.pipeline = build_pipeline(app.state.settings)
        return app.state.pipeline

    @app.exception_handler(PipelineError)
    async def pipeline_error(request: Request, exc: PipelineError):
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return _error(str(exc.errors()), 400)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        log.exception("Unhandled error on %s", request.url.path)
        return _error(str(exc), 500)

    @app.post(
        "/api/v1/object_detection",
        response_model=DetectResponse,
        responses=ERROR_RESPONSES,
    )
    def object_detection(body: DetectRequest, request: Request):
        """
        Detect objects in an image and return annotated image with metadata.
        """
        base_url = str(request.base_url).rstrip("/")
        return get_pipeline().run(body.image_url, base_url)

    @app.post("/api/v1/taxonomy/reload", response_model=TaxonomyReloadResponse)
    def reload_taxonomy():
        """
        Re-read the taxonomy file and swap it in for subsequent requests.
        """
        taxonomy = get_pipeline().categorizer.reload()
        return TaxonomyReloadResponse(
            categories=len(taxonomy.categories),
            labels=len(taxonomy),
        )

    @app.get("/graph/ascii")
    def graph_ascii():
        """
        Return an ASCII representation of the pipeline graph.
        """
        return {"graph": get_pipeline().graph.get_graph().draw_ascii()}

    @app.get("/graph/mermaid")
    def graph_mermaid():
        """
        Return Mermaid source for visualizing the pipeline graph.
        """
        return {"mermaid": get_pipeline().graph.get_graph().draw_mermaid()}

    @app.get("/health")
    def health():
        """
        Basic health check.
        """
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    # Rendered artifacts are addressed as /<kind>/<file>; the directories
    # appear on startup or with the first artifact, never at import
    kinds = (ANNOTATED_DIR, THUMBNAIL_DIR)
    artifact_dirs = [os.path.join(settings.public_dir, kind) for kind in kinds]
    for kind, directory in zip(kinds, artifact_dirs):
        app.mount(f"/{kind}", StaticFiles(directory=directory, check_dir=False), name=kind)

    @app.on_event("startup")
    def create_artifact_dirs():
        for directory in artifact_dirs:
            os.makedirs(directory, exist_ok=True)
        log.info("Serving artifacts from %s", settings.public_dir)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=8000)
