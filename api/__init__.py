"""
FastAPI API package for the object detection service.

Exposes:
- `main` : FastAPI application with `/api/v1/object_detection` and
           taxonomy/graph/health endpoints.
"""
