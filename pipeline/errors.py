"""Failure taxonomy for the detection pipeline.

Every failure carries a stable ``reason`` tag and the HTTP-style status code
the API layer answers with.
"""

from __future__ import annotations


class PipelineError(Exception):
    reason = "unclassified"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.reason)
        self.message = message or self.reason

    def to_payload(self) -> dict:
        return {"status": False, "message": self.message, "code": self.status_code}


class InvalidSource(PipelineError):
    """Bad scheme, malformed URL or non-2xx fetch."""

    reason = "invalid_source"
    status_code = 400


class UnsupportedFormat(PipelineError):
    reason = "unsupported_format"
    status_code = 400


class TooLarge(PipelineError):
    reason = "too_large"
    status_code = 413


class DetectionFailed(PipelineError):
    reason = "detection_failed"
    status_code = 502


class AnnotationFailed(PipelineError):
    reason = "annotation_failed"
    status_code = 500


class CacheConflict(PipelineError):
    """Another request stored the same image hash first. Recovered locally."""

    reason = "cache_conflict"
    status_code = 409


class Unclassified(PipelineError):
    reason = "unclassified"
    status_code = 500
