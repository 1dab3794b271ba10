from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

MAX_IMAGE_BYTES = 10 * 1024 * 1024
PIXEL_BUDGET = 75_000_000
MAX_OBJECTS = 50
THUMBNAIL_MIN = 100
FETCH_TIMEOUT = 30


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    """
    Process configuration for the detection service.

    Built once at startup with `Settings.from_env()`; every value has a
    default so the service runs without any environment.
    """

    taxonomy_file: str = os.path.join("config", "taxonomy.yaml")
    cache_db: str = os.path.join("var", "detections.db")
    enable_caching: bool = True
    public_dir: str = "public"
    fetch_timeout: float = FETCH_TIMEOUT
    max_image_bytes: int = MAX_IMAGE_BYTES
    pixel_budget: int = PIXEL_BUDGET
    max_objects: int = MAX_OBJECTS
    thumbnail_min: int = THUMBNAIL_MIN
    gdino_config: str = os.path.join("weights", "gdino_config.py")
    gdino_weights: str = os.path.join("weights", "gdino.pth")
    box_threshold: float = 0.35
    text_threshold: float = 0.25

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        default = cls()
        return cls(
            taxonomy_file=env.get("LENS_TAXONOMY_FILE", default.taxonomy_file),
            cache_db=env.get("LENS_CACHE_DB", default.cache_db),
            enable_caching=_env_bool(env.get("LENS_ENABLE_CACHING"), default.enable_caching),
            public_dir=env.get("LENS_PUBLIC_DIR", default.public_dir),
            fetch_timeout=float(env.get("LENS_FETCH_TIMEOUT", default.fetch_timeout)),
            max_image_bytes=int(env.get("LENS_MAX_IMAGE_BYTES", default.max_image_bytes)),
            pixel_budget=int(env.get("LENS_PIXEL_BUDGET", default.pixel_budget)),
            max_objects=int(env.get("LENS_MAX_OBJECTS", default.max_objects)),
            thumbnail_min=int(env.get("LENS_THUMBNAIL_MIN", default.thumbnail_min)),
            gdino_config=env.get("LENS_GDINO_CONFIG", default.gdino_config),
            gdino_weights=env.get("LENS_GDINO_WEIGHTS", default.gdino_weights),
            box_threshold=float(env.get("LENS_BOX_THRESHOLD", default.box_threshold)),
            text_threshold=float(env.get("LENS_TEXT_THRESHOLD", default.text_threshold)),
        )
