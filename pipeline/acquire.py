from __future__ import annotations

import logging
import os
import struct
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator
from urllib.parse import urlparse

import requests
from PIL import Image

from pipeline.config import FETCH_TIMEOUT, MAX_IMAGE_BYTES
from pipeline.errors import InvalidSource, TooLarge, UnsupportedFormat

log = logging.getLogger(__name__)

ALLOWED_FORMATS = ("JPEG", "PNG", "GIF", "WEBP")
USER_AGENT = "object-lens/1.0"
CHUNK_SIZE = 64 * 1024

# Pillow keeps its decompression-bomb ceiling in a module global
_pixel_limit_lock = threading.RLock()


@dataclass(frozen=True)
class AcquiredImage:
    """A validated image downloaded into a request-owned temp file."""

    url: str
    path: str
    size_bytes: int
    format: str
    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height


def validate_url(url: str) -> None:
    """Reject anything that is not an absolute http(s) URL."""
    if not url or not url.strip():
        raise InvalidSource("Image URL is required")
    try:
        parsed = urlparse(url)
    except ValueError:
        raise InvalidSource("Malformed URL")
    if parsed.scheme not in ("http", "https"):
        raise InvalidSource("Invalid URL scheme")
    if not parsed.netloc or not parsed.hostname:
        raise InvalidSource("Malformed URL")


@contextmanager
def unbounded_pixels() -> Iterator[None]:
    """
    Lift Pillow's decompression-bomb pixel ceiling for the enclosed block.

    Downloads are already capped in bytes and the detector only ever sees a
    copy within the pixel budget, so large but legitimate images must open.
    """
    with _pixel_limit_lock:
        previous = Image.MAX_IMAGE_PIXELS
        Image.MAX_IMAGE_PIXELS = None
        try:
            yield
        finally:
            Image.MAX_IMAGE_PIXELS = previous


def open_image(path: str) -> Image.Image:
    with unbounded_pixels():
        return Image.open(path)


def inspect_image(path: str) -> tuple:
    """
    Identify and fully decode an image.

    Returns (format, width, height). Raises `UnsupportedFormat` when Pillow
    cannot decode the file (truncated data included) or the format is
    outside the allow-list.
    """
    try:
        with open_image(path) as img:
            fmt = img.format
            width, height = img.size
            img.verify()
        # verify() only walks the structure; decode the first frame too
        with open_image(path) as img:
            img.draft("RGB", (max(1, width // 8), max(1, height // 8)))
            img.load()
    except (OSError, SyntaxError, ValueError, EOFError, struct.error) as e:
        raise UnsupportedFormat(f"Invalid image file: {e}")

    if fmt not in ALLOWED_FORMATS:
        raise UnsupportedFormat(f"Unsupported image format: {fmt}")
    return fmt, width, height


class Acquirer:
    """Fetches a remote image into a temp file and validates it."""

    def __init__(self, max_bytes: int = MAX_IMAGE_BYTES, timeout: float = FETCH_TIMEOUT):
        self.max_bytes = max_bytes
        self.timeout = timeout

    @contextmanager
    def acquire(self, url: str) -> Iterator[AcquiredImage]:
        """
        Download and validate `url`, yielding an `AcquiredImage`.

        The temp file is removed when the context exits, whether the body
        raised or not.
        """
        validate_url(url)

        with tempfile.NamedTemporaryFile(delete=False, suffix=".img") as tmp:
            tmp_path = tmp.name

        try:
            size = self._download(url, tmp_path)
            fmt, width, height = inspect_image(tmp_path)
            log.info("[ACQUIRE] %s: %s %dx%d, %d bytes", url, fmt, width, height, size)
            yield AcquiredImage(
                url=url,
                path=tmp_path,
                size_bytes=size,
                format=fmt,
                width=width,
                height=height,
            )
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                log.warning("Failed to remove temp file %s", tmp_path)

    def _download(self, url: str, dest: str) -> int:
        try:
            with requests.get(
                url,
                stream=True,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            ) as r:
                if not r.ok:
                    raise InvalidSource(f"HTTP {r.status_code}")

                declared = r.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise TooLarge(f"Image size ({declared} bytes) exceeds limit")

                size = 0
                with open(dest, "wb") as f:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        size += len(chunk)
                        if size > self.max_bytes:
                            raise TooLarge(
                                f"Image size exceeds {self.max_bytes} bytes limit"
                            )
                        f.write(chunk)
        except requests.RequestException as e:
            raise InvalidSource(f"Failed to download image: {e}")

        if size == 0:
            raise UnsupportedFormat("Empty image body")
        return size
