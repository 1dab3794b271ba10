from __future__ import annotations

import os
from pathlib import Path

import requests

GDINO_WEIGHTS_URL = (
    "https://github.com/IDEA-Research/GroundingDINO/releases/download/"
    "v0.1.0-alpha/groundingdino_swint_ogc.pth"
)
GDINO_CONFIG_URL = (
    "https://raw.githubusercontent.com/IDEA-Research/GroundingDINO/main/"
    "groundingdino/config/GroundingDINO_SwinT_OGC.py"
)


def download(url: str, dest: Path):
    dest.parent.mkdir(parents=True, exist_ok=True)
    if dest.exists():
        print(f"[skip] {dest} already exists")
        return

    print(f"[download] {url} -> {dest}")
    partial = dest.with_suffix(dest.suffix + ".part")
    with requests.get(url, stream=True, timeout=60) as r:
        r.raise_for_status()
        with open(partial, "wb") as f:
            for chunk in r.iter_content(chunk_size=1024 * 1024):
                if chunk:
                    f.write(chunk)
    partial.rename(dest)
    print(f"[ok] {dest}")


def main():
    """Fetch the Grounding DINO weights and config to the paths the detector reads."""
    weights = Path(os.environ.get("LENS_GDINO_WEIGHTS", "weights/gdino.pth"))
    config = Path(os.environ.get("LENS_GDINO_CONFIG", "weights/gdino_config.py"))

    download(GDINO_WEIGHTS_URL, weights)
    download(GDINO_CONFIG_URL, config)


if __name__ == "__main__":
    main()
