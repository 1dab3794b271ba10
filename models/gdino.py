from __future__ import annotations

import os
import threading

_gdino = None
_lock = threading.Lock()


def get_gdino(config_path: str = None, weights_path: str = None):
    """
    Returns a singleton instance of the Grounding DINO model.

    Paths default to the project convention:
    - weights/gdino_config.py
    - weights/gdino.pth
    `download_weights.py` fetches both.
    """
    global _gdino

    if _gdino is None:
        with _lock:
            if _gdino is None:
                import torch
                from groundingdino.util.inference import load_model

                config_path = config_path or os.path.join("weights", "gdino_config.py")
                weights_path = weights_path or os.path.join("weights", "gdino.pth")
                device = "cuda" if torch.cuda.is_available() else "cpu"

                _gdino = load_model(config_path, weights_path, device=device)

    return _gdino
