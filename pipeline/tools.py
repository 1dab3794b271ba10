from __future__ import annotations

from typing import Any, Dict, List

from langchain_core.tools import tool

from models.gdino import get_gdino


def box_to_polygon(cx: float, cy: float, w: float, h: float) -> List[List[float]]:
    """Expand a normalized [cx, cy, w, h] box into its four corner vertices."""
    x1, y1 = cx - w / 2, cy - h / 2
    x2, y2 = cx + w / 2, cy + h / 2
    return [[x1, y1], [x2, y1], [x2, y2], [x1, y2]]


@tool
def run_grounding_dino(
    image_path: str,
    prompt: str,
    box_thresh: float = 0.35,
    text_thresh: float = 0.25,
    config_path: str = "",
    weights_path: str = "",
) -> Dict[str, Any]:
    """
    Localizes objects matching a text prompt using Grounding DINO.

    Args:
        image_path: Path to the working image.
        prompt: Dot-separated vocabulary, e.g. "chair . person . car".
        box_thresh: Minimum box confidence threshold.
        text_thresh: Text score threshold.

    Returns:
        Dict with key:
            - objects : list of {"name", "score", "vertices"} where vertices
                        are normalized [x, y] polygon corners
    """
    from groundingdino.util.inference import load_image, predict

    model = get_gdino(config_path or None, weights_path or None)

    _, img_tensor = load_image(image_path)
    boxes, logits, phrases = predict(
        model=model,
        image=img_tensor,
        caption=prompt,
        box_threshold=box_thresh,
        text_threshold=text_thresh,
    )

    return {
        "objects": [
            {"name": phrase, "score": float(score), "vertices": box_to_polygon(*box)}
            for box, score, phrase in zip(boxes.tolist(), logits.tolist(), phrases)
        ]
    }
