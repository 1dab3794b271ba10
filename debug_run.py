from __future__ import annotations

import logging
import sys
from contextlib import ExitStack
from dataclasses import replace

from pipeline.config import Settings
from pipeline.graph import build_pipeline

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """
    Run a debug pass through the detection graph.

    Usage: python debug_run.py <image_url>
    Caching is switched off so every run reaches the detector.
    """
    if len(sys.argv) < 2:
        print("usage: python debug_run.py <image_url>")
        sys.exit(2)

    settings = replace(Settings.from_env(), enable_caching=False)
    pipeline = build_pipeline(settings)

    print(pipeline.graph.get_graph().draw_ascii())

    # Stream: see each node's state delta live
    with ExitStack() as resources:
        for step in pipeline.graph.stream(
            {"image_url": sys.argv[1], "base_url": "", "failure": None},
            config={"configurable": {"resources": resources}},
        ):
            node = list(step.keys())[0]
            print("\n" + "=" * 40)
            print(f"NODE: {node}")
            print(f"DELTA: {step[node]}")


if __name__ == "__main__":
    main()
