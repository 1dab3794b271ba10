from __future__ import annotations

from pipeline.coordinates import reconcile, scale_rect, to_pixels
from pipeline.types import BoundingBox, CategorizedObject, PixelRect


def obj(box=None, index=1):
    return CategorizedObject(id=f"obj_{index}", label="Chair", category="furniture", confidence=0.9, box=box)


def test_to_pixels_scenario():
    rect = to_pixels(BoundingBox(0.1, 0.1, 0.5, 0.5), 1000, 800)
    assert rect == PixelRect(x=100, y=80, width=400, height=320)


def test_unscaled_reconcile_equals_direct_conversion():
    boxes = [
        BoundingBox(0.1, 0.1, 0.5, 0.5),
        BoundingBox(0.0, 0.0, 1.0, 1.0),
        BoundingBox(0.333, 0.127, 0.871, 0.499),
        BoundingBox(0.25, 0.75, 0.25, 0.75),
    ]
    objects = [obj(b, i) for i, b in enumerate(boxes, 1)]
    out = reconcile(objects, 1234, 567, 1234, 567, scaled=False)
    assert [o.crop for o in out] == [to_pixels(b, 1234, 567) for b in boxes]


def test_scaled_reconcile_rescales_per_axis():
    out = reconcile([obj(BoundingBox(0.1, 0.1, 0.5, 0.5))], 200, 100, 400, 300, scaled=True)
    # working rect (20, 10, 80, 40) scaled by (2, 3)
    assert out[0].crop == PixelRect(40, 30, 160, 120)
    assert out[0].box == BoundingBox(0.1, 0.1, 0.5, 0.5)


def test_boxless_objects_pass_through():
    out = reconcile([obj(None)], 200, 100, 400, 300, scaled=True)
    assert out[0].crop is None
    assert out[0].to_dict()["thumbnail_crop"] == {}
    assert out[0].to_dict()["bounding_box"] == {}


def test_scale_rect_truncates():
    assert scale_rect(PixelRect(3, 3, 3, 3), 1.5, 1.5) == PixelRect(4, 4, 4, 4)
