import numpy as np
from PIL import Image

from api.services.metadata import exposure_order, extract_metadata


def test_order_prefers_exposure_time():
    records = [
        {"exposure_time_s": 1 / 30, "mean_brightness": 10.0},
        {"exposure_time_s": 1 / 250, "mean_brightness": 200.0},
        {"exposure_time_s": None, "mean_brightness": 90.0},
    ]
    assert exposure_order(records) == [1, 0, 2]


def test_order_falls_back_to_brightness():
    records = [{"mean_brightness": b} for b in (120.0, 30.0, 240.0)]
    assert exposure_order(records) == [1, 0, 2]


def test_extract_metadata_without_exif(tmp_path):
    path = tmp_path / "frame.png"
    Image.fromarray(np.full((4, 6, 3), 100, dtype=np.uint8)).save(path)
    record = extract_metadata([path])["images"][0]
    assert (record["width"], record["height"]) == (6, 4)
    assert record["mean_brightness"] == 100.0
    assert record["exposure_time_s"] is None
