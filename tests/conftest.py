from __future__ import annotations

import cv2
import numpy as np
import pytest

from api.services.exposure import Exposure


def solid(width: int, height: int, value: int, dtype=np.uint8, gray: bool = False) -> Exposure:
    shape = (height, width) if gray else (height, width, 3)
    return Exposure(np.full(shape, value, dtype=dtype))


def textured(size: int = 128, seed: int = 7) -> np.ndarray:
    """Smooth random texture scaled to the full 0..255 range, HxWx3 uint8."""
    rng = np.random.default_rng(seed)
    noise = rng.random((size, size)).astype(np.float32)
    blurred = cv2.GaussianBlur(noise, (0, 0), 3)
    blurred = (blurred - blurred.min()) / (blurred.max() - blurred.min())
    gray = (blurred * 255.0 + 0.5).astype(np.uint8)
    return np.repeat(gray[..., np.newaxis], 3, axis=2)


@pytest.fixture
def bracket():
    return [solid(32, 32, 50), solid(32, 32, 128), solid(32, 32, 200)]


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("HDR_DATA_DIR", str(tmp_path))
    return tmp_path
