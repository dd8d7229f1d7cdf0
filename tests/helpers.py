# tests/helpers.py

import time

import numpy as np
from PIL import Image


def write_noise_image(path, seed: int, size=(64, 64)):
    """Save a random RGB image; different seeds give unrelated pictures"""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 255, (size[1], size[0], 3), dtype=np.uint8)
    Image.fromarray(pixels).save(path)
    return path


def wait_until(predicate, timeout: float = 10.0, interval: float = 0.02):
    """Call ``predicate`` until it returns something truthy"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        value = predicate()
        if value:
            return value
        time.sleep(interval)
    raise AssertionError("condition not met before timeout")


class RecordingSender:
    """Stands in for a watch sender and keeps every value sent"""

    def __init__(self):
        self.values = []

    def send(self, value):
        self.values.append(value)
