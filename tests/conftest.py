# tests/conftest.py

import shutil

import pytest

from simscan.core.cache import Cache
from tests.helpers import write_noise_image


@pytest.fixture
def cache():
    """Cache actor that is stopped after the test"""
    c = Cache()
    yield c
    c.close()


@pytest.fixture
def duplicate_images(tmp_path):
    """Two identical images, one unrelated image and a non-image file"""
    original = write_noise_image(tmp_path / "original.png", seed=1)
    duplicate = tmp_path / "nested" / "copy.png"
    duplicate.parent.mkdir()
    shutil.copy(original, duplicate)
    different = write_noise_image(tmp_path / "different.png", seed=2)
    (tmp_path / "notes.txt").write_text("not an image")

    return {
        'root': tmp_path,
        'original': str(original),
        'duplicate': str(duplicate),
        'different': str(different),
    }
