# core/hasher.py

from enum import Enum
from functools import partial
from pathlib import Path
from typing import Callable, Union

import imagehash
from PIL import Image, UnidentifiedImageError

from simscan.core.errors import DecodeError, InvalidRequest

ImageHasher = Callable[[Image.Image], imagehash.ImageHash]


class HashType(str, Enum):
    """Perceptual hash algorithm variants"""
    AHASH = "ahash"  # mean
    PHASH = "phash"  # mean over DCT coefficients
    DHASH = "dhash"  # gradient

    @classmethod
    def parse(cls, value: Union[str, 'HashType']) -> 'HashType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise InvalidRequest(f"Unknown hash type {value!r} (expected one of: {choices})")


_ALGORITHMS = {
    HashType.AHASH: imagehash.average_hash,
    HashType.PHASH: imagehash.phash,
    HashType.DHASH: imagehash.dhash,
}


def make_hasher(hash_type: HashType, hash_size: int) -> ImageHasher:
    """
    Build a hasher producing ``hash_size`` x ``hash_size`` bit hashes
    """
    if hash_size < 2:
        raise InvalidRequest(f"hash_size must be at least 2, got {hash_size}")
    return partial(_ALGORITHMS[HashType.parse(hash_type)], hash_size=hash_size)


def decode_image(path: Union[str, Path]) -> Image.Image:
    """
    Open and fully decode an image.

    Raises:
        DecodeError: the file is missing, unreadable or not an image
    """
    try:
        with Image.open(path) as img:
            img.load()
            # Convert palette/alpha images so every variant hashes the same pixels
            if img.mode not in ('RGB', 'L'):
                return img.convert('RGB')
            return img.copy()
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(path, e) from e


def hash_distance(a: imagehash.ImageHash, b: imagehash.ImageHash) -> int:
    """Hamming distance between two hashes of the same size"""
    return int(a - b)
