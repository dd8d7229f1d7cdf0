# tests/test_analyzer.py

import shutil

import imagehash
import numpy as np
import pytest

from simscan.core.analyzer import Analyzer, ScanRequest, create_groups
from simscan.core.cache import Cache
from simscan.core.errors import DecodeError, InvalidPath, InvalidRequest
from simscan.core.hasher import HashType, decode_image
from simscan.utils.file_utils import FileInfo
from tests.helpers import RecordingSender, write_noise_image


def make_hash(set_bits, size=4):
    bits = np.zeros(size * size, dtype=bool)
    bits[list(set_bits)] = True
    return imagehash.ImageHash(bits.reshape(size, size))


def info(name):
    return FileInfo(path=f"/photos/{name}", size=1, date=0)


def as_sets(groups):
    return {frozenset(f.path for f in group) for group in groups}


@pytest.fixture
def ten_images(tmp_path):
    """Eight decodable images (four duplicate pairs) and two broken files"""
    for i in range(4):
        first = write_noise_image(tmp_path / f"img_{i}.png", seed=10 + i)
        shutil.copy(first, tmp_path / f"img_{i}_copy.png")
    for i in range(2):
        (tmp_path / f"broken_{i}.jpg").write_bytes(b"definitely not a jpeg")
    return tmp_path


class CountingDecoder:
    """Wraps decode_image and remembers which paths were decoded"""

    def __init__(self):
        self.paths = []

    def __call__(self, path):
        self.paths.append(path)
        return decode_image(path)


def test_transitive_matches_form_one_group():
    a, b, c = info("a.png"), info("b.png"), info("c.png")
    hashes = [
        (a, make_hash([])),
        (b, make_hash([0, 1, 2])),
        (c, make_hash([0, 1, 2, 3, 4, 5, 6])),
    ]
    assert hashes[0][1] - hashes[1][1] == 3
    assert hashes[1][1] - hashes[2][1] == 4
    assert hashes[0][1] - hashes[2][1] == 7

    groups = create_groups(hashes, max_dist=5)
    assert as_sets(groups) == {frozenset({a.path, b.path, c.path})}

    # without the bridge file the two ends do not match
    assert create_groups([hashes[0], hashes[2]], max_dist=5) == []


def test_singletons_are_discarded():
    a, b, c = info("a.png"), info("b.png"), info("c.png")
    hashes = [
        (a, make_hash([1])),
        (b, make_hash([1])),
        (c, make_hash(range(10))),
    ]
    groups = create_groups(hashes, max_dist=2)
    assert as_sets(groups) == {frozenset({a.path, b.path})}


def test_distance_threshold_is_inclusive():
    a, b = info("a.png"), info("b.png")
    hashes = [(a, make_hash([])), (b, make_hash([0, 1]))]
    assert len(create_groups(hashes, max_dist=2)) == 1
    assert create_groups(hashes, max_dist=1) == []


def test_identical_images_grouped_and_unrelated_left_out(cache, duplicate_images):
    analyzer = Analyzer(cache=cache, n_workers=2)
    result = analyzer.analyze(ScanRequest(str(duplicate_images['root']), dist=5))

    assert as_sets(result.groups) == {
        frozenset({duplicate_images['original'], duplicate_images['duplicate']})
    }
    assert result.total_files == 3
    assert result.hashed_files == 3
    assert result.skipped_files == 0


@pytest.mark.parametrize("hash_type", list(HashType))
def test_every_hash_type_finds_copies(cache, duplicate_images, hash_type):
    analyzer = Analyzer(cache=cache, n_workers=2)
    result = analyzer.analyze(
        ScanRequest(str(duplicate_images['root']), dist=0, hash_type=hash_type, hash_size=8)
    )
    assert len(result.groups) == 1
    assert len(result.groups[0]) == 2


def test_progress_reaches_100_with_undecodable_files(cache, ten_images):
    analyzer = Analyzer(cache=cache, n_workers=3)
    progress = RecordingSender()

    result = analyzer.analyze(ScanRequest(str(ten_images), dist=0), progress)

    assert progress.values == list(range(10, 101, 10))
    assert result.total_files == 10
    assert result.hashed_files == 8
    assert result.skipped_files == 2
    assert len(result.groups) == 4


def test_empty_directory_reports_complete(cache, tmp_path):
    progress = RecordingSender()
    result = Analyzer(cache=cache).analyze(ScanRequest(str(tmp_path)), progress)

    assert result.groups == []
    assert progress.values == [100]


def test_second_run_reuses_cached_hashes(cache, duplicate_images):
    decoder = CountingDecoder()
    analyzer = Analyzer(cache=cache, n_workers=2, decoder=decoder)
    request = ScanRequest(str(duplicate_images['root']), dist=5)

    first = analyzer.analyze(request)
    assert len(decoder.paths) == 3
    assert first.cache_hits == 0

    second = analyzer.analyze(request)
    assert len(decoder.paths) == 3
    assert second.cache_hits == 3
    assert as_sets(second.groups) == as_sets(first.groups)


def test_cache_is_keyed_on_hash_settings(cache, duplicate_images):
    decoder = CountingDecoder()
    analyzer = Analyzer(cache=cache, n_workers=2, decoder=decoder)
    root = str(duplicate_images['root'])

    analyzer.analyze(ScanRequest(root, hash_type="phash", hash_size=8))
    analyzer.analyze(ScanRequest(root, hash_type="phash", hash_size=16))
    analyzer.analyze(ScanRequest(root, hash_type="dhash", hash_size=8))

    assert len(decoder.paths) == 9
    assert len(cache) == 9


def test_failed_files_are_not_cached(cache, ten_images):
    Analyzer(cache=cache, n_workers=2).analyze(ScanRequest(str(ten_images)))
    assert len(cache) == 8


def test_cache_is_untouched_when_scan_fails(cache, duplicate_images):
    def failing_lister(path, extensions):
        raise OSError("listing failed")

    analyzer = Analyzer(cache=cache, lister=failing_lister)
    with pytest.raises(OSError):
        analyzer.analyze(ScanRequest(str(duplicate_images['root'])))
    assert len(cache) == 0


def test_hashes_only_written_after_grouping(cache, duplicate_images, monkeypatch):
    analyzer = Analyzer(cache=cache, n_workers=2)

    def fail(*args, **kwargs):
        raise RuntimeError("grouping failed")

    monkeypatch.setattr("simscan.core.analyzer.create_groups", fail)
    with pytest.raises(RuntimeError):
        analyzer.analyze(ScanRequest(str(duplicate_images['root'])))
    assert len(cache) == 0


def test_unavailable_cache_falls_back_to_hashing(duplicate_images):
    closed = Cache()
    closed.close()
    analyzer = Analyzer(cache=closed, n_workers=2)

    result = analyzer.analyze(ScanRequest(str(duplicate_images['root']), dist=5))

    assert len(result.groups) == 1
    assert result.cache_hits == 0


def test_missing_root_raises_invalid_path(cache, tmp_path):
    with pytest.raises(InvalidPath):
        Analyzer(cache=cache).analyze(ScanRequest(str(tmp_path / "missing")))


def test_decode_error_for_non_image(tmp_path):
    bogus = tmp_path / "fake.png"
    bogus.write_text("hello")
    with pytest.raises(DecodeError) as excinfo:
        decode_image(bogus)
    assert excinfo.value.path == str(bogus)


class TestScanRequest:

    def test_normalizes_fields(self, tmp_path):
        req = ScanRequest(str(tmp_path), dist="3", hash_type="DHash", hash_size="8")
        assert req.dist == 3
        assert req.hash_type is HashType.DHASH
        assert req.hash_size == 8

    def test_identical_requests_share_fingerprint(self, tmp_path):
        a = ScanRequest(str(tmp_path), dist=4)
        b = ScanRequest(str(tmp_path / "."), dist=4)
        assert a.fingerprint() == b.fingerprint()
        assert a.fingerprint() != ScanRequest(str(tmp_path), dist=5).fingerprint()

    @pytest.mark.parametrize("kwargs", [
        {'dist': -1},
        {'hash_size': 1},
        {'hash_type': 'sha256'},
        {'dist': 'far'},
    ])
    def test_rejects_bad_values(self, tmp_path, kwargs):
        with pytest.raises(InvalidRequest):
            ScanRequest(str(tmp_path), **kwargs)
