# core/analyzer.py

import hashlib
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import imagehash

from simscan.core.cache import Cache
from simscan.core.disjoint_set import DisjointSet
from simscan.core.errors import CacheUnavailable, ChannelClosed, DecodeError, InvalidRequest
from simscan.core.hasher import HashType, ImageHasher, decode_image, hash_distance, make_hasher
from simscan.core.watch import WatchSender
from simscan.utils.file_utils import FileInfo, list_images

logger = logging.getLogger(__name__)

CacheKey = Tuple[HashType, int, str]
Hashes = List[Tuple[FileInfo, imagehash.ImageHash]]
Groups = List[List[FileInfo]]


@dataclass(frozen=True)
class ScanRequest:
    """Parameters of one similarity scan"""
    path: str
    dist: int = 5
    hash_type: HashType = HashType.PHASH
    hash_size: int = 16

    def __post_init__(self):
        object.__setattr__(self, 'path', str(Path(self.path).expanduser().absolute()))
        object.__setattr__(self, 'hash_type', HashType.parse(self.hash_type))

        try:
            object.__setattr__(self, 'dist', int(self.dist))
            object.__setattr__(self, 'hash_size', int(self.hash_size))
        except (TypeError, ValueError):
            raise InvalidRequest(f"dist and hash_size must be integers: {self!r}")

        if self.dist < 0:
            raise InvalidRequest(f"dist must be non-negative, got {self.dist}")
        if self.hash_size < 2:
            raise InvalidRequest(f"hash_size must be at least 2, got {self.hash_size}")

    def fingerprint(self) -> str:
        """Stable job key: identical requests map to the same key"""
        raw = f"{self.path}\0{self.dist}\0{self.hash_type.value}\0{self.hash_size}"
        return hashlib.sha1(raw.encode('utf-8')).hexdigest()

    def cache_key(self, file: FileInfo) -> CacheKey:
        return (self.hash_type, self.hash_size, file.path)


@dataclass
class ScanResult:
    """Similarity groups plus counters describing the run"""
    request: ScanRequest
    groups: Groups
    total_files: int = 0
    hashed_files: int = 0
    cache_hits: int = 0
    elapsed_seconds: float = 0.0

    @property
    def skipped_files(self) -> int:
        return self.total_files - self.hashed_files

    def group_paths(self) -> List[List[str]]:
        return [[f.path for f in group] for group in self.groups]

    def to_dict(self) -> dict:
        return {
            'path': self.request.path,
            'dist': self.request.dist,
            'hashType': self.request.hash_type.value,
            'hashSize': self.request.hash_size,
            'totalFiles': self.total_files,
            'hashedFiles': self.hashed_files,
            'skippedFiles': self.skipped_files,
            'cacheHits': self.cache_hits,
            'elapsedSeconds': round(self.elapsed_seconds, 3),
            'groups': [[f.to_dict() for f in group] for group in self.groups],
        }


def create_groups(hashes: Hashes, max_dist: int) -> Groups:
    """
    Partition hashed files into similarity groups.

    Any two files within ``max_dist`` are joined, and joins are
    transitive: A~B and B~C puts A, B and C in one group even when A
    and C are further apart. Singletons are dropped.
    """
    ds = DisjointSet()

    for file, _ in hashes:
        ds.insert(file)

    for i, (f1, h1) in enumerate(hashes):
        for f2, h2 in hashes[i + 1:]:
            if f1.path != f2.path and hash_distance(h1, h2) <= max_dist:
                ds.union(f1, f2)

    return [group for group in ds.drain_into_groups() if len(group) > 1]


class _ProgressReporter:
    """Turns per-file completions into 0-100 percentages on a watch channel"""

    def __init__(self, sender: Optional[WatchSender], total: int):
        self.sender = sender
        self.total = total
        self.done = 0

    def advance(self, path: str):
        self.done += 1
        self._send(self.done * 100 // self.total, path)

    def finish(self):
        if self.total == 0:
            self._send(100)

    def _send(self, progress: int, path: str = None):
        if self.sender is None:
            return
        try:
            self.sender.send(progress)
        except ChannelClosed:
            logger.error("unable to report progress (%s)", path or "final")


class Analyzer:
    """
    Finds groups of visually similar images under a directory.

    Hashes are memoized in a Cache keyed on (hash type, hash size, path)
    and only written back once a scan has hashed everything, so an
    aborted scan leaves the cache untouched.
    """

    def __init__(self,
                 cache: Optional[Cache] = None,
                 n_workers: Optional[int] = None,
                 extensions: Optional[Iterable[str]] = None,
                 lister: Callable[..., List[FileInfo]] = list_images,
                 decoder: Callable = decode_image):
        self.cache = cache if cache is not None else Cache()
        self.n_workers = n_workers or min(8, os.cpu_count() or 1)
        self.extensions = extensions
        self.lister = lister
        self.decoder = decoder

    def _lookup(self, key: CacheKey) -> Optional[imagehash.ImageHash]:
        try:
            return self.cache.get(key)
        except CacheUnavailable:
            logger.warning("cache unavailable, recomputing %s", key[2])
            return None

    def _hash_file(self,
                   req: ScanRequest,
                   hasher: ImageHasher,
                   file: FileInfo) -> Tuple[imagehash.ImageHash, bool]:
        """Returns (hash, came_from_cache); raises DecodeError"""
        logger.debug("analyzing %s", file.path)

        cached = self._lookup(req.cache_key(file))
        if cached is not None:
            return cached, True

        image = self.decoder(file.path)
        try:
            return hasher(image), False
        except (OSError, ValueError) as e:
            raise DecodeError(file.path, e) from e
        finally:
            image.close()

    def compute_hashes(self,
                       req: ScanRequest,
                       files: List[FileInfo],
                       progress: Optional[WatchSender] = None) -> Tuple[Hashes, Hashes]:
        """
        Hash ``files`` on a thread pool.

        Returns:
            (all successfully hashed files, the subset newly computed)
        """
        hasher = make_hasher(req.hash_type, req.hash_size)
        reporter = _ProgressReporter(progress, len(files))
        hashes: Hashes = []
        computed: Hashes = []

        with ThreadPoolExecutor(max_workers=self.n_workers,
                                thread_name_prefix="hasher") as executor:
            future_to_file = {
                executor.submit(self._hash_file, req, hasher, file): file
                for file in files
            }

            for future in as_completed(future_to_file):
                file = future_to_file[future]
                try:
                    hash_value, from_cache = future.result()
                except DecodeError as e:
                    logger.error("skipping %s: %s", file.path, e)
                else:
                    hashes.append((file, hash_value))
                    if not from_cache:
                        computed.append((file, hash_value))
                finally:
                    reporter.advance(file.path)

        reporter.finish()
        return hashes, computed

    def update_cache(self, req: ScanRequest, hashes: Hashes) -> None:
        for file, hash_value in hashes:
            try:
                self.cache.set(req.cache_key(file), hash_value)
            except CacheUnavailable:
                logger.warning("cache unavailable, %d hashes not stored", len(hashes))
                return

    def analyze(self,
                req: ScanRequest,
                progress: Optional[WatchSender] = None) -> ScanResult:
        """
        List, hash and group the images under ``req.path``.

        Per-file decode failures are logged and skipped. Failing to list
        the root directory raises.
        """
        started = time.monotonic()
        logger.info("scanning %s (dist=%d, %s/%d)",
                    req.path, req.dist, req.hash_type.value, req.hash_size)

        files = self.lister(req.path, self.extensions)
        hashes, computed = self.compute_hashes(req, files, progress)
        groups = create_groups(hashes, req.dist)
        self.update_cache(req, computed)

        result = ScanResult(
            request=req,
            groups=groups,
            total_files=len(files),
            hashed_files=len(hashes),
            cache_hits=len(hashes) - len(computed),
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info("scan of %s finished: %d files, %d skipped, %d cache hits, %d groups",
                    req.path, result.total_files, result.skipped_files,
                    result.cache_hits, len(groups))
        return result
