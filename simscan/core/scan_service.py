# core/scan_service.py

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from simscan.core.analyzer import Analyzer, ScanRequest, ScanResult
from simscan.core.task_manager import Completed, Failed, Pending, TaskManager
from simscan.core.watch import WatchReceiver, WatchSender
from simscan.utils.file_utils import validate_directory

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"
NOT_FOUND = "not_found"


@dataclass(frozen=True)
class PollResult:
    """Status of a job as seen by one poll"""
    status: str
    progress: int = 0
    result: Optional[ScanResult] = None
    reason: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.status in (COMPLETED, FAILED)

    def to_dict(self) -> dict:
        data = {'status': self.status}
        if self.status == PENDING:
            data['progress'] = self.progress
        elif self.status == COMPLETED:
            data['progress'] = 100
            data.update(self.result.to_dict())
        elif self.status == FAILED:
            data['reason'] = self.reason
        return data


class ScanService:
    """
    Entry point for front ends: submit a scan, then poll or subscribe.

    A request's fingerprint is its job key, so resubmitting a request
    that is still running joins the existing job instead of starting
    another one.
    """

    def __init__(self,
                 analyzer: Optional[Analyzer] = None,
                 task_manager: Optional[TaskManager] = None,
                 job_workers: int = 2):
        self.analyzer = analyzer or Analyzer()
        self.tasks = task_manager or TaskManager(max_workers=job_workers)

    def submit(self, request: ScanRequest) -> str:
        """
        Begin or join an analysis.

        Returns:
            The job key to poll or subscribe with

        Raises:
            InvalidPath: ``request.path`` is not a readable directory
        """
        validate_directory(request.path)
        job_key = request.fingerprint()

        def job(key: str, progress: WatchSender) -> ScanResult:
            return self.analyzer.analyze(request, progress)

        if self.tasks.submit(job_key, job):
            logger.info("submitted scan %s for %s", job_key, request.path)
        else:
            logger.info("joined running scan %s for %s", job_key, request.path)
        return job_key

    def poll(self, job_key: str) -> PollResult:
        response = self.tasks.poll(job_key)

        if response is None:
            return PollResult(NOT_FOUND)
        if isinstance(response, Pending):
            return PollResult(PENDING, progress=response.progress)
        if isinstance(response, Completed):
            return PollResult(COMPLETED, progress=100, result=response.result)
        if isinstance(response, Failed):
            logger.error("scan %s failed: %s", job_key, response.reason)
            return PollResult(FAILED, reason=response.reason)
        raise TypeError(f"unexpected task response {response!r}")

    def subscribe(self, job_key: str) -> Optional[Iterator[int]]:
        """
        Live progress feed for a running job, or None if unknown.

        The current value is yielded first; the iterator ends when the
        job finishes.
        """
        receiver = self.tasks.progress(job_key)
        if receiver is None:
            return None
        return _progress_stream(receiver)

    def shutdown(self, wait: bool = True) -> None:
        self.tasks.shutdown(wait=wait)
        self.analyzer.cache.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False


def _progress_stream(receiver: WatchReceiver) -> Iterator[int]:
    yield receiver.borrow_and_update()
    yield from receiver
