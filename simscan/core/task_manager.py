# core/task_manager.py

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, NamedTuple, Optional, TypeVar, Union

from simscan.core.actor import Actor
from simscan.core.watch import Watch, WatchReceiver, WatchSender

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
P = TypeVar('P')
R = TypeVar('R')

Job = Callable[[Any, WatchSender], Any]


@dataclass(frozen=True)
class Pending(Generic[P]):
    progress: P


@dataclass(frozen=True)
class Completed(Generic[R]):
    result: R


@dataclass(frozen=True)
class Failed:
    reason: str
    error: Optional[BaseException] = None


TaskResponse = Union[Pending, Completed, Failed]


class _TaskRecord(NamedTuple):
    future: Future
    progress: WatchReceiver


class _Submit(NamedTuple):
    key: object
    job: Job


class _Poll(NamedTuple):
    key: object


class _Progress(NamedTuple):
    key: object


class _Keys(NamedTuple):
    pass


def describe_failure(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class TaskManager(Actor, Generic[K, P, R]):
    """
    Registry of keyed background jobs, at most one running per key.

    The key -> record map belongs to the coordinator thread; ``submit``,
    ``poll`` and ``progress`` are messages to it, so they are safe to call
    from any number of request handlers. Jobs themselves run on
    ``executor`` and never block the coordinator.

    A finished job's result is handed to the first ``poll`` that sees it
    and then forgotten.
    """

    def __init__(self,
                 executor: Optional[Executor] = None,
                 max_workers: int = 2,
                 initial_progress: P = 0,
                 name: str = "task-manager"):
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"{name}-job"
        )
        self._initial_progress = initial_progress
        self._tasks: Dict[K, _TaskRecord] = {}
        super().__init__(name)

    # Coordinator side

    def handle(self, message):
        if isinstance(message, _Submit):
            return self._on_submit(message.key, message.job)
        if isinstance(message, _Poll):
            return self._on_poll(message.key)
        if isinstance(message, _Progress):
            record = self._tasks.get(message.key)
            return record.progress.clone() if record is not None else None
        if isinstance(message, _Keys):
            return list(self._tasks)
        raise TypeError(f"unsupported task manager message {message!r}")

    def _on_submit(self, key: K, job: Job) -> bool:
        if key in self._tasks:
            logger.debug("job %r already tracked, reusing it", key)
            return False

        sender, receiver = Watch.channel(self._initial_progress)
        future = self._executor.submit(_run_job, key, job, sender)
        self._tasks[key] = _TaskRecord(future, receiver)
        logger.info("job %r started", key)
        return True

    def _on_poll(self, key: K) -> Optional[TaskResponse]:
        record = self._tasks.get(key)
        if record is None:
            return None

        if not record.future.done():
            return Pending(record.progress.borrow())

        del self._tasks[key]
        error = record.future.exception()
        if error is not None:
            return Failed(describe_failure(error), error)
        return Completed(record.future.result())

    def on_stop(self):
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # Caller side

    def submit(self, key: K, job: Callable[[K, WatchSender], R]) -> bool:
        """
        Start ``job(key, progress_sender)`` unless ``key`` is already tracked.

        Returns:
            True if a new job was spawned, False if an existing one is reused
        """
        return self.ask(_Submit(key, job))

    def poll(self, key: K) -> Optional[TaskResponse]:
        """
        Non-blocking status check.

        Returns:
            Pending(progress) while running; Completed(result) or
            Failed(reason) exactly once when finished (the key is
            dropped); None if the key is not tracked
        """
        return self.ask(_Poll(key))

    def progress(self, key: K) -> Optional[WatchReceiver]:
        """Independent progress receiver for a tracked job, or None"""
        return self.ask(_Progress(key))

    def keys(self):
        return self.ask(_Keys())

    def shutdown(self, wait: bool = True) -> None:
        self.stop()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


def _run_job(key, job: Job, sender: WatchSender):
    """Worker-side wrapper: the progress channel closes however the job ends"""
    try:
        return job(key, sender)
    except Exception:
        logger.exception("job %r failed", key)
        raise
    finally:
        sender.close()
