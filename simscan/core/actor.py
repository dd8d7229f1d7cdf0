# core/actor.py

import logging
import queue
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Optional

from simscan.core.errors import ScanError, WorkerLost

logger = logging.getLogger(__name__)

_STOP = object()


class Actor:
    """
    A thread that owns its state and is only reached through messages.

    Subclasses implement ``handle(message)``; messages sent with ``ask``
    get their return value (or exception) delivered back through a
    Future, messages sent with ``tell`` are fire-and-forget.
    """

    unavailable_error = WorkerLost

    def __init__(self, name: str, liveness_interval: float = 0.5):
        self._mailbox: "queue.SimpleQueue" = queue.SimpleQueue()
        self._stopping = False
        self._liveness_interval = liveness_interval
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)
        self._thread.start()

    def handle(self, message):
        raise NotImplementedError

    def on_stop(self):
        """Hook run on the actor thread after the loop exits"""

    def _loop(self):
        while True:
            envelope = self._mailbox.get()
            if envelope is _STOP:
                break

            message, reply = envelope
            if reply is not None and not reply.set_running_or_notify_cancel():
                logger.error("%s: reply channel dropped for %r", self.name, message)
                continue

            try:
                result = self.handle(message)
            except Exception as e:
                if reply is None:
                    logger.exception("%s: failed to handle %r", self.name, message)
                else:
                    reply.set_exception(e)
                continue

            if reply is not None:
                reply.set_result(result)

        try:
            self.on_stop()
        finally:
            self._drain()

    def _drain(self):
        """Fail requests that raced with shutdown"""
        while True:
            try:
                envelope = self._mailbox.get_nowait()
            except queue.Empty:
                return
            if envelope is _STOP:
                continue
            _, reply = envelope
            if reply is not None and reply.set_running_or_notify_cancel():
                reply.set_exception(self.unavailable_error(f"{self.name} has stopped"))

    def _check_running(self):
        if self._stopping or not self._thread.is_alive():
            raise self.unavailable_error(f"{self.name} is not running")

    def ask(self, message):
        """Send ``message`` and block until the actor replies"""
        if threading.current_thread() is self._thread:
            raise RuntimeError(f"{self.name} cannot wait on itself")
        self._check_running()

        reply = Future()
        self._mailbox.put((message, reply))

        while True:
            try:
                return reply.result(timeout=self._liveness_interval)
            except FutureTimeout:
                if not self._thread.is_alive():
                    raise self.unavailable_error(f"{self.name} terminated before replying")

    def tell(self, message) -> None:
        self._check_running()
        self._mailbox.put((message, None))

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the actor to exit once the messages already queued are handled"""
        if self._stopping:
            return
        self._stopping = True
        self._mailbox.put(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    @property
    def name(self) -> str:
        return self._thread.name

    @property
    def is_running(self) -> bool:
        return not self._stopping and self._thread.is_alive()
