"""Background execution of notification jobs."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


class DispatchWorker:
    """Runs dispatch jobs on a thread pool so ingestion never waits on the network."""

    def __init__(self, workers: int = 4) -> None:
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch")
        self._futures: Dict[str, Future[Any]] = {}
        self._futures_lock = Lock()

    def submit(self, job: Callable[[], Any]) -> str:
        """Schedule ``job`` and return an identifier usable with :meth:`wait`."""
        job_id = str(uuid4())
        future = self.executor.submit(self._run, job_id, job)
        with self._futures_lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _f, jid=job_id: self._clear_future(jid))
        return job_id

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Any:
        """Block until the job finishes; unknown or finished jobs return ``None``."""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is None:
            return None
        return future.result(timeout=timeout)

    def pending(self) -> int:
        with self._futures_lock:
            return len(self._futures)

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting jobs; queued jobs are cancelled unless ``wait`` is set."""
        self.executor.shutdown(wait=wait, cancel_futures=not wait)

    def _clear_future(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    @staticmethod
    def _run(job_id: str, job: Callable[[], Any]) -> Any:
        try:
            return job()
        except Exception:
            logger.exception("Dispatch job failed", extra={"job_id": job_id})
            raise
