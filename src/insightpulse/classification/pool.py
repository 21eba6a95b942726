"""Bounded pool of classification worker threads.

Run with ``python -m insightpulse.classification.pool``.
"""
from __future__ import annotations
import logging
import os
import signal
import socket
import threading
from typing import Callable

from insightpulse.classification.worker import ClassificationWorker

logger = logging.getLogger(__name__)


class WorkerPool:
    def __init__(self, make_worker: Callable[[str], ClassificationWorker], concurrency: int = 4,
                 idle_sleep: float = 0.5, name: str | None = None):
        self.make_worker = make_worker
        self.concurrency = max(1, concurrency)
        self.idle_sleep = idle_sleep
        self.name = name or f"{socket.gethostname()}-{os.getpid()}"
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self):
        if self.is_running:
            return
        self._stop.clear()
        self._threads = []
        for i in range(self.concurrency):
            worker = self.make_worker(f"{self.name}-{i}")
            t = threading.Thread(target=self._loop, args=(worker,), name=worker.worker_id, daemon=True)
            t.start()
            self._threads.append(t)
        logger.info(f"Classification pool {self.name} started with {self.concurrency} workers")

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        for t in self._threads:
            t.join(timeout=timeout)
        logger.info(f"Classification pool {self.name} stopped")

    def wait(self):
        while not self._stop.is_set():
            self._stop.wait(1.0)

    def _loop(self, worker: ClassificationWorker):
        while not self._stop.is_set():
            try:
                if not worker.run_once():
                    self._stop.wait(self.idle_sleep)
            except Exception as e:
                # the record keeps its lease and is reclaimed by the lease sweep
                logger.exception(f"Worker {worker.worker_id} iteration failed: {e}")
                self._stop.wait(self.idle_sleep)


def main():
    from insightpulse.config import get_settings
    from insightpulse.pipeline import build_pipeline

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    pipeline = build_pipeline(settings)
    pool = WorkerPool(pipeline.worker, settings.worker_concurrency, settings.worker_idle_sleep_seconds)

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}; stopping")
        pool.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)
    pool.start()
    pool.wait()


if __name__ == "__main__":
    main()
