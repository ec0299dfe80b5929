"""Worker pool draining the job queue.

Job ids travel over an in-process queue; the durable record is the jobs
table, so a lost queue entry is recovered by ReadinessEngine.recover() on
the next start. Workers hold no lock while calling external ports.
"""

import logging
import queue
import threading

from readiness.workflow.engine import ReadinessEngine

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.5


class WorkerPool:
    def __init__(self, engine: ReadinessEngine, worker_count: int = 2):
        self.engine = engine
        self.worker_count = max(1, worker_count)
        self.jobs: queue.Queue[str] = queue.Queue()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        engine.set_dispatcher(self.submit)

    def submit(self, job_id: str) -> None:
        self.jobs.put(job_id)
        logger.debug(f"[WORKER] queued {job_id} (depth={self.jobs.qsize()})")

    @property
    def running(self) -> int:
        return sum(1 for t in self._threads if t.is_alive())

    def start(self) -> None:
        """Start worker threads and re-enqueue jobs left in requested."""
        self._stop.clear()
        for i in range(self.worker_count):
            thread = threading.Thread(target=self._loop, name=f"readiness-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"[WORKER] Started {self.worker_count} workers")
        self.engine.recover()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("[WORKER] Stopped")

    def run_pending(self) -> int:
        """Process every queued job in the calling thread. Returns jobs processed."""
        processed = 0
        while True:
            try:
                job_id = self.jobs.get_nowait()
            except queue.Empty:
                return processed
            self._process(job_id)
            processed += 1

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                job_id = self.jobs.get(timeout=POLL_INTERVAL_SECONDS)
            except queue.Empty:
                continue
            self._process(job_id)

    def _process(self, job_id: str) -> None:
        try:
            self.engine.run_job(job_id)
        except Exception:
            # run_job records failures on the job; anything reaching here is a store error
            logger.exception(f"[WORKER] {job_id}: crashed")
        finally:
            self.jobs.task_done()
