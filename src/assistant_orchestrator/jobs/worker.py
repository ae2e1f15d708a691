"""Polling worker that runs queued jobs through registered handlers."""

from __future__ import annotations

import logging
import random
import signal
import socket
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from assistant_orchestrator.jobs.queue import JobQueue, JobRecord

logger = logging.getLogger(__name__)

JobHandler = Callable[[dict[str, Any]], Any]


class JobWorker:
    """Claim jobs one at a time; failed jobs retry with capped exponential backoff."""

    def __init__(
        self,
        queue: JobQueue,
        handlers: dict[str, JobHandler],
        *,
        worker_id: str | None = None,
        poll_interval_s: float = 1.0,
        max_attempts: int = 5,
        retry_base_s: float = 5.0,
        retry_max_s: float = 600.0,
    ) -> None:
        self.queue = queue
        self.handlers = dict(handlers)
        self.worker_id = worker_id or f"{socket.gethostname()}:{id(self):x}"
        self.poll_interval_s = poll_interval_s
        self.max_attempts = max_attempts
        self.retry_base_s = retry_base_s
        self.retry_max_s = retry_max_s
        self._stop = threading.Event()

    def run_once(self) -> JobRecord | None:
        """Claim and process a single job; returns the claimed job or ``None``."""
        job = self.queue.claim(self.worker_id)
        if job is None:
            return None

        handler = self.handlers.get(job.kind)
        if handler is None:
            logger.error("event=job_unknown_kind job_id=%s kind=%s", job.id, job.kind)
            self.queue.fail(job.id, f"No handler for job kind {job.kind}")
            return job

        started_at = time.perf_counter()
        try:
            handler(job.payload)
        except Exception as exc:  # noqa: BLE001
            self._handle_failure(job, exc)
            return job

        self.queue.complete(job.id)
        logger.info(
            "event=job_done job_id=%s kind=%s attempts=%d duration_ms=%.2f",
            job.id,
            job.kind,
            job.attempts,
            (time.perf_counter() - started_at) * 1000.0,
        )
        return job

    def drain(self, max_jobs: int = 1000) -> int:
        """Process ready jobs until the queue is empty; used by tests and one-shot runs."""
        processed = 0
        while processed < max_jobs and self.run_once() is not None:
            processed += 1
        return processed

    def run_forever(self) -> None:
        self._install_signal_handlers()
        logger.info(
            "event=worker_started worker_id=%s kinds=%s", self.worker_id, sorted(self.handlers)
        )
        while not self._stop.is_set():
            job = self.run_once()
            if job is None:
                self._stop.wait(self.poll_interval_s)
        logger.info("event=worker_stopped worker_id=%s", self.worker_id)

    def stop(self) -> None:
        self._stop.set()

    def retry_delay_s(self, attempts: int) -> float:
        delay = min(self.retry_base_s * (2 ** max(attempts - 1, 0)), self.retry_max_s)
        return delay * random.uniform(0.8, 1.2)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        reason = f"{type(exc).__name__}: {exc}"
        if job.attempts >= self.max_attempts:
            logger.error(
                "event=job_dead job_id=%s kind=%s attempts=%d reason=%s",
                job.id,
                job.kind,
                job.attempts,
                reason,
            )
            self.queue.fail(job.id, reason)
            return

        retry_at = datetime.now(UTC) + timedelta(seconds=self.retry_delay_s(job.attempts))
        logger.warning(
            "event=job_retry job_id=%s kind=%s attempts=%d retry_at=%s reason=%s",
            job.id,
            job.kind,
            job.attempts,
            retry_at.isoformat(),
            reason,
        )
        self.queue.fail(job.id, reason, retry_at=retry_at)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return

        def _request_stop(signum: int, _frame: Any) -> None:
            logger.info("event=worker_stop_requested signal=%s", signum)
            self._stop.set()

        signal.signal(signal.SIGINT, _request_stop)
        signal.signal(signal.SIGTERM, _request_stop)
