"""
In-process background job queue.

Ledger operations announce changes with ``add_job`` and return immediately;
handlers run later, each with its own database session, either from
``drain()`` or from the asyncio loop started in the application lifespan.
"""

import asyncio
import logging
import threading
import traceback
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional

from sqlalchemy.orm import Session

from ordaro.core.config import settings
from ordaro.db.session import SessionLocal

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Job types emitted by the inventory core."""
    INVENTORY_BATCH_CHANGE = "inventory.batch_change"
    INGREDIENT_COST_UPDATE = "ingredient.cost_update"
    RECIPE_COST_UPDATE = "recipe.cost_update"
    MENU_COST_UPDATE = "menu.cost_update"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Background job record"""
    id: str
    job_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_retries: int = 3
    created_at: datetime = field(default_factory=_utcnow)
    available_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


JobHandler = Callable[[Session, Job], Optional[Dict[str, Any]]]


class JobQueue:
    """
    FIFO job queue with per-job retries.
    Thread-safe: request threads enqueue while the worker loop drains.
    """

    MAX_HISTORY = 1000  # Finished jobs kept for get_job()

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        max_retries: Optional[int] = None,
        enabled: Optional[bool] = None,
        retry_backoff_seconds: float = 2.0,
        max_history: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.max_retries = settings.job_max_retries if max_retries is None else max_retries
        self.enabled = settings.job_queue_enabled if enabled is None else enabled
        self.retry_backoff_seconds = retry_backoff_seconds
        self.max_history = self.MAX_HISTORY if max_history is None else max_history
        self.handlers: Dict[str, JobHandler] = {}
        self.history: Dict[str, Job] = {}
        self.stats = defaultdict(int)
        self._pending: Deque[Job] = deque()
        self._lock = threading.Lock()
        self._worker: Optional[asyncio.Task] = None
        self.running = False

    def register(self, job_type: str, handler: JobHandler) -> None:
        self.handlers[str(getattr(job_type, "value", job_type))] = handler

    def add_job(self, job_type: str, payload: Dict[str, Any]) -> Optional[Job]:
        """Enqueue a job. Returns None when the queue is disabled."""
        job_type = str(getattr(job_type, "value", job_type))
        if not self.enabled:
            logger.debug(f"Job queue disabled, dropping {job_type}")
            return None

        job = Job(
            id=str(uuid.uuid4()),
            job_type=job_type,
            payload=dict(payload),
            max_retries=self.max_retries,
        )
        with self._lock:
            self._pending.append(job)
            self.history[job.id] = job
            self.stats["jobs_enqueued"] += 1

        logger.debug(f"Job enqueued: {job_type} ({job.id}) {job.payload}")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.history.get(job_id)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _next_ready(self) -> Optional[Job]:
        now = _utcnow()
        with self._lock:
            for _ in range(len(self._pending)):
                job = self._pending.popleft()
                if job.available_at <= now:
                    return job
                self._pending.append(job)
        return None

    def drain(self, max_jobs: Optional[int] = None) -> int:
        """Process ready jobs, including ones enqueued by handlers. Returns the count."""
        processed = 0
        while max_jobs is None or processed < max_jobs:
            job = self._next_ready()
            if job is None:
                break
            self._process(job)
            processed += 1
        return processed

    def _process(self, job: Job) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = _utcnow()
        job.attempts += 1
        self.stats["jobs_started"] += 1

        db = self.session_factory()
        try:
            handler = self.handlers.get(job.job_type)
            if not handler:
                raise ValueError(f"Unknown job type: {job.job_type}")

            job.result = handler(db, job)
            job.status = JobStatus.COMPLETED
            job.completed_at = _utcnow()
            self.stats["jobs_completed"] += 1
            logger.info(f"Job completed: {job.job_type} ({job.id})")

        except Exception as e:
            db.rollback()
            job.error_message = str(e)

            if job.attempts < job.max_retries:
                job.status = JobStatus.PENDING
                job.available_at = _utcnow() + timedelta(
                    seconds=min(60.0, self.retry_backoff_seconds * 2 ** (job.attempts - 1))
                )
                with self._lock:
                    self._pending.append(job)
                self.stats["jobs_retried"] += 1
                logger.warning(f"Job {job.job_type} ({job.id}) failed, retry {job.attempts}/{job.max_retries}: {e}")
            else:
                job.status = JobStatus.FAILED
                job.completed_at = _utcnow()
                self.stats["jobs_failed"] += 1
                logger.error(f"Job {job.job_type} ({job.id}) failed permanently: {e}\n{traceback.format_exc()}")
        finally:
            db.close()

        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            self._trim_history()

    def _trim_history(self) -> None:
        """Drop the oldest finished jobs once history exceeds max_history."""
        with self._lock:
            excess = len(self.history) - self.max_history
            if excess <= 0:
                return
            finished = [
                job_id for job_id, job in self.history.items()
                if job.status in (JobStatus.COMPLETED, JobStatus.FAILED)
            ]
            for job_id in finished[:excess]:
                del self.history[job_id]

    async def run_forever(self, poll_interval: Optional[float] = None) -> None:
        """Worker loop; handlers run in a thread so the event loop stays free."""
        poll_interval = settings.job_poll_interval_seconds if poll_interval is None else poll_interval
        logger.info("Job worker started")
        while self.running:
            try:
                processed = await asyncio.to_thread(self.drain)
                if not processed:
                    await asyncio.sleep(poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Job worker error: {e}")
                self.stats["worker_errors"] += 1
                await asyncio.sleep(poll_interval)
        logger.info("Job worker stopped")

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._worker = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        self.running = False
        if self._worker:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            **dict(self.stats),
            "pending_jobs": self.pending_count(),
            "running": self.running,
        }


job_queue = JobQueue()
