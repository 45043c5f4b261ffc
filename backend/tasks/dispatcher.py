"""Job dispatch with optional delay.

Units of work never sleep.  "Try again in N seconds" is expressed by
handing the job to a dispatcher with a delay.  Two implementations:

- :class:`RQDispatcher` enqueues onto a Redis-backed RQ queue.  Delayed
  jobs go to RQ's scheduled registry and are picked up by a worker
  started with ``rq worker --with-scheduler``.
- :class:`InlineDispatcher` runs immediate jobs synchronously in-process
  and holds delayed jobs until :meth:`InlineDispatcher.run_due` is called,
  which :class:`tasks.runtime.DelayedJobRunner` does on a timer when no
  Redis is configured. Tests call it directly.

Jobs may be given as callables or dotted import paths
(``"tasks.jobs.fetch_activities_job"``).
"""

import importlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol, Union

from models import generate_uuid

logger = logging.getLogger(__name__)

JobRef = Union[str, Callable[..., Any]]


def resolve_job(job: JobRef) -> Callable[..., Any]:
    """Turn a dotted path into the callable it names."""
    if callable(job):
        return job
    module_path, _, attr = job.rpartition(".")
    if not module_path:
        raise ValueError(f"Job path must be module.function, got {job!r}")
    return getattr(importlib.import_module(module_path), attr)


def job_name(job: JobRef) -> str:
    if isinstance(job, str):
        return job
    return f"{job.__module__}.{job.__qualname__}"


class JobDispatcher(Protocol):
    """Anything that can run a job now or later."""

    def enqueue(self, job: JobRef, **kwargs) -> str:
        """Dispatch a job for immediate execution.  Returns a job id."""
        ...

    def enqueue_in(self, delay_seconds: int, job: JobRef, **kwargs) -> str:
        """Dispatch a job to run after ``delay_seconds``.  Returns a job id."""
        ...


class RQDispatcher:
    """Dispatch onto an RQ queue."""

    def __init__(self, queue):
        self.queue = queue

    @classmethod
    def from_url(cls, redis_url: str, queue_name: str = "default") -> "RQDispatcher":
        from redis import Redis
        from rq import Queue

        connection = Redis.from_url(redis_url)
        return cls(Queue(queue_name, connection=connection))

    def enqueue(self, job: JobRef, **kwargs) -> str:
        rq_job = self.queue.enqueue(job, kwargs=kwargs)
        logger.debug("Enqueued %s as %s", job_name(job), rq_job.id)
        return rq_job.id

    def enqueue_in(self, delay_seconds: int, job: JobRef, **kwargs) -> str:
        rq_job = self.queue.enqueue_in(timedelta(seconds=delay_seconds), job, kwargs=kwargs)
        logger.debug("Scheduled %s as %s in %ds", job_name(job), rq_job.id, delay_seconds)
        return rq_job.id


@dataclass
class ScheduledJob:
    """A job held by :class:`InlineDispatcher` until its run time."""

    id: str
    job: JobRef
    kwargs: dict
    run_at: datetime
    delay_seconds: int = 0

    @property
    def name(self) -> str:
        return job_name(self.job)


@dataclass
class InlineDispatcher:
    """In-process dispatcher.

    Args:
        eager: Run immediate jobs synchronously.  With ``eager=False``
            immediate jobs are only recorded, which lets callers (and tests)
            inspect what would have been dispatched.
        clock: Returns the current UTC time.
    """

    eager: bool = True
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))
    scheduled: list[ScheduledJob] = field(default_factory=list)
    dispatched: list[ScheduledJob] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def enqueue(self, job: JobRef, **kwargs) -> str:
        record = ScheduledJob(id=generate_uuid(), job=job, kwargs=kwargs, run_at=self.clock())
        self.dispatched.append(record)
        if self.eager:
            self._run(record)
        return record.id

    def enqueue_in(self, delay_seconds: int, job: JobRef, **kwargs) -> str:
        record = ScheduledJob(
            id=generate_uuid(),
            job=job,
            kwargs=kwargs,
            run_at=self.clock() + timedelta(seconds=delay_seconds),
            delay_seconds=delay_seconds,
        )
        with self._lock:
            self.scheduled.append(record)
        logger.debug("Holding %s for %ds", record.name, delay_seconds)
        return record.id

    def _run(self, record: ScheduledJob) -> Any:
        logger.debug("Running %s inline", record.name)
        return resolve_job(record.job)(**record.kwargs)

    def run_due(self, now: datetime | None = None, raise_errors: bool = True) -> int:
        """Run every held job whose time has come.

        Args:
            now: Cut-off time (defaults to the clock).
            raise_errors: With ``False`` a failing job is logged and the
                remaining due jobs still run.

        Returns:
            Number of jobs run.
        """
        now = now or self.clock()
        with self._lock:
            due = [r for r in self.scheduled if r.run_at <= now]
            self.scheduled = [r for r in self.scheduled if r.run_at > now]
        for record in sorted(due, key=lambda r: r.run_at):
            self.dispatched.append(record)
            try:
                self._run(record)
            except Exception:
                if raise_errors:
                    raise
                logger.exception("Held job %s (%s) failed", record.name, record.id)
        return len(due)

    def drain(self, max_rounds: int = 100) -> int:
        """Run held jobs regardless of delay until none remain.

        Jobs that reschedule themselves are picked up in the next round.

        Returns:
            Total number of jobs run.
        """
        total = 0
        for _ in range(max_rounds):
            if not self.scheduled:
                break
            latest = max(r.run_at for r in self.scheduled)
            total += self.run_due(latest)
        return total
