"""Process-wide dispatcher and lock store, chosen from settings.

Without ``REDIS_URL`` everything runs in the API process: immediate jobs
run inline and a :class:`DelayedJobRunner` thread fires held jobs (retry
and backoff follow-ups) once their delay has passed.
"""

import logging
import threading
from functools import lru_cache

from config import settings
from tasks.dispatcher import InlineDispatcher, JobDispatcher, RQDispatcher
from tasks.locks import InProcessLockStore, LockStore, RedisLockStore

logger = logging.getLogger(__name__)


@lru_cache
def get_dispatcher() -> JobDispatcher:
    """RQ when REDIS_URL is set, otherwise an eager in-process dispatcher (cached)."""
    if settings.REDIS_URL:
        logger.info("Job dispatch: RQ queue %r", settings.QUEUE_NAME)
        return RQDispatcher.from_url(settings.REDIS_URL, settings.QUEUE_NAME)
    logger.info("Job dispatch: in-process (REDIS_URL not set)")
    return InlineDispatcher()


@lru_cache
def get_lock_store() -> LockStore:
    """Redis locks when REDIS_URL is set, otherwise in-memory locks (cached)."""
    if settings.REDIS_URL:
        return RedisLockStore.from_url(settings.REDIS_URL)
    return InProcessLockStore()


class DelayedJobRunner(threading.Thread):
    """Daemon thread that runs an :class:`InlineDispatcher`'s due jobs.

    A failing job is logged and does not stop the thread.
    """

    def __init__(self, dispatcher: InlineDispatcher, interval: float = 1.0):
        super().__init__(name="delayed-job-runner", daemon=True)
        self.dispatcher = dispatcher
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.dispatcher.run_due(raise_errors=False)
            except Exception:
                logger.exception("Delayed job runner pass failed")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stopped.set()
        if self.is_alive():
            self.join(timeout)


def start_delayed_job_runner(interval: float | None = None) -> DelayedJobRunner | None:
    """Start firing held jobs when the process dispatches in-process.

    Returns:
        The running thread, or ``None`` when jobs go to RQ (whose
        ``--with-scheduler`` worker handles delays).
    """
    dispatcher = get_dispatcher()
    if not isinstance(dispatcher, InlineDispatcher):
        return None
    runner = DelayedJobRunner(
        dispatcher,
        settings.INLINE_SCHEDULER_INTERVAL_SECONDS if interval is None else interval,
    )
    runner.start()
    logger.info("Delayed job runner started (every %ss)", runner.interval)
    return runner
