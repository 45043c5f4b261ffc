"""Delayed re-dispatch of activity fetches that came back empty or throttled.

Brokerages often need 30-60 seconds to index a freshly linked connection,
so the first fetch returns nothing.  Rather than sleeping, the fetch job is
re-dispatched with a delay and an incremented retry counter carried in the
job payload.  After ``max_attempts`` the scheduler gives up: a brand-new
empty account is indistinguishable from a genuinely empty one, so ending
in the empty state is safe.
"""

import logging
from datetime import date

from config import settings
from models import ProviderAccount
from tasks.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)

FETCH_ACTIVITIES_JOB = "tasks.jobs.fetch_activities_job"


class RetryScheduler:
    """Bounded delayed re-dispatch of ``fetch_activities_job``."""

    def __init__(
        self,
        dispatcher: JobDispatcher,
        max_attempts: int | None = None,
        delay_seconds: int | None = None,
        rate_limit_base_delay: int | None = None,
        rate_limit_max_retries: int | None = None,
    ):
        self.dispatcher = dispatcher
        self.max_attempts = (
            settings.ACTIVITY_FETCH_MAX_RETRIES if max_attempts is None else max_attempts
        )
        self.delay_seconds = (
            settings.ACTIVITY_FETCH_RETRY_DELAY_SECONDS if delay_seconds is None else delay_seconds
        )
        self.rate_limit_base_delay = (
            settings.RATE_LIMIT_BASE_DELAY_SECONDS
            if rate_limit_base_delay is None
            else rate_limit_base_delay
        )
        self.rate_limit_max_retries = (
            settings.RATE_LIMIT_MAX_RETRIES
            if rate_limit_max_retries is None
            else rate_limit_max_retries
        )

    def _dispatch(
        self,
        provider_account: ProviderAccount,
        delay: int,
        attempt: int,
        start_date: date | None,
        end_date: date | None,
    ) -> None:
        self.dispatcher.enqueue_in(
            delay,
            FETCH_ACTIVITIES_JOB,
            provider_account_id=provider_account.id,
            start_date=start_date.isoformat() if start_date else None,
            end_date=end_date.isoformat() if end_date else None,
            retry_count=attempt + 1,
            lock_held=True,
        )

    def schedule_if_empty(
        self,
        provider_account: ProviderAccount,
        attempt: int,
        max_attempts: int | None = None,
        delay: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> bool:
        """Re-dispatch the fetch for an account that returned no activity.

        Args:
            provider_account: The account whose fetch came back empty
            attempt: Retry count of the fetch that just ran (0 = first fetch)
            max_attempts: Retry bound (default settings.ACTIVITY_FETCH_MAX_RETRIES)
            delay: Seconds to wait (default settings.ACTIVITY_FETCH_RETRY_DELAY_SECONDS)
            start_date: Fetch window start carried to the follow-up
            end_date: Fetch window end carried to the follow-up

        Returns:
            True if a follow-up was dispatched, False if retries are exhausted.
        """
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.delay_seconds if delay is None else delay

        if attempt >= max_attempts:
            logger.warning(
                "No activity for provider account %s after %d attempts, giving up",
                provider_account.id, attempt,
            )
            provider_account.activities_fetch_pending = False
            return False

        provider_account.activities_fetch_pending = True
        self._dispatch(provider_account, delay, attempt, start_date, end_date)
        logger.info(
            "No activity yet for provider account %s, retry %d/%d in %ds",
            provider_account.id, attempt + 1, max_attempts, delay,
        )
        return True

    def rate_limit_delay(self, attempt: int, retry_after: int | None = None) -> int:
        """Wait at least one full throttle window, doubling per attempt."""
        backoff = self.rate_limit_base_delay * (2 ** attempt)
        return max(retry_after or 0, backoff)

    def schedule_rate_limited(
        self,
        provider_account: ProviderAccount,
        attempt: int,
        retry_after: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> bool:
        """Re-dispatch a fetch the provider throttled, with exponential backoff.

        Returns:
            True if a follow-up was dispatched, False if retries are exhausted.
        """
        if attempt >= self.rate_limit_max_retries:
            logger.warning(
                "Provider account %s still rate limited after %d attempts, giving up",
                provider_account.id, attempt,
            )
            provider_account.activities_fetch_pending = False
            return False

        delay = self.rate_limit_delay(attempt, retry_after)
        provider_account.activities_fetch_pending = True
        self._dispatch(provider_account, delay, attempt, start_date, end_date)
        logger.info(
            "Provider account %s rate limited, retry %d/%d in %ds",
            provider_account.id, attempt + 1, self.rate_limit_max_retries, delay,
        )
        return True
