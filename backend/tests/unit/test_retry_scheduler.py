"""Unit tests for the bounded retry scheduler."""

from datetime import date

import pytest

from services.retry_scheduler import FETCH_ACTIVITIES_JOB, RetryScheduler
from tasks.dispatcher import InlineDispatcher


@pytest.fixture
def scheduler(dispatcher):
    return RetryScheduler(
        dispatcher,
        max_attempts=3,
        delay_seconds=10,
        rate_limit_base_delay=60,
        rate_limit_max_retries=2,
    )


class TestScheduleIfEmpty:
    def test_dispatches_with_incremented_counter(self, scheduler, dispatcher, provider_account):
        scheduled = scheduler.schedule_if_empty(
            provider_account, attempt=0, start_date=date(2026, 1, 1)
        )

        assert scheduled is True
        assert provider_account.activities_fetch_pending is True
        job = dispatcher.scheduled[0]
        assert job.name == FETCH_ACTIVITIES_JOB
        assert job.delay_seconds == 10
        assert job.kwargs == {
            "provider_account_id": provider_account.id,
            "start_date": "2026-01-01",
            "end_date": None,
            "retry_count": 1,
            "lock_held": True,
        }

    def test_gives_up_at_max_attempts(self, scheduler, dispatcher, provider_account):
        provider_account.activities_fetch_pending = True

        assert scheduler.schedule_if_empty(provider_account, attempt=3) is False
        assert provider_account.activities_fetch_pending is False
        assert dispatcher.scheduled == []

    def test_overrides(self, scheduler, dispatcher, provider_account):
        assert scheduler.schedule_if_empty(provider_account, attempt=5, max_attempts=10, delay=30)
        assert dispatcher.scheduled[0].delay_seconds == 30

    def test_total_dispatches_bounded(self, scheduler, dispatcher, provider_account):
        attempt = 0
        while scheduler.schedule_if_empty(provider_account, attempt=attempt):
            attempt += 1
        assert len(dispatcher.scheduled) == 3

    def test_defaults_come_from_settings(self, provider_account):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("config.settings.ACTIVITY_FETCH_MAX_RETRIES", 1)
            mp.setattr("config.settings.ACTIVITY_FETCH_RETRY_DELAY_SECONDS", 7)
            scheduler = RetryScheduler(InlineDispatcher(eager=False))
        assert scheduler.max_attempts == 1
        assert scheduler.delay_seconds == 7


class TestRateLimit:
    def test_delay_doubles_per_attempt(self, scheduler):
        assert scheduler.rate_limit_delay(0) == 60
        assert scheduler.rate_limit_delay(1) == 120
        assert scheduler.rate_limit_delay(2) == 240

    def test_delay_respects_retry_after(self, scheduler):
        assert scheduler.rate_limit_delay(0, retry_after=300) == 300
        assert scheduler.rate_limit_delay(3, retry_after=10) == 480

    def test_schedule_rate_limited(self, scheduler, dispatcher, provider_account):
        assert scheduler.schedule_rate_limited(provider_account, attempt=1, retry_after=30)
        job = dispatcher.scheduled[0]
        assert job.delay_seconds == 120
        assert job.kwargs["retry_count"] == 2

    def test_rate_limit_bound(self, scheduler, dispatcher, provider_account):
        assert scheduler.schedule_rate_limited(provider_account, attempt=2) is False
        assert provider_account.activities_fetch_pending is False
        assert dispatcher.scheduled == []
