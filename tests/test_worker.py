"""Tests for the ARQ wiring: job enqueueing and the worker entrypoint."""
from datetime import timedelta

import pytest

from hookrelay import worker
from hookrelay.services.delivery_worker import JobOutcome
from hookrelay.services.job_queue import DELIVERY_FUNCTION, ArqJobQueue, DeliveryJob


class FakeArqRedis:
    """Records enqueue_job calls; returns None for a job id it has already seen, like ARQ."""

    def __init__(self):
        self.calls: list[tuple[tuple, dict]] = []

    async def enqueue_job(self, function, *args, **kwargs):
        seen = any(call[1]["_job_id"] == kwargs["_job_id"] for call in self.calls)
        self.calls.append(((function, *args), kwargs))
        return None if seen else object()


class StubDeliveryWorker:
    def __init__(self, outcome: JobOutcome | None = None, error: Exception | None = None):
        self.outcome = outcome
        self.error = error
        self.jobs: list[DeliveryJob] = []

    async def process(self, job: DeliveryJob) -> JobOutcome:
        self.jobs.append(job)
        if self.error is not None:
            raise self.error
        return self.outcome


def make_job(attempt: int = 1) -> DeliveryJob:
    return DeliveryJob(
        delivery_id="d",
        endpoint_id="ep-1",
        organisation_id="org-1",
        event_type="meeting.ended",
        payload={"meeting_id": "m-1"},
        attempt=attempt,
    )


class TestArqJobQueue:
    @pytest.mark.asyncio
    async def test_first_attempt_runs_immediately(self):
        redis = FakeArqRedis()

        await ArqJobQueue(redis).enqueue(make_job())

        (args, kwargs), = redis.calls
        assert args == (DELIVERY_FUNCTION, make_job().model_dump())
        assert kwargs == {"_job_id": "d:1", "_defer_by": None}

    @pytest.mark.asyncio
    async def test_retry_is_deferred(self):
        redis = FakeArqRedis()

        await ArqJobQueue(redis).enqueue(make_job(attempt=2), delay_ms=5000)

        (_, kwargs), = redis.calls
        assert kwargs["_job_id"] == "d:2"
        assert kwargs["_defer_by"] == timedelta(milliseconds=5000)

    @pytest.mark.asyncio
    async def test_same_attempt_enqueued_twice_is_tolerated(self):
        redis = FakeArqRedis()
        queue = ArqJobQueue(redis)

        await queue.enqueue(make_job())
        await queue.enqueue(make_job())

        assert [kwargs["_job_id"] for _, kwargs in redis.calls] == ["d:1", "d:1"]


class TestDeliverWebhook:
    @pytest.mark.asyncio
    async def test_returns_outcome_value(self):
        stub = StubDeliveryWorker(outcome=JobOutcome.DELIVERED)

        result = await worker.deliver_webhook({"delivery_worker": stub}, make_job().model_dump())

        assert result == "delivered"
        assert stub.jobs == [make_job()]

    @pytest.mark.asyncio
    async def test_crash_is_reported_and_reraised(self, monkeypatch):
        reported = []
        monkeypatch.setattr(worker, "capture_exception", lambda *args: reported.append(args))
        stub = StubDeliveryWorker(error=RuntimeError("database unreachable"))

        with pytest.raises(RuntimeError, match="database unreachable"):
            await worker.deliver_webhook({"delivery_worker": stub}, make_job().model_dump())

        assert len(reported) == 1

    def test_settings_register_delivery_function(self):
        assert [f.__name__ for f in worker.WorkerSettings.functions] == [DELIVERY_FUNCTION]
        assert worker.WorkerSettings.max_tries == 1
