"""Tests for submit-then-poll job handling."""

import pytest

from providers.errors import ErrorCode, ProviderError
from providers.jobs import wait_for_job
from providers.types import GenerationJob, JobStatus


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def poller(*statuses, error=None):
    snapshots = list(statuses)
    polls = []

    async def poll(job_id):
        polls.append(job_id)
        status = snapshots[min(len(polls), len(snapshots)) - 1]
        return GenerationJob(
            job_id=job_id,
            status=status,
            progress=100.0 if status == JobStatus.COMPLETED else 10.0 * len(polls),
            result_url="https://cdn.example/video.mp4" if status == JobStatus.COMPLETED else None,
            error=error if status == JobStatus.FAILED else None,
        )

    return poll, polls


@pytest.mark.asyncio
async def test_polls_until_completed():
    clock = FakeClock()
    poll, polls = poller(JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED)
    seen = []

    job = await wait_for_job(
        poll, "job-1", interval=5.0, timeout=60.0, on_progress=seen.append, sleep=clock.sleep, clock=clock
    )

    assert job.status == JobStatus.COMPLETED
    assert job.result_url == "https://cdn.example/video.mp4"
    assert len(polls) == 3
    assert [s.status for s in seen] == [JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED]
    assert clock.sleeps == [5.0, 5.0]


@pytest.mark.asyncio
async def test_async_progress_callback_is_awaited():
    clock = FakeClock()
    poll, _ = poller(JobStatus.PROCESSING, JobStatus.COMPLETED)
    seen = []

    async def on_progress(job):
        seen.append(job.progress)

    await wait_for_job(poll, "job-1", interval=1.0, timeout=60.0, on_progress=on_progress, sleep=clock.sleep, clock=clock)
    assert seen == [10.0, 100.0]


@pytest.mark.asyncio
async def test_failed_job_raises_its_error():
    clock = FakeClock()
    failure = ProviderError(ErrorCode.GENERATION_FAILED, "content moderated", False)
    poll, _ = poller(JobStatus.PROCESSING, JobStatus.FAILED, error=failure)

    with pytest.raises(ProviderError) as exc_info:
        await wait_for_job(poll, "job-1", interval=1.0, timeout=60.0, sleep=clock.sleep, clock=clock)
    assert exc_info.value is failure


@pytest.mark.asyncio
async def test_failed_job_without_error():
    clock = FakeClock()
    poll, _ = poller(JobStatus.FAILED)

    with pytest.raises(ProviderError) as exc_info:
        await wait_for_job(poll, "job-1", interval=1.0, timeout=60.0, sleep=clock.sleep, clock=clock)
    assert exc_info.value.code == ErrorCode.GENERATION_FAILED


@pytest.mark.asyncio
async def test_times_out():
    clock = FakeClock()
    poll, polls = poller(JobStatus.PROCESSING)

    with pytest.raises(ProviderError) as exc_info:
        await wait_for_job(poll, "job-1", interval=10.0, timeout=30.0, sleep=clock.sleep, clock=clock)
    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert exc_info.value.retryable is True
    assert len(polls) == 3
