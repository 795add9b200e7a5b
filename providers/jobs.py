"""Submit-then-poll helper shared by job-based adapters."""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable

from providers.errors import ErrorCode, ProviderError
from providers.types import GenerationJob, JobStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[GenerationJob], Any]


async def wait_for_job(
    poll: Callable[[str], Awaitable[GenerationJob]],
    job_id: str,
    *,
    interval: float,
    timeout: float,
    on_progress: ProgressCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    label: str = "job",
) -> GenerationJob:
    """Poll ``job_id`` until it completes, fails, or ``timeout`` seconds pass.

    ``on_progress`` sees every polled snapshot and may be sync or async.
    A failed job raises its carried error; running out of time raises a
    retryable TIMEOUT.
    """
    started = clock()

    while clock() - started < timeout:
        job = await poll(job_id)

        if on_progress is not None:
            result = on_progress(job)
            if inspect.isawaitable(result):
                await result

        if job.status == JobStatus.COMPLETED:
            return job
        if job.status == JobStatus.FAILED:
            raise job.error or ProviderError(ErrorCode.GENERATION_FAILED, f"{label} failed", False)

        logger.debug(
            "%s %s status: %s (%s%%, %.0fs)",
            label,
            job_id,
            job.status.value,
            "?" if job.progress is None else f"{job.progress:.0f}",
            clock() - started,
        )
        await sleep(interval)

    raise ProviderError(ErrorCode.TIMEOUT, f"{label} {job_id} timed out after {timeout:.0f}s", True)
