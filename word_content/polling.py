"""Bounded polling of asynchronous image jobs."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, wait_fixed

from .errors import GenerationFailed, GenerationTimeout
from .models import ImageJob, JobStatus

log = structlog.get_logger()

StatusFetcher = Callable[[str], Awaitable[ImageJob]]


class JobPoller:
    """Poll a job until it reaches a terminal status or the attempt budget runs out.

    The first status check runs immediately; consecutive checks are separated by
    a fixed ``interval``. At most ``max_attempts`` checks are made. ``sleep`` and
    ``clock`` can be swapped out so tests run without real delays.
    """

    def __init__(self, fetch_status: StatusFetcher, interval: float = 2.0, max_attempts: int = 30,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 provider: Optional[str] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.clock = clock
        self.provider = provider

    async def wait(self, job: ImageJob) -> ImageJob:
        """Return the succeeded job, or raise ``GenerationFailed`` / ``GenerationTimeout``."""
        started = self.clock()
        attempts = 0

        async def check() -> ImageJob:
            nonlocal attempts
            attempts += 1
            snapshot = await self.fetch_status(job.job_id)
            current = snapshot.model_copy(update={"job_id": job.job_id, "attempts": attempts})
            log.info("Image job status", job_id=job.job_id, attempt=attempts,
                     status=current.status.value, provider=self.provider)
            return current

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda current: not current.is_terminal),
            sleep=self.sleep,
        )

        try:
            current = await retrying(check)
        except RetryError as e:
            elapsed = self.clock() - started
            last = e.last_attempt.result()
            log.error("Image job timed out", job_id=job.job_id, attempts=attempts,
                      last_status=last.status.value, elapsed_s=round(elapsed, 2), provider=self.provider)
            raise GenerationTimeout(
                "Image generation timed out",
                provider=self.provider,
                detail=f"job {job.job_id} still {last.status.value} after {attempts} checks",
            ) from None

        if current.status == JobStatus.SUCCEEDED:
            if not current.result_url:
                raise GenerationFailed(
                    "Image job succeeded without output", provider=self.provider, detail=job.job_id
                )
            log.info("Image job succeeded", job_id=job.job_id, attempts=attempts,
                     elapsed_s=round(self.clock() - started, 2), provider=self.provider)
            return current

        detail = current.error_detail or f"job {job.job_id} {current.status.value}"
        log.error("Image job ended without output", job_id=job.job_id, status=current.status.value,
                  detail=detail, provider=self.provider)
        raise GenerationFailed(f"Image generation {current.status.value}", provider=self.provider, detail=detail)
