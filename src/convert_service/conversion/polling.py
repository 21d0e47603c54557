import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from .errors import ConversionFailed, PollCancelled, PollTimeout
from .models import JobStatus

logger = logging.getLogger(__name__)


class PolledJob(Protocol):
    job_id: str
    status: str
    error_message: str | None


J = TypeVar("J", bound=PolledJob)


class CancellationToken:
    """Cooperative cancellation for poll loops and batches."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; return True if cancelled meanwhile."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


async def poll_until_terminal(
    fetch: Callable[[], Awaitable[J]],
    *,
    interval: float,
    max_attempts: int,
    cancel: CancellationToken | None = None,
) -> J:
    """Call ``fetch`` at a fixed interval until the job is finished or failed.

    Returns the finished job, raises ConversionFailed with the stored error
    message, PollTimeout once ``max_attempts`` calls came back non-terminal,
    or PollCancelled when the token fires. No call is issued after any of
    these outcomes.
    """
    token = cancel or CancellationToken()
    for attempt in range(1, max_attempts + 1):
        if token.cancelled:
            raise PollCancelled("polling cancelled")
        job = await fetch()
        if job.status == JobStatus.FINISHED:
            return job
        if job.status == JobStatus.ERROR:
            raise ConversionFailed(job.error_message or "Conversion failed")
        logger.debug("Job %s still %s (attempt %d/%d)", job.job_id, job.status, attempt, max_attempts)
        if attempt < max_attempts and await token.sleep(interval):
            raise PollCancelled("polling cancelled")
    raise PollTimeout(f"no terminal status after {max_attempts} attempts")
