import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Collection, Iterable
from typing import Any

from . import formats
from .errors import (
    ConversionFailed,
    FileNotFound,
    JobNotFound,
    PollCancelled,
    PollTimeout,
    ProviderError,
    TooLarge,
)
from .interfaces import ProviderGateway
from .models import BatchEntry, ConversionJob, Failed, JobStatus, Ok, UploadedFile
from .polling import CancellationToken, poll_until_terminal
from .remote import RemoteState, map_state, upload_task
from .tracker import JobTracker
from .uploads import UploadStore
from .validation import validate

logger = logging.getLogger(__name__)

CHUNK = 1024 * 1024

# Extra life for OCR documents: the job record is rewritten after its document is stored.
ARTIFACT_GRACE = 60.0


def files_url(file_id: str) -> str:
    return f"/files/{file_id}"


def render_text_document(text: str, source_name: str) -> str:
    body = text.strip() or "_No text was recognized._"
    return f"# Text extracted from {source_name}\n\n{body}\n"


class ConversionService:
    """Core domain service orchestrating conversion jobs.

    This service is framework-agnostic. It drives each job through
    upload -> convert -> export against the provider gateway and keeps the
    local job record in step with the remote job. Provider calls are
    blocking and are offloaded to threads.
    """

    def __init__(
        self,
        uploads: UploadStore,
        jobs: JobTracker,
        provider: ProviderGateway,
        *,
        allowed_mime: Collection[str],
        max_upload_bytes: int,
        poll_interval: float = 1.0,
        batch_poll_interval: float = 2.0,
        max_poll_attempts: int = 60,
        sweep_interval: float = 60.0,
        file_url: Callable[[str], str] = files_url,
        public_base_url: str | None = None,
    ) -> None:
        self._uploads = uploads
        self._jobs = jobs
        self._provider = provider
        self._allowed_mime = allowed_mime
        self._max_upload_bytes = max_upload_bytes
        self._poll_interval = poll_interval
        self._batch_poll_interval = batch_poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._sweep_interval = sweep_interval
        self._file_url = file_url
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: list[asyncio.Task] = []

    @property
    def uploads(self) -> UploadStore:
        return self._uploads

    @property
    def jobs(self) -> JobTracker:
        return self._jobs

    async def start(self) -> None:
        self._tasks.append(asyncio.create_task(self._sweep_loop()))

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
        self._tasks.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Sweep failed; retrying in %.1fs", self._sweep_interval)

    def sweep(self) -> int:
        """Evict expired uploads and jobs, then forget locks of jobs that are gone."""
        removed = self._uploads.purge_expired() + self._jobs.purge_expired()
        if removed:
            logger.info("Evicted %d expired entries", removed)
        for job_id, lock in list(self._locks.items()):
            if lock.locked():
                continue
            try:
                self._jobs.get(job_id)
            except JobNotFound:
                self._locks.pop(job_id, None)
        return removed

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    # API used by HTTP controller to store an upload stream
    async def receive_upload(
        self,
        filename: str,
        content_type: str,
        reader: Callable[[int], Awaitable[bytes]],
        *,
        declared_size: int | None = None,
    ) -> UploadedFile:
        """Validate and store an upload; nothing is stored for an invalid file."""
        validate(content_type, declared_size or 0, allowed_mime=self._allowed_mime, max_bytes=self._max_upload_bytes)
        buf = bytearray()
        while True:
            chunk = await reader(CHUNK)
            if not chunk:
                break
            buf.extend(chunk)
            if len(buf) > self._max_upload_bytes:
                raise TooLarge(f"upload exceeds {self._max_upload_bytes} bytes")
        validate(content_type, len(buf), allowed_mime=self._allowed_mime, max_bytes=self._max_upload_bytes)
        return self._uploads.store(bytes(buf), filename, content_type)

    async def create_job(
        self,
        file_id: str,
        target_format: str,
        options: dict[str, Any] | None = None,
        *,
        source_url: str | None = None,
    ) -> ConversionJob:
        """Start a remote conversion and return the local job without waiting for it.

        Only a missing source file raises; provider failures end up on the job
        record as status ``error``. When the file is reachable by URL
        (``source_url``, or ``public_base_url`` is configured) the provider
        imports it from there and no upload is made.
        """
        upload = self._uploads.get(file_id)
        if source_url is None and self._public_base_url:
            source_url = self._public_base_url + self._file_url(upload.id)
        op = formats.resolve(target_format, options)
        job = ConversionJob(
            job_id=uuid.uuid4().hex,
            source_file_id=upload.id,
            source_name=upload.name,
            target_format=target_format,
            output_format="md" if op.ocr else op.output_format,
        )
        self._jobs.create(job)
        logger.info("Job %s created: %s -> %s", job.job_id, upload.name, job.output_format)

        async with self._lock_for(job.job_id):
            try:
                pipeline = formats.build_pipeline(upload.name, op, source_url)
                remote = await asyncio.to_thread(self._provider.create_job, pipeline, job.job_id)
                remote_id = str(remote["id"])
                self._jobs.update(job.job_id, remote_job_id=remote_id)
                if source_url is None:
                    await asyncio.to_thread(self._provider.upload, upload_task(remote), upload.name, upload.content)
                remote = await asyncio.to_thread(self._provider.get_job, remote_id)
                state = map_state(remote)
                if state.status == JobStatus.ERROR:
                    job = self._fail(job.job_id, f"Conversion failed: {state.error_message}")
                else:
                    job = self._jobs.update(job.job_id, status=JobStatus.QUEUED)
                    logger.info("Job %s queued as remote job %s", job.job_id, remote_id)
            except ProviderError as e:
                job = self._fail(job.job_id, f"Conversion failed: {e.message}")
            except Exception as e:
                logger.exception("Unexpected failure creating job %s", job.job_id)
                job = self._fail(job.job_id, f"Internal error: {e}")
        return job

    async def poll_status(self, job_id: str) -> ConversionJob:
        """Re-derive the job's state from the provider and persist it.

        Terminal jobs are returned as stored; the provider is not contacted.
        """
        job = self._jobs.get(job_id)
        if job.is_terminal:
            return job
        async with self._lock_for(job_id):
            job = self._jobs.get(job_id)
            if job.is_terminal or job.remote_job_id is None:
                return job
            try:
                remote = await asyncio.to_thread(self._provider.get_job, job.remote_job_id)
                state = map_state(remote)
                if state.status == JobStatus.FINISHED:
                    return await self._finish(job, state)
                if state.status == JobStatus.ERROR:
                    return self._fail(job_id, f"Conversion failed: {state.error_message}")
                return self._jobs.update(job_id, status=JobStatus.PROCESSING)
            except ProviderError as e:
                return self._fail(job_id, f"Conversion failed: {e.message}")
            except Exception as e:
                logger.exception("Unexpected failure polling job %s", job_id)
                return self._fail(job_id, f"Internal error: {e}")

    async def _finish(self, job: ConversionJob, state: RemoteState) -> ConversionJob:
        if formats.resolve(job.target_format).ocr:
            if not state.result_url:
                raise ProviderError("OCR result has no download URL")
            text = await asyncio.to_thread(self._provider.download, state.result_url)
            name = formats.derive_filename(job.source_name, "md")
            document = render_text_document(text.decode("utf-8", errors="replace"), job.source_name).encode("utf-8")
            ttl = None if self._jobs.ttl is None else self._jobs.ttl + ARTIFACT_GRACE
            stored = self._uploads.store(document, name, "text/markdown", ttl=ttl)
            result_url, size = self._file_url(stored.id), stored.size_bytes
        else:
            name = formats.derive_filename(job.source_name, job.output_format)
            result_url, size = state.result_url, state.result_size
        finished = self._jobs.update(
            job.job_id,
            status=JobStatus.FINISHED,
            result_url=result_url,
            result_filename=name,
            result_size=size,
        )
        self._locks.pop(job.job_id, None)
        logger.info("Job %s finished: %s", job.job_id, name)
        return finished

    def _fail(self, job_id: str, message: str) -> ConversionJob:
        logger.warning("Job %s failed: %s", job_id, message)
        self._locks.pop(job_id, None)
        return self._jobs.update(job_id, status=JobStatus.ERROR, error_message=message)

    async def wait_for_job(
        self,
        job_id: str,
        *,
        interval: float | None = None,
        max_attempts: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> ConversionJob:
        return await poll_until_terminal(
            lambda: self.poll_status(job_id),
            interval=self._poll_interval if interval is None else interval,
            max_attempts=self._max_poll_attempts if max_attempts is None else max_attempts,
            cancel=cancel,
        )

    async def convert_batch(
        self,
        file_ids: Iterable[str],
        conversion_type: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> list[BatchEntry]:
        """Convert files one after another; one entry per file, in input order.

        A failing file yields a Failed entry and the batch moves on.
        """
        token = cancel or CancellationToken()
        results: list[BatchEntry] = []
        for file_id in file_ids:
            if token.cancelled:
                results.append(Failed(file_id, file_id, "cancelled"))
                continue
            results.append(await self._convert_one(file_id, conversion_type, token))
        return results

    async def _convert_one(self, file_id: str, conversion_type: str, token: CancellationToken) -> BatchEntry:
        try:
            job = await self.create_job(file_id, conversion_type)
        except FileNotFound as e:
            return Failed(file_id, file_id, e.message)
        try:
            job = await self.wait_for_job(job.job_id, interval=self._batch_poll_interval, cancel=token)
        except (ConversionFailed, PollTimeout) as e:
            return Failed(file_id, job.source_name, e.message, job.job_id)
        except PollCancelled:
            return Failed(file_id, job.source_name, "cancelled", job.job_id)
        return Ok(file_id, job.job_id, job.result_filename or job.source_name, job.result_url or "", job.result_size)
