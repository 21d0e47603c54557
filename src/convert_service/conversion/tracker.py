import json

from .errors import DuplicateJob, InvalidTransition, JobNotFound
from .interfaces import KeyValueStore
from .models import ConversionJob, JobStatus, utcnow

_PATCHABLE = {"status", "remote_job_id", "result_url", "result_filename", "result_size", "error_message"}


class JobTracker:
    """Maps local job ids to the latest known state of their remote job.

    Assumes a single writer per job id; concurrent reads are fine.
    """

    def __init__(self, store: KeyValueStore, *, ttl: float | None = None) -> None:
        self._store = store
        self._ttl = ttl

    @property
    def ttl(self) -> float | None:
        return self._ttl

    @staticmethod
    def _key(job_id: str) -> str:
        return f"job:{job_id}"

    def _encode(self, job: ConversionJob) -> bytes:
        return json.dumps(job.to_dict()).encode("utf-8")

    def create(self, job: ConversionJob) -> None:
        if not self._store.add(self._key(job.job_id), self._encode(job), ttl=self._ttl):
            raise DuplicateJob(f"job {job.job_id} already exists")

    def purge_expired(self) -> int:
        return self._store.purge_expired()

    def get(self, job_id: str) -> ConversionJob:
        raw = self._store.get(self._key(job_id))
        if raw is None:
            raise JobNotFound(f"job {job_id} not found")
        return ConversionJob.from_dict(json.loads(raw))

    def update(self, job_id: str, **patch: object) -> ConversionJob:
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValueError(f"cannot patch fields: {', '.join(sorted(unknown))}")
        job = self.get(job_id)
        new_status = patch.get("status")
        if new_status is not None and new_status != job.status:
            if new_status not in JobStatus.ORDER:
                raise InvalidTransition(f"unknown status {new_status}")
            if job.is_terminal or JobStatus.ORDER[str(new_status)] < JobStatus.ORDER[job.status]:
                raise InvalidTransition(f"job {job_id}: {job.status} -> {new_status}")
        elif job.is_terminal and patch:
            raise InvalidTransition(f"job {job_id} is {job.status}")
        for name, value in patch.items():
            setattr(job, name, value)
        if job.status == JobStatus.FINISHED:
            job.error_message = None
        elif job.status == JobStatus.ERROR:
            job.result_url = None
        job.updated_at = utcnow()
        self._store.put(self._key(job_id), self._encode(job), ttl=self._ttl)
        return job
