from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone


class JobStatus:
    UPLOADING = "uploading"
    QUEUED = "queued"
    PROCESSING = "processing"
    FINISHED = "finished"
    ERROR = "error"

    TERMINAL = frozenset({FINISHED, ERROR})
    # Position in the lifecycle; a job only ever moves forward.
    ORDER = {UPLOADING: 0, QUEUED: 1, PROCESSING: 2, FINISHED: 3, ERROR: 3}


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class UploadedFile:
    id: str
    name: str
    mime_type: str
    size_bytes: int
    content: bytes = field(repr=False)
    uploaded_at: str

    def metadata(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "uploaded_at": self.uploaded_at,
        }


@dataclass
class ConversionJob:
    job_id: str
    source_file_id: str
    source_name: str
    target_format: str
    output_format: str
    status: str = JobStatus.UPLOADING
    remote_job_id: str | None = None
    result_url: str | None = None
    result_filename: str | None = None
    result_size: int | None = None
    error_message: str | None = None
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ConversionJob":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})  # type: ignore[arg-type]


@dataclass(frozen=True)
class Ok:
    """A batch entry whose conversion produced an artifact."""

    file_id: str
    job_id: str
    name: str
    url: str
    size: int | None = None

    ok = True

    def to_dict(self) -> dict[str, object]:
        return {
            "ok": True,
            "fileId": self.file_id,
            "jobId": self.job_id,
            "name": self.name,
            "url": self.url,
            "size": self.size,
        }


@dataclass(frozen=True)
class Failed:
    """A batch entry whose conversion failed; siblings are unaffected."""

    file_id: str
    name: str
    reason: str
    job_id: str | None = None

    ok = False

    def to_dict(self) -> dict[str, object]:
        return {
            "ok": False,
            "fileId": self.file_id,
            "jobId": self.job_id,
            "name": self.name,
            "error": self.reason,
        }


BatchEntry = Ok | Failed
