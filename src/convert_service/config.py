import os
from dataclasses import dataclass, field

DEFAULT_ALLOWED_MIME = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # docx
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",  # xlsx
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",  # pptx
    "image/jpeg",
    "image/png",
    "image/gif",
    "text/plain",
)

CLOUDCONVERT_API = "https://api.cloudconvert.com/v2"
CLOUDCONVERT_SANDBOX_API = "https://api.sandbox.cloudconvert.com/v2"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    allowed_mime: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_ALLOWED_MIME))
    max_upload_bytes: int = 10 * 1024 * 1024
    poll_interval_ms: int = 1000
    batch_poll_interval_ms: int = 2000
    max_poll_attempts: int = 60
    api_key: str | None = None
    provider_base_url: str = CLOUDCONVERT_API
    provider_timeout_sec: float = 60.0
    upload_ttl_sec: int = 3600
    job_ttl_sec: int = 86400
    sweep_interval_sec: float = 60.0
    data_dir: str | None = None
    public_base_url: str | None = None
    log_level: str = "INFO"

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def batch_poll_interval(self) -> float:
        return self.batch_poll_interval_ms / 1000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        The provider credential is only ever read from CLOUDCONVERT_API_KEY.
        """
        allowed = os.getenv("ALLOWED_MIME")
        allowed_mime = (
            frozenset(m.strip().lower() for m in allowed.split(",") if m.strip())
            if allowed
            else frozenset(DEFAULT_ALLOWED_MIME)
        )
        base_url = os.getenv("CLOUDCONVERT_BASE_URL") or (
            CLOUDCONVERT_SANDBOX_API if _env_bool("CLOUDCONVERT_SANDBOX") else CLOUDCONVERT_API
        )
        return cls(
            allowed_mime=allowed_mime,
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))),
            poll_interval_ms=int(os.getenv("POLL_INTERVAL_MS", "1000")),
            batch_poll_interval_ms=int(os.getenv("BATCH_POLL_INTERVAL_MS", "2000")),
            max_poll_attempts=int(os.getenv("MAX_POLL_ATTEMPTS", "60")),
            api_key=os.getenv("CLOUDCONVERT_API_KEY") or None,
            provider_base_url=base_url.rstrip("/"),
            provider_timeout_sec=float(os.getenv("PROVIDER_TIMEOUT_SEC", "60")),
            upload_ttl_sec=int(os.getenv("UPLOAD_TTL_SEC", "3600")),
            job_ttl_sec=int(os.getenv("JOB_TTL_SEC", "86400")),
            sweep_interval_sec=float(os.getenv("SWEEP_INTERVAL_SEC", "60")),
            data_dir=os.getenv("DATA_DIR") or None,
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
