from typing import Any, Protocol


class ProviderGateway(Protocol):
    """Job-based conversion provider (CloudConvert API v2 shaped payloads).

    All methods are blocking; callers should offload to threads if needed.
    Failures are raised as ProviderError.
    """

    def create_job(self, tasks: dict[str, dict[str, Any]], tag: str | None = None) -> dict[str, Any]:
        """Create a remote job from a named task pipeline and return its payload."""

    def upload(self, task: dict[str, Any], filename: str, content: bytes) -> None:
        """Send raw bytes to an ``import/upload`` task's upload form."""

    def get_job(self, remote_job_id: str) -> dict[str, Any]:
        ...

    def download(self, url: str) -> bytes:
        ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None:
        ...

    def put(self, key: str, value: bytes, ttl: float | None = None) -> None:
        ...

    def add(self, key: str, value: bytes, ttl: float | None = None) -> bool:
        """Insert only if the key is absent (or expired); return whether it was inserted."""

    def delete(self, key: str) -> None:
        ...

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
