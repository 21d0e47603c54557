"""Helpers reading CloudConvert v2 job payloads (the ``data`` object)."""

from dataclasses import dataclass
from typing import Any

from .errors import ProviderError
from .models import JobStatus

REMOTE_ACTIVE = frozenset({"waiting", "processing"})


@dataclass(frozen=True)
class RemoteState:
    status: str
    result_url: str | None = None
    result_filename: str | None = None
    result_size: int | None = None
    error_message: str | None = None


def _tasks(job: dict[str, Any]) -> list[dict[str, Any]]:
    return list(job.get("tasks") or [])


def find_task(job: dict[str, Any], *, operation: str | None = None, name: str | None = None) -> dict[str, Any] | None:
    for task in _tasks(job):
        if name is not None and task.get("name") == name:
            return task
        if name is None and operation is not None and task.get("operation") == operation:
            return task
    return None


def upload_task(job: dict[str, Any]) -> dict[str, Any]:
    """Return the import/upload task once it carries a form or a direct upload URL."""
    task = find_task(job, operation="import/upload")
    result = (task or {}).get("result") or {}
    form = result.get("form") or {}
    if task is None or not (form.get("url") or result.get("url")):
        raise ProviderError("provider did not return an upload form")
    return task


def export_file(job: dict[str, Any]) -> dict[str, Any] | None:
    task = find_task(job, operation="export/url")
    if task is None or task.get("status") != "finished":
        return None
    files = (task.get("result") or {}).get("files") or []
    return files[0] if files else None


def error_message(job: dict[str, Any]) -> str:
    for task in _tasks(job):
        if task.get("status") == "error" and task.get("message"):
            return f"{task.get('name') or task.get('operation')}: {task['message']}"
    return str(job.get("message") or "Conversion failed")


def map_state(job: dict[str, Any]) -> RemoteState:
    """Collapse the remote job vocabulary onto the local status enum."""
    exported = export_file(job)
    if exported is not None and exported.get("url"):
        return RemoteState(
            JobStatus.FINISHED,
            result_url=str(exported["url"]),
            result_filename=exported.get("filename"),
            result_size=exported.get("size"),
        )
    status = str(job.get("status") or "")
    if status == "error" or any(t.get("status") == "error" for t in _tasks(job)):
        return RemoteState(JobStatus.ERROR, error_message=error_message(job))
    if status == "finished":
        return RemoteState(JobStatus.ERROR, error_message="No converted file found in job result")
    if status in REMOTE_ACTIVE:
        return RemoteState(JobStatus.PROCESSING)
    raise ProviderError(f"unexpected remote job status {status!r}")
