# tests/conftest.py
"""Shared fixtures: a scripted stand-in for the CloudConvert gateway."""

from typing import Any

import pytest

from convert_service.conversion import ConversionService, JobTracker, UploadStore
from convert_service.conversion.adapters import InMemoryStore
from convert_service.conversion.errors import ProviderError

ALLOWED = frozenset({"text/plain", "application/pdf", "image/png", "image/jpeg"})


class FakeProvider:
    """Plays back a list of remote job states per created job.

    The first get_job call after creation is the acknowledgement made by
    create_job; later calls come from polling. The last state repeats.
    """

    def __init__(self, states: list[str] | None = None) -> None:
        self.default_states = states or ["waiting", "processing", "finished"]
        self.next_states: list[list[str]] = []
        self.created: list[dict[str, Any]] = []
        self.uploads: list[tuple[str, bytes]] = []
        self.get_calls: dict[str, int] = {}
        self.downloads: dict[str, bytes] = {}
        self.fail_create = False
        self.fail_upload_for: set[str] = set()
        self._states: dict[str, list[str]] = {}
        self._tasks: dict[str, dict[str, dict[str, Any]]] = {}

    def script(self, *states: str) -> None:
        self.next_states.append(list(states))

    def create_job(self, tasks: dict[str, dict[str, Any]], tag: str | None = None) -> dict[str, Any]:
        if self.fail_create:
            raise ProviderError("job creation failed: 422 invalid task")
        remote_id = f"remote-{len(self.created) + 1}"
        self.created.append({"id": remote_id, "tasks": tasks, "tag": tag})
        self._states[remote_id] = self.next_states.pop(0) if self.next_states else list(self.default_states)
        self._tasks[remote_id] = tasks
        return self._payload(remote_id, "waiting")

    def upload(self, task: dict[str, Any], filename: str, content: bytes) -> None:
        assert task["result"]["form"]["url"]
        if filename in self.fail_upload_for:
            raise ProviderError("upload failed: 500 Internal Server Error", status_code=500)
        self.uploads.append((filename, content))

    def get_job(self, remote_job_id: str) -> dict[str, Any]:
        n = self.get_calls.get(remote_job_id, 0)
        self.get_calls[remote_job_id] = n + 1
        states = self._states[remote_job_id]
        return self._payload(remote_job_id, states[min(n, len(states) - 1)])

    def download(self, url: str) -> bytes:
        if url not in self.downloads:
            raise ProviderError(f"download failed: 404 {url}", status_code=404)
        return self.downloads[url]

    def _payload(self, remote_id: str, state: str) -> dict[str, Any]:
        tasks = []
        for name, spec in self._tasks.get(remote_id, {}).items():
            task: dict[str, Any] = {"name": name, "operation": spec["operation"], "status": "waiting", "result": None}
            if spec["operation"] == "import/upload":
                task["status"] = "finished" if state != "waiting" else "waiting"
                task["result"] = {"form": {"url": f"https://upload.example/{remote_id}", "parameters": {"expires": "1"}}}
            elif state == "finished":
                task["status"] = "finished"
                if spec["operation"] == "export/url":
                    filename = self._tasks[remote_id]["convert-file"]["filename"]
                    task["result"] = {"files": [{"filename": filename, "size": 2048, "url": f"https://storage.example/{remote_id}/{filename}"}]}
            elif state == "error" and spec["operation"] == "convert":
                task["status"] = "error"
                task["message"] = "unsupported input"
            tasks.append(task)
        return {"id": remote_id, "status": state, "tasks": tasks}


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def kv() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def service(provider: FakeProvider, kv: InMemoryStore) -> ConversionService:
    return ConversionService(
        UploadStore(kv),
        JobTracker(kv),
        provider,
        allowed_mime=ALLOWED,
        max_upload_bytes=10 * 1024 * 1024,
        poll_interval=0.0,
        batch_poll_interval=0.0,
        max_poll_attempts=10,
    )
