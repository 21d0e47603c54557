import hashlib
import json
import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import requests

from .errors import ProviderError
from .interfaces import KeyValueStore, ProviderGateway

logger = logging.getLogger(__name__)


class InMemoryStore(KeyValueStore):
    """Process-local key-value store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[bytes, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> bytes | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl: float | None) -> float | None:
        return None if ttl is None else self._clock() + ttl

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._live(key)

    def put(self, key: str, value: bytes, ttl: float | None = None) -> None:
        with self._lock:
            self._data[key] = (bytes(value), self._expiry(ttl))

    def add(self, key: str, value: bytes, ttl: float | None = None) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (bytes(value), self._expiry(ttl))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, exp) in self._data.items() if exp is not None and exp <= now]
            for k in expired:
                del self._data[k]
            return len(expired)


class LocalStorage(KeyValueStore):
    """Filesystem-backed store: one value file plus a JSON sidecar per key."""

    def __init__(self, data_dir: str, namespace: str = "store", clock: Callable[[], float] = time.time) -> None:
        self._base = Path(data_dir).resolve() / namespace
        self._base.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()

    def _paths(self, key: str) -> tuple[Path, Path]:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._base / f"{digest}.bin", self._base / f"{digest}.json"

    def _expired(self, meta_path: Path) -> bool:
        """True when the entry is past its expiry or its sidecar cannot be read."""
        try:
            with meta_path.open("r", encoding="utf-8") as f:
                expires_at = json.load(f).get("expires_at")
        except (OSError, ValueError, AttributeError):
            logger.warning("Unreadable sidecar %s; treating entry as expired", meta_path.name)
            return True
        return expires_at is not None and expires_at <= self._clock()

    def _remove(self, key: str) -> None:
        for p in self._paths(key):
            p.unlink(missing_ok=True)

    def _write(self, key: str, value: bytes, ttl: float | None) -> None:
        value_path, meta_path = self._paths(key)
        meta = {"key": key, "expires_at": None if ttl is None else self._clock() + ttl}
        # Each file is written aside and renamed into place, so readers never see a partial one.
        tmp = value_path.with_suffix(".bin.tmp")
        tmp.write_bytes(value)
        os.replace(tmp, value_path)
        tmp = meta_path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(meta, f, ensure_ascii=False, indent=2)
        os.replace(tmp, meta_path)

    def _get(self, key: str) -> bytes | None:
        value_path, meta_path = self._paths(key)
        if not value_path.exists() or not meta_path.exists():
            return None
        if self._expired(meta_path):
            self._remove(key)
            return None
        return value_path.read_bytes()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._get(key)

    def put(self, key: str, value: bytes, ttl: float | None = None) -> None:
        with self._lock:
            self._write(key, value, ttl)

    def add(self, key: str, value: bytes, ttl: float | None = None) -> bool:
        with self._lock:
            if self._get(key) is not None:
                return False
            self._write(key, value, ttl)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._remove(key)

    def purge_expired(self) -> int:
        removed = 0
        with self._lock:
            for meta_path in self._base.glob("*.json"):
                if self._expired(meta_path):
                    meta_path.with_suffix(".bin").unlink(missing_ok=True)
                    meta_path.unlink(missing_ok=True)
                    removed += 1
        return removed


class CloudConvertGateway(ProviderGateway):
    """CloudConvert API v2 over a requests session."""

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.cloudconvert.com/v2",
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderError("provider credential is not configured")
        return {"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"}

    @staticmethod
    def _check(resp: requests.Response, what: str) -> None:
        if 200 <= resp.status_code < 300:
            return
        message = resp.reason or ""
        try:
            body = resp.json()
            if isinstance(body, dict) and body.get("message"):
                message = str(body["message"])
        except ValueError:
            pass
        raise ProviderError(f"{what} failed: {resp.status_code} {message}".rstrip(), status_code=resp.status_code)

    def _request(self, method: str, url: str, what: str, **kwargs: Any) -> requests.Response:
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise ProviderError(f"{what} failed: {e}") from e
        self._check(resp, what)
        return resp

    def create_job(self, tasks: dict[str, dict[str, Any]], tag: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"tasks": tasks}
        if tag:
            payload["tag"] = tag
        resp = self._request("POST", f"{self._base_url}/jobs", "job creation", json=payload, headers=self._headers())
        job = resp.json()["data"]
        logger.info("Created remote job %s", job.get("id"))
        return job

    def upload(self, task: dict[str, Any], filename: str, content: bytes) -> None:
        result = task.get("result") or {}
        form = result.get("form") or {}
        url = form.get("url")
        if not url:
            direct = result.get("url")
            if not direct:
                raise ProviderError("upload task has no upload form")
            # No signed form: the task takes the raw bytes at its own URL.
            self._request(
                "PUT",
                str(direct),
                "upload",
                data=content,
                headers={"Content-Type": "application/octet-stream"},
            )
            return
        # The signed form carries its own credentials; no Authorization header.
        self._request(
            "POST",
            str(url),
            "upload",
            data=dict(form.get("parameters") or {}),
            files={"file": (filename, content, "application/octet-stream")},
        )

    def get_job(self, remote_job_id: str) -> dict[str, Any]:
        resp = self._request("GET", f"{self._base_url}/jobs/{remote_job_id}", "status check", headers=self._headers())
        return resp.json()["data"]

    def download(self, url: str) -> bytes:
        return self._request("GET", url, "download").content
