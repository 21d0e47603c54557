import json
import logging
import uuid
from typing import Any

from .errors import FileNotFound
from .interfaces import KeyValueStore
from .models import UploadedFile, utcnow

logger = logging.getLogger(__name__)

_STORE_TTL = object()


class UploadStore:
    """Holds uploaded bytes and their metadata, keyed by a generated id."""

    def __init__(self, store: KeyValueStore, *, ttl: float | None = None) -> None:
        self._store = store
        self._ttl = ttl

    def store(self, content: bytes, name: str, mime_type: str, *, ttl: Any = _STORE_TTL) -> UploadedFile:
        """Store bytes under a fresh id.

        ``ttl`` overrides the store-wide lifetime for this entry; ``None`` keeps it forever.
        """
        if ttl is _STORE_TTL:
            ttl = self._ttl
        data = bytes(content)
        while True:
            file_id = uuid.uuid4().hex
            uploaded = UploadedFile(
                id=file_id,
                name=name or "upload",
                mime_type=mime_type or "application/octet-stream",
                size_bytes=len(data),
                content=data,
                uploaded_at=utcnow(),
            )
            meta = json.dumps(uploaded.metadata()).encode("utf-8")
            # add() refuses an id that is already live
            if self._store.add(f"upload:{file_id}:meta", meta, ttl=ttl):
                break
        self._store.put(f"upload:{file_id}:content", data, ttl=ttl)
        logger.info("Stored upload %s (%s, %d bytes)", file_id, uploaded.mime_type, uploaded.size_bytes)
        return uploaded

    def get(self, file_id: str) -> UploadedFile:
        raw_meta = self._store.get(f"upload:{file_id}:meta")
        content = self._store.get(f"upload:{file_id}:content")
        if raw_meta is None or content is None:
            raise FileNotFound(f"file {file_id} not found")
        meta = json.loads(raw_meta)
        return UploadedFile(
            id=str(meta["id"]),
            name=str(meta["name"]),
            mime_type=str(meta["mime_type"]),
            size_bytes=int(meta["size_bytes"]),
            content=bytes(content),
            uploaded_at=str(meta["uploaded_at"]),
        )

    def purge_expired(self) -> int:
        return self._store.purge_expired()
