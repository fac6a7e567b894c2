"""
Local Object Store

Filesystem-backed object store for uploaded resume files.

Responsibility:
    - Download / upload / delete objects addressed by a relative key
    - Keep per-object metadata in a JSON sidecar file
    - Implements ObjectStoreProtocol from Application Layer

Architecture Notes:
    - Infrastructure Layer (file system operations)
    - Single-node deployments and tests; a cloud bucket adapter implements
      the same protocol
    - Blocking file I/O runs in a worker thread (asyncio.to_thread)

Storage Structure:
    Base directory: /tmp/upstar/objects (from env: OBJECT_STORE_ROOT)

        {base}/{key}                 object bytes
        {base}/{key}.meta.json       {"content_type": ..., "metadata": {...}}

Business Rules:
    - Keys are relative paths; absolute keys and ".." segments are rejected
    - Writes are atomic (write to .tmp, then rename)
    - Missing object -> ObjectStoreError(code="not_found", retryable=False)
    - Permission problems -> code="access_denied", retryable=False
    - Other OS errors (disk full, I/O) -> retryable

Examples:
    >>> store = LocalObjectStore("/tmp/upstar/objects")
    >>> location = await store.upload("resumes/u1/cv.txt", b"Python, SQL")
    >>> obj = await store.download("resumes/u1/cv.txt")
    >>> obj.data
    b'Python, SQL'
"""

import asyncio
import json
import logging
import mimetypes
import os
from pathlib import Path
from typing import Optional

from src.application.ports.external_services import StoredObject
from src.domain.shared.exceptions import ObjectStoreError

# Configure logger for object store operations
logger = logging.getLogger(__name__)

_META_SUFFIX = ".meta.json"


class LocalObjectStore:
    """Object store on the local filesystem."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        """
        Args:
            base_dir: Root directory (default from env: OBJECT_STORE_ROOT)

        Raises:
            OSError: If base directory cannot be created
        """
        self.base_dir = Path(base_dir or os.getenv("OBJECT_STORE_ROOT", "/tmp/upstar/objects"))
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        relative = Path(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ObjectStoreError(
                f"Invalid object key: {key!r}", retryable=False, code="invalid_key"
            )
        return self.base_dir / relative

    @staticmethod
    def _os_error(error: OSError, key: str, operation: str) -> ObjectStoreError:
        if isinstance(error, FileNotFoundError):
            return ObjectStoreError(
                f"Object not found: {key}", retryable=False, code="not_found", status_code=404
            )
        if isinstance(error, PermissionError):
            return ObjectStoreError(
                f"Access denied to object {key}", retryable=False, code="access_denied", status_code=403
            )
        return ObjectStoreError(
            f"Object store {operation} failed for {key}: {error}", retryable=True, code="io_error"
        )

    async def download(self, path: str) -> StoredObject:
        target = self._resolve(path)

        def _read() -> StoredObject:
            data = target.read_bytes()
            meta_path = target.with_name(target.name + _META_SUFFIX)
            content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
            metadata: dict[str, str] = {}
            if meta_path.exists():
                stored = json.loads(meta_path.read_text(encoding="utf-8"))
                content_type = stored.get("content_type", content_type)
                metadata = stored.get("metadata", {})
            return StoredObject(data=data, content_type=content_type, metadata=metadata)

        try:
            obj = await asyncio.to_thread(_read)
        except OSError as e:
            raise self._os_error(e, path, "download") from e

        logger.debug(f"Downloaded object {path} ({len(obj.data)} bytes)")
        return obj

    async def upload(
        self, key: str, data: bytes, metadata: Optional[dict[str, str]] = None
    ) -> str:
        target = self._resolve(key)
        content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(target)
            target.with_name(target.name + _META_SUFFIX).write_text(
                json.dumps({"content_type": content_type, "metadata": metadata or {}}),
                encoding="utf-8",
            )

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise self._os_error(e, key, "upload") from e

        logger.info(f"Stored object {key} ({len(data)} bytes)")
        return str(target)

    async def delete(self, key: str) -> None:
        target = self._resolve(key)

        def _unlink() -> None:
            target.unlink(missing_ok=True)
            target.with_name(target.name + _META_SUFFIX).unlink(missing_ok=True)

        try:
            await asyncio.to_thread(_unlink)
        except OSError as e:
            raise self._os_error(e, key, "delete") from e

        logger.info(f"Deleted object {key}")
