"""
Blob storage abstraction for raw document bytes.
Default implementation uses the local filesystem; keys are relative POSIX paths.
"""
from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath
from typing import Protocol

from .exceptions import StorageError


class BlobStorage(Protocol):
    @property
    def root(self) -> Path:
        ...

    def ensure_ready(self):
        ...

    def save_file(self, source_path: Path, key: str) -> str:
        ...

    def save_bytes(self, data: bytes, key: str) -> str:
        ...

    def read_bytes(self, key: str) -> bytes:
        ...


class LocalBlobStorage:
    def __init__(self, root: Path):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def ensure_ready(self):
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        relative = PurePosixPath(str(key or "").lstrip("/"))
        if not relative.parts or ".." in relative.parts:
            raise StorageError(f"Invalid blob key: {key!r}", {"key": key})
        return self._root.joinpath(*relative.parts)

    def save_file(self, source_path: Path, key: str) -> str:
        destination = self._resolve(key)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_path, destination)
        return str(key)

    def save_bytes(self, data: bytes, key: str) -> str:
        destination = self._resolve(key)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        return str(key)

    def read_bytes(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Could not read blob {key!r}", {"key": key, "error": str(exc)}) from exc
