from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .config import Settings


@dataclass(slots=True)
class StorageStat:
    size_bytes: int


class Storage(ABC):
    """Blob store addressed by ``(namespace, name)``.

    Namespaces are flat: a name is a single path component and never
    contains a separator.
    """

    @abstractmethod
    def exists(self, namespace: str, name: str) -> bool: ...

    @abstractmethod
    def stat(self, namespace: str, name: str) -> StorageStat: ...

    @abstractmethod
    def read(self, namespace: str, name: str) -> bytes: ...

    @abstractmethod
    def write(self, namespace: str, name: str, payload: bytes) -> str: ...

    @abstractmethod
    def delete(self, namespace: str, name: str) -> bool: ...

    @abstractmethod
    def list(self, namespace: str) -> Iterable[str]: ...


class LocalStorage(Storage):
    """Filesystem-backed storage: one directory per namespace under ``base_path``."""

    def __init__(self, base_path: Path, namespaces: Iterable[str] = ()):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)
        for namespace in namespaces:
            (self.base_path / namespace).mkdir(parents=True, exist_ok=True)

    def _resolve(self, namespace: str, name: str) -> Path:
        if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
            raise ValueError(f"Invalid blob name: {name!r}")
        root = (self.base_path / namespace).resolve()
        path = (root / name).resolve()
        if path.parent != root:
            raise ValueError(f"Blob name escapes namespace {namespace}: {name!r}")
        return path

    def exists(self, namespace: str, name: str) -> bool:
        return self._resolve(namespace, name).is_file()

    def stat(self, namespace: str, name: str) -> StorageStat:
        path = self._resolve(namespace, name)
        if not path.is_file():
            raise FileNotFoundError(f"{namespace}/{name}")
        return StorageStat(size_bytes=path.stat().st_size)

    def read(self, namespace: str, name: str) -> bytes:
        return self._resolve(namespace, name).read_bytes()

    def write(self, namespace: str, name: str, payload: bytes) -> str:
        path = self._resolve(namespace, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        return path.as_uri()

    def delete(self, namespace: str, name: str) -> bool:
        path = self._resolve(namespace, name)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list(self, namespace: str) -> Iterable[str]:
        root = self.base_path / namespace
        if not root.exists():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_file())


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(
            base_path=Path(settings.storage_root),
            namespaces=(settings.images_namespace, settings.thumbs_namespace),
        )
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "StorageStat",
    "get_storage",
]
