"""Entity store contract and its in-memory and JSON-file implementations.

Registries talk to storage only through EntityStore: load by id, save,
delete by id, and scan with an optional predicate. Stored entities are
pydantic models; stores hand out copies so that callers never share
mutable state with the store itself.

JSON files are written with owner-only permissions (0o600) inside an
owner-only directory (0o700), atomically via temp-file-then-rename.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog
from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()

_STORE_DIR_MODE = 0o700

_STORE_FILE_MODE = 0o600


class StoredEntity(BaseModel):
    """Base for anything persisted through an EntityStore."""

    id: str


class EntityStore[T: StoredEntity](Protocol):
    """Id-keyed persistence contract used by the registries."""

    def load(self, entity_id: str) -> T | None: ...

    def save(self, entity: T) -> None: ...

    def delete(self, entity_id: str) -> bool: ...

    def scan(self, predicate: Callable[[T], bool] | None = None) -> list[T]: ...

    def count(self) -> int: ...

    def clear(self) -> None: ...


class InMemoryStore[T: StoredEntity]:
    """Process-local store holding deep copies of saved entities."""

    def __init__(self) -> None:
        self._entities: dict[str, T] = {}
        self._lock = threading.Lock()

    def load(self, entity_id: str) -> T | None:
        with self._lock:
            entity = self._entities.get(entity_id)
            return entity.model_copy(deep=True) if entity is not None else None

    def save(self, entity: T) -> None:
        snapshot = entity.model_copy(deep=True)
        with self._lock:
            self._entities[entity.id] = snapshot

    def delete(self, entity_id: str) -> bool:
        with self._lock:
            return self._entities.pop(entity_id, None) is not None

    def scan(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        with self._lock:
            snapshot = list(self._entities.values())
        return [e.model_copy(deep=True) for e in snapshot if predicate is None or predicate(e)]

    def count(self) -> int:
        with self._lock:
            return len(self._entities)

    def clear(self) -> None:
        with self._lock:
            self._entities.clear()


class JsonFileStore[T: StoredEntity]:
    """Stores one JSON document per entity under a directory.

    The directory is created lazily on first write. Ids that would resolve
    outside the directory are rejected.
    """

    def __init__(self, directory: str | Path, model: type[T]) -> None:
        self._directory = Path(directory).resolve()
        self._model = model
        self._lock = threading.Lock()

    def _path_for(self, entity_id: str) -> Path:
        target = (self._directory / f"{entity_id}.json").resolve()
        if not target.is_relative_to(self._directory) or target.parent != self._directory:
            raise ValueError(f"Path traversal rejected: '{entity_id}' resolves outside store directory")
        return target

    def load(self, entity_id: str) -> T | None:
        path = self._path_for(entity_id)
        with self._lock:
            if not path.exists():
                return None
            return self._model.model_validate_json(path.read_text(encoding="utf-8"))

    def save(self, entity: T) -> None:
        target = self._path_for(entity.id)
        content = entity.model_dump_json().encode("utf-8")

        with self._lock:
            self._directory.mkdir(mode=_STORE_DIR_MODE, parents=True, exist_ok=True)
            self._directory.chmod(_STORE_DIR_MODE)

            fd, tmp_path = tempfile.mkstemp(dir=str(self._directory), suffix=".tmp", prefix=".entity_")
            fd_owned = True
            try:
                with os.fdopen(fd, "wb") as f:
                    fd_owned = False  # os.fdopen took ownership; it will close fd
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, _STORE_FILE_MODE)  # noqa: PTH101
                Path(tmp_path).replace(target)
            except BaseException:
                if fd_owned:
                    with contextlib.suppress(OSError):
                        os.close(fd)
                with contextlib.suppress(OSError):
                    Path(tmp_path).unlink()
                raise
        logger.debug("saved entity", entity_id=entity.id, path=str(target))

    def delete(self, entity_id: str) -> bool:
        path = self._path_for(entity_id)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
        return True

    def _iter_paths(self) -> list[Path]:
        if not self._directory.is_dir():
            return []
        return sorted(self._directory.glob("*.json"))

    def scan(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        with self._lock:
            entities = [self._model.model_validate_json(p.read_text(encoding="utf-8")) for p in self._iter_paths()]
        return [e for e in entities if predicate is None or predicate(e)]

    def count(self) -> int:
        with self._lock:
            return len(self._iter_paths())

    def clear(self) -> None:
        with self._lock:
            for path in self._iter_paths():
                with contextlib.suppress(FileNotFoundError):
                    path.unlink()
