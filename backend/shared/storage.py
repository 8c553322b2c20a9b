"""Durable client-side key-value storage.

A joined player keeps a small amount of state that must survive a process
restart: the PIN to resume and a cached stats blob. Values are JSON-serializable.
JsonFileStorage writes the whole map atomically (temp file, fsync, rename) with
owner-only permissions (0o600) inside an owner-only directory (0o700).
"""

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()

_STORAGE_DIR_MODE = 0o700
_STORAGE_FILE_MODE = 0o600


class KeyValueStorage(Protocol):
    """Protocol for local durable key-value storage."""

    def get(self, key: str) -> Any: ...  # noqa: ANN401

    def set(self, key: str, value: Any) -> None: ...  # noqa: ANN401

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage. Values do not survive a restart."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any:  # noqa: ANN401
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:  # noqa: ANN401
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Key-value storage persisted as a single JSON object on disk.

    A missing or unreadable file is treated as empty so a corrupt cache never
    blocks the client; the next write replaces it.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).resolve()

    def _load(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError:
            logger.warning("could not read local storage", path=str(self._path))
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("local storage is corrupt, starting empty", path=str(self._path))
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        directory = self._path.parent
        directory.mkdir(mode=_STORAGE_DIR_MODE, parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp", prefix=".kv_")
        fd_owned = True
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                fd_owned = False  # os.fdopen closes fd from here on
                json.dump(data, f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _STORAGE_FILE_MODE)  # noqa: PTH101
            Path(tmp_path).replace(self._path)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise

    def get(self, key: str) -> Any:  # noqa: ANN401
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:  # noqa: ANN401
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)
