"""Durable local key/value storage for the client session."""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from secrets import token_hex

logger = logging.getLogger(__name__)

# Well-known keys. The verified and degraded sessions never share a key.
SESSION_KEY = "linkgate_session"
DEGRADED_SESSION_KEY = "linkgate_degraded_session"
DEVICE_KEY = "linkgate_device_id"


class SessionStorage(ABC):
    """String key/value store that survives process restarts."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class MemoryStorage(SessionStorage):
    """Non-durable storage, for tests and short-lived tools."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage(SessionStorage):
    """JSON file storage; writes replace the file atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def get_device_id(storage: SessionStorage) -> str:
    """Stable per-installation device id, created on first use."""
    device_id = storage.get(DEVICE_KEY)
    if not device_id:
        device_id = token_hex(16)
        storage.set(DEVICE_KEY, device_id)
    return device_id
