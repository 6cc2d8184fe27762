"""
Observable store and durable key-value slots
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generic, List, Optional, TypeVar, Union
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObservableStore(Generic[T]):
    """
    Holds one value and notifies subscribers synchronously on every commit
    """

    def __init__(self, initial: T):
        self._state = initial
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def state(self) -> T:
        return self._state

    def set(self, state: T):
        self._state = state
        self.notify()

    def notify(self):
        for subscriber in list(self._subscribers):
            subscriber(self._state)

    def subscribe(self, subscriber: Callable[[T], None]) -> Callable[[], None]:
        """Register a subscriber; returns a callable that removes it"""
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe


class KeyValueStore:
    """String slots addressed by key"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str):
        raise NotImplementedError

    def delete(self, key: str):
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str):
        self._data[key] = value

    def delete(self, key: str):
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """
    Key-value slots kept in one JSON object on disk

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, data: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str):
        try:
            data = self._read()
        except ValueError:
            logger.warning(f"Replacing unreadable state file {self.path}")
            data = {}
        data[key] = value
        self._write(data)

    def delete(self, key: str):
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)
