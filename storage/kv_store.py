from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from common.logger import get_logger

log = get_logger(__name__)


class KeyValueStore(ABC):
    """
    Minimal durable key-value repository. Keys and values are strings;
    callers serialize their own payloads.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def put(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> List[str]: ...

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return [k for k in self.keys() if k.startswith(prefix)]

    def clear(self, prefix: str = "") -> int:
        doomed = self.keys_with_prefix(prefix)
        for k in doomed:
            self.delete(k)
        return len(doomed)


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class FileStore(KeyValueStore):
    """One file per key inside ``directory``; the filename is the URL-quoted key."""

    SUFFIX = ".kv"

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def put(self, key: str, value: str) -> None:
        path = self._path(key)
        # write-then-rename so readers never see a half-written value
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> List[str]:
        return sorted(
            unquote(p.name[: -len(self.SUFFIX)])
            for p in self.directory.glob(f"*{self.SUFFIX}")
        )
