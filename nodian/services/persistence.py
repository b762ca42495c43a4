from __future__ import annotations

import json
import logging
import os
from typing import Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileStore:
    """String key-value store kept as one JSON object on disk.

    The file is read once on construction and rewritten on every change.
    Read and write failures are logged; the in-memory values stay usable.
    """

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self._values: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not os.path.exists(self.file_path):
            return {}

        try:
            with open(self.file_path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except OSError as exc:
            logger.warning("[session] Could not access %s: %s", self.file_path, exc)
            return {}
        except json.JSONDecodeError as exc:
            logger.warning("[session] Invalid JSON in %s: %s", self.file_path, exc)
            return {}

        if not isinstance(payload, dict):
            logger.warning("[session] Root JSON must be an object; ignoring %s", self.file_path)
            return {}
        return {key: value for key, value in payload.items() if isinstance(key, str) and isinstance(value, str)}

    def _write(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.file_path) or ".", exist_ok=True)
            with open(self.file_path, "w", encoding="utf-8", newline="\n") as handle:
                json.dump(self._values, handle, indent=2)
                handle.write("\n")
        except OSError as exc:
            logger.warning("[session] Could not write %s: %s", self.file_path, exc)

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if self._values.get(key) == value:
            return
        self._values[key] = value
        self._write()

    def delete(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._write()
