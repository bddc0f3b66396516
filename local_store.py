"""
Durable key/value storage for the shopper client.

All keys live in a single JSON file. Every write rewrites the whole file via
a temporary file and `os.replace`, so a reader never sees a half-written
record.
"""

import json
import os
import tempfile
from typing import Any, Dict, Optional

import structlog

from errors import CorruptLocalState

logger = structlog.get_logger(__name__)

NAMESPACE = "elsahaba"


def namespaced(key: str) -> str:
    return f"{NAMESPACE}_{key}"


class LocalStore:
    def __init__(self, path: str):
        self.path = path

    def _read_all(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                raw = fh.read()
        except OSError as e:
            raise CorruptLocalState(f"Cannot read {self.path}: {e}")
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CorruptLocalState(f"Cannot parse {self.path}: {e}")
        if not isinstance(data, dict):
            raise CorruptLocalState(f"Unexpected top-level value in {self.path}")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent.

        Raises CorruptLocalState when the backing file cannot be parsed.
        """
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        try:
            data = self._read_all()
        except CorruptLocalState:
            logger.warning("Local storage unreadable, rewriting it", path=self.path)
            data = {}
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        try:
            data = self._read_all()
        except CorruptLocalState:
            logger.warning("Local storage unreadable, rewriting it", path=self.path)
            data = {}
        if key in data:
            del data[key]
            self._write_all(data)
