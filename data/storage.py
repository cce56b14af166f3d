from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from config.logger import logger
from config.settings import PROGRESS_STORE_PATH


class JsonStore:
    """
    Tiny key/value store persisted as one JSON object on disk.

    Read and write failures are logged and swallowed: a broken store behaves
    like an empty one instead of taking the caller down.
    """

    def __init__(self, path: Union[str, Path] = PROGRESS_STORE_PATH) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error(f"JsonStore read failed for {self.path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, default=str), encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError) as exc:
            logger.error(f"JsonStore write failed for {self.path}: {exc}")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def clear(self) -> None:
        self._write_all({})
