# core/storage.py
"""
Persistent key-value store for runtime state (identity cache, proxy state).

Values live in a single JSON file inside the app data dir. Writes go through
a temp file and an atomic replace and run in a worker thread so the event
loop never blocks on disk.
"""

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from core.errors import StorageError

logger = logging.getLogger(__name__)


class JsonFileStore:
    """Асинхронное key-value хранилище поверх JSON файла"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: Optional[Dict[str, Any]] = None
        self._write_lock = threading.Lock()
        self._version = 0
        self._flushed = 0

    def _load(self) -> Dict[str, Any]:
        if self._data is None:
            self._data = {}
            try:
                if self.path.exists():
                    with open(self.path, 'r', encoding='utf-8') as f:
                        loaded = json.load(f)
                    if isinstance(loaded, dict):
                        self._data = loaded
                    else:
                        logger.warning(f"⚠️ Ignoring malformed state file {self.path}")
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Ошибка чтения состояния {self.path}: {e}")
        return self._data

    async def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    async def set(self, key: str, value: Any):
        """
        Stores value under key and flushes the file.

        Raises:
            StorageError: the file could not be written; the in-memory value
                is kept regardless
        """
        data = self._load()
        data[key] = value
        snapshot = json.loads(json.dumps(data))
        self._version += 1
        await asyncio.to_thread(self._write, snapshot, self._version)

    def _write(self, data: Dict[str, Any], version: int):
        with self._write_lock:
            # a newer snapshot already reached the disk
            if version <= self._flushed:
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                temp_file = self.path.with_suffix('.tmp')
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(data, f, separators=(',', ':'), ensure_ascii=False)
                temp_file.replace(self.path)
                self._flushed = version
            except OSError as e:
                raise StorageError(f"Failed to write {self.path}: {e}") from e
