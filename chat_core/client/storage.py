"""客户端键值存储实现。

- MemoryStorage: 进程内字典，测试与临时会话使用。
- JsonFileStorage: 每个键一个 JSON 文件，写入时先写临时文件再 os.replace，
  保证中途崩溃不会留下半个文件。
"""

import os
import re
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStorage:
    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.client_storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = self._root / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
