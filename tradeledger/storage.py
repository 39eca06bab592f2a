# tradeledger/storage.py
"""
Key-value persistence used by the ledger and the exposure weight tables.

The pipeline only needs get / set / keys over JSON-serializable values.
Two implementations are provided: an in-memory dict (tests, dry runs) and a
directory of JSON files, one file per key.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


class InMemoryStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # stored as text; get() always returns a fresh copy
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class JsonFileStore:
    """
    One JSON file per key under a directory.

    Writes go to a temporary file first and are moved into place, so a
    failed write leaves the previous value intact.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^\w\-.]", "_", key)
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(value, f, ensure_ascii=False, indent=1)
        os.replace(tmp, path)
        logger.debug("wrote %s (%d bytes)", path.name, path.stat().st_size)

    def keys(self, prefix: str = "") -> List[str]:
        names = [p.stem for p in self.directory.glob("*.json")]
        return sorted(n for n in names if n.startswith(prefix))
