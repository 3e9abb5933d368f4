"""JSON file storage: one file per item name, written atomically."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from zync.storage.base import StateStorage

logger = logging.getLogger(__name__)

# Item names become file names: no path separators
_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.]+$")


class JsonFileStorage(StateStorage):
    """Synchronous key-value store on disk behind the async interface.

    Each item lives in ``<directory>/<name>.json``. Writes go to a temp
    file that is renamed over the target, so a crash never leaves a
    half-written snapshot.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, name: str) -> Path:
        if not _NAME_PATTERN.match(name):
            raise ValueError(f"Invalid storage item name: {name!r}")
        return self._dir / f"{name}.json"

    async def get_item(self, name: str) -> dict[str, Any] | None:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Corrupt JSON in %s, ignoring stored state", path)
            return None
        return data if isinstance(data, dict) else None

    async def set_item(self, name: str, value: dict[str, Any]) -> None:
        path = self._path(name)
        self._dir.mkdir(parents=True, exist_ok=True)
        content = json.dumps(value, default=str)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._dir), suffix=".json.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    async def remove_item(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)
