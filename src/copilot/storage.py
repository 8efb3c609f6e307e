from __future__ import annotations

import copy
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import orjson

logger = logging.getLogger(__name__)


class JSONDocumentStore:
    """Flat JSON document on disk with get-all / replace-all semantics."""

    def __init__(self, path: Path, default: dict[str, Any]) -> None:
        self._path = path
        self._default = default
        self._document = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> dict[str, Any]:
        return copy.deepcopy(self._document)

    def replace(self, document: dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)
        self._write()

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return copy.deepcopy(self._default)
        try:
            data = orjson.loads(self._path.read_bytes())
        except (OSError, orjson.JSONDecodeError):
            logger.exception("Failed to load JSON document %s; starting empty", self._path)
            return copy.deepcopy(self._default)
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed JSON document %s", self._path)
            return copy.deepcopy(self._default)
        return data

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = orjson.dumps(self._document, option=orjson.OPT_INDENT_2)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError:
            logger.exception("Failed to save JSON document %s", self._path)
            Path(tmp_name).unlink(missing_ok=True)


class MemoryDocumentStore(JSONDocumentStore):
    """In-process store with the same contract; nothing touches the disk."""

    def __init__(self, default: dict[str, Any]) -> None:
        self._path = Path(":memory:")
        self._default = default
        self._document = copy.deepcopy(default)

    def _write(self) -> None:
        return None
