from __future__ import annotations

import logging
from pathlib import Path
from typing import TypeVar

from pydantic import TypeAdapter, ValidationError

from marketplace.infrastructure.store.memory_store import ChangeTrackingDict, MemoryCollection


T = TypeVar("T")


class JsonCollection(MemoryCollection[T]):
    """
    A MemoryCollection mirrored to `<data_dir>/<name>.json`.

    The file is read once at start-up and rewritten atomically (temp file then
    rename) after every batch that changed something.
    """

    def __init__(self, name: str, entity_type: type[T], data_dir: str = "./data/store") -> None:
        super().__init__(name)
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._adapter = TypeAdapter(dict[str, entity_type])
        self._logger = logging.getLogger(__name__)
        self._items = ChangeTrackingDict(self._load())

    @property
    def file_path(self) -> Path:
        return self._data_dir / f"{self.name}.json"

    def _load(self) -> dict[str, T]:
        if not self.file_path.exists():
            return {}
        try:
            return self._adapter.validate_json(self.file_path.read_bytes())
        except ValidationError as e:
            self._logger.error(
                "Stored collection could not be read",
                extra={"collection": self.name, "path": str(self.file_path), "error": str(e)},
            )
            raise

    def _flush(self) -> None:
        temp_path = self.file_path.with_suffix(".json.tmp")
        try:
            temp_path.write_bytes(self._adapter.dump_json(self._items, indent=2))
            temp_path.replace(self.file_path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
