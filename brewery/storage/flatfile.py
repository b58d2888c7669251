"""Single JSON document storage.

Each table is a top-level section of ``<data_dir>/<database>.json`` mapping
ids to entity documents. The file is rewritten after every change through a
temporary file and an atomic rename, so a crash never leaves half a file.
Writes are serialized by a lock, but a replace-all is not atomic with
respect to other processes writing the same file.
"""
from __future__ import annotations
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..codec.records import LoaderRegistry
from ..errors import StorageInitError, StorageOperationError
from .base import TABLES, DataManager, StorageSettings

logger = logging.getLogger(__name__)


class FlatFileStorage(DataManager):
    def __init__(self, settings: StorageSettings, loaders: LoaderRegistry):
        super().__init__(settings, loaders)
        self._lock = threading.RLock()
        self.path = Path(settings.data_dir) / f"{settings.database}.json"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                with open(self.path, "r", encoding="utf-8") as f:
                    self._doc: Dict[str, Any] = json.load(f)
                if not isinstance(self._doc, dict):
                    raise StorageInitError(f"{self.path} does not contain a JSON object")
            else:
                self._doc = {}
            for name, length in TABLES.items():
                self.create_table(name, length)
            self._flush()
        except (OSError, json.JSONDecodeError, StorageOperationError) as e:
            raise StorageInitError(f"Cannot open data file {self.path}: {e}") from e

    def _section(self, table: str) -> Dict[str, Any]:
        section = self._doc.get(table)
        if not isinstance(section, dict):
            section = {}
            self._doc[table] = section
        return section

    def _flush(self, doc: Optional[Dict[str, Any]] = None):
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._doc if doc is None else doc, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageOperationError(f"Cannot write {self.path}: {e}") from e

    def _read(self, table: str, entity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._section(table).get(entity_id)
            return json.loads(json.dumps(data)) if data is not None else None

    def _read_all(self, table: str) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return json.loads(json.dumps(self._section(table)))

    def _commit(self, table: str, section: Dict[str, Any]):
        # the live document only changes once the new file is in place
        doc = dict(self._doc)
        doc[table] = section
        self._flush(doc)
        self._doc = doc

    def _write(self, table: str, entity_id: str, data: Dict[str, Any]):
        with self._lock:
            section = dict(self._section(table))
            section[entity_id] = data
            self._commit(table, section)

    def _write_all(self, table: str, rows: Dict[str, Dict[str, Any]]):
        with self._lock:
            self._commit(table, dict(rows))

    def _delete(self, table: str, entity_id: str):
        with self._lock:
            section = dict(self._section(table))
            if section.pop(entity_id, None) is not None:
                self._commit(table, section)

    def create_table(self, name: str, max_id_length: int):
        # ids are JSON keys here, their length is not limited
        with self._lock:
            self._section(name)

    def drop_table(self, name: str):
        with self._lock:
            if name in self._doc:
                doc = dict(self._doc)
                del doc[name]
                self._flush(doc)
                self._doc = doc

    def close(self):
        with self._lock:
            self._flush()
