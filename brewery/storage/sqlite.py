"""Relational storage on SQLite.

Every table is ``<prefix><name> (id VARCHAR(n) PRIMARY KEY, data TEXT)``
with the entity document serialized by EntitySerializer. A replace-all runs
as one transaction through a staging table, so readers see either the old
or the new table content, never a mix.
"""
from __future__ import annotations
import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..codec.records import LoaderRegistry
from ..errors import MalformedRecordError, StorageInitError, StorageOperationError
from .base import TABLES, DataManager, StorageSettings
from .serializer import EntitySerializer

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z0-9_]+$")


class Transaction:
    """BEGIN on enter, COMMIT on clean exit, ROLLBACK (and re-raise) on error."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def __enter__(self) -> sqlite3.Connection:
        self.conn.execute("BEGIN IMMEDIATE")
        return self.conn

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.conn.execute("COMMIT")
        else:
            try:
                self.conn.execute("ROLLBACK")
            except sqlite3.Error as rollback_error:
                logger.error("Rollback failed: %s", rollback_error)
        return False


class SQLiteStorage(DataManager):
    def __init__(self, settings: StorageSettings, loaders: LoaderRegistry):
        super().__init__(settings, loaders)
        self._lock = threading.RLock()
        self.serializer = EntitySerializer()
        self.prefix = settings.table_prefix
        self.path = Path(settings.data_dir) / f"{settings.database}.db"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # autocommit mode, transactions are opened explicitly by Transaction
            self.conn = sqlite3.connect(str(self.path), isolation_level=None, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            for name, length in TABLES.items():
                self.create_table(name, length)
        except (OSError, sqlite3.Error, StorageOperationError) as e:
            raise StorageInitError(f"Cannot open database {self.path}: {e}") from e

    def _table(self, name: str) -> str:
        table = self.prefix + name
        if not _TABLE_NAME.match(table):
            raise StorageOperationError(f"Invalid table name '{table}'")
        return table

    def _decode(self, payload: str) -> Dict[str, Any]:
        try:
            return self.serializer.deserialize(payload)
        except MalformedRecordError as e:
            raise StorageOperationError(str(e)) from e

    def _read(self, table: str, entity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            try:
                row = self.conn.execute(
                    f"SELECT data FROM {self._table(table)} WHERE id = ?", (entity_id,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageOperationError(str(e)) from e
        return self._decode(row["data"]) if row is not None else None

    def _read_all(self, table: str) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            try:
                rows = self.conn.execute(f"SELECT id, data FROM {self._table(table)}").fetchall()
            except sqlite3.Error as e:
                raise StorageOperationError(str(e)) from e
        result = {}
        for row in rows:
            try:
                result[row["id"]] = self.serializer.deserialize(row["data"])
            except MalformedRecordError as e:
                logger.error("Skipping malformed %s row '%s': %s", table, row["id"], e)
        return result

    def _write(self, table: str, entity_id: str, data: Dict[str, Any]):
        payload = self.serializer.serialize(data)
        with self._lock:
            try:
                self.conn.execute(
                    f"INSERT OR REPLACE INTO {self._table(table)} (id, data) VALUES (?, ?)",
                    (entity_id, payload),
                )
            except sqlite3.Error as e:
                raise StorageOperationError(str(e)) from e

    def _write_all(self, table: str, rows: Dict[str, Dict[str, Any]]):
        live = self._table(table)
        staging = f"{live}_staging"
        params = [(entity_id, self.serializer.serialize(data)) for entity_id, data in rows.items()]
        with self._lock:
            try:
                with Transaction(self.conn) as conn:
                    conn.execute(f"DROP TABLE IF EXISTS temp.{staging}")
                    conn.execute(f"CREATE TEMP TABLE {staging} (id TEXT PRIMARY KEY, data TEXT NOT NULL)")
                    conn.executemany(f"INSERT OR REPLACE INTO temp.{staging} (id, data) VALUES (?, ?)", params)
                    conn.execute(f"DELETE FROM {live} WHERE id NOT IN (SELECT id FROM temp.{staging})")
                    conn.execute(f"INSERT OR REPLACE INTO {live} (id, data) SELECT id, data FROM temp.{staging}")
                    conn.execute(f"DROP TABLE temp.{staging}")
            except sqlite3.Error as e:
                raise StorageOperationError(f"Replace-all on {live} rolled back: {e}") from e

    def _delete(self, table: str, entity_id: str):
        with self._lock:
            try:
                self.conn.execute(f"DELETE FROM {self._table(table)} WHERE id = ?", (entity_id,))
            except sqlite3.Error as e:
                raise StorageOperationError(str(e)) from e

    def create_table(self, name: str, max_id_length: int):
        with self._lock:
            try:
                self.conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {self._table(name)} "
                    f"(id VARCHAR({int(max_id_length)}) PRIMARY KEY, data TEXT NOT NULL)"
                )
            except sqlite3.Error as e:
                raise StorageOperationError(str(e)) from e

    def drop_table(self, name: str):
        with self._lock:
            try:
                self.conn.execute(f"DROP TABLE IF EXISTS {self._table(name)}")
            except sqlite3.Error as e:
                raise StorageOperationError(str(e)) from e

    def close(self):
        with self._lock:
            try:
                self.conn.close()
            except sqlite3.Error as e:
                logger.error("Failed to close database: %s", e)
