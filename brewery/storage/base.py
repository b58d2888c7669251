"""Storage abstraction shared by all backends.

Backends implement a handful of raw primitives working on plain dicts and
raise StorageOperationError when one fails. DataManager turns those dicts
into entities and applies the error policy: a failing read yields None, a
failing write is logged and skipped. Only a backend that cannot open raises
to the caller (StorageInitError).
"""
from __future__ import annotations
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Type, TypeVar

import config
from ..codec.records import LoaderRegistry
from ..errors import ConcurrencyTimeout, EncodeError, MalformedRecordError, StorageOperationError
from .entities import (
    BARRELS, CAULDRONS, MISC, MISC_ID, PLAYERS, WAKEUPS,
    Barrel, BPlayer, Cauldron, MiscData, Wakeup,
)

if TYPE_CHECKING:
    from ..legacy.gate import DataLoadGate
    from ..registry import BreweryRegistry

logger = logging.getLogger(__name__)

E = TypeVar("E")

ID_LENGTH = 36
TABLES = {BARRELS: ID_LENGTH, CAULDRONS: ID_LENGTH, PLAYERS: ID_LENGTH, WAKEUPS: ID_LENGTH, MISC: len(MISC_ID)}


@dataclass(frozen=True)
class StorageSettings:
    data_dir: str = "data"
    storage_type: str = "flatfile"
    database: str = "brewery-data"
    table_prefix: str = "brewery_"
    autosave_minutes: int = 3

    @classmethod
    def from_env(cls) -> StorageSettings:
        return cls(
            data_dir=config.get_data_dir(),
            storage_type=config.get_storage_type(),
            database=config.get_storage_database(),
            table_prefix=config.get_table_prefix(),
            autosave_minutes=config.AUTOSAVE_MINUTES,
        )


class DataManager(ABC):
    """Keyed entity persistence over a backend-specific store."""

    def __init__(self, settings: StorageSettings, loaders: LoaderRegistry):
        self.settings = settings
        self.loaders = loaders
        self.last_auto_save = time.monotonic()

    @staticmethod
    def create(settings: StorageSettings, loaders: LoaderRegistry) -> DataManager:
        """Open the backend selected by ``settings.storage_type``.

        Raises:
            StorageInitError: If the backend cannot be opened.
        """
        if settings.storage_type == "sqlite":
            from .sqlite import SQLiteStorage
            manager: DataManager = SQLiteStorage(settings, loaders)
        else:
            from .flatfile import FlatFileStorage
            manager = FlatFileStorage(settings, loaders)
        logger.info("Using %s storage", settings.storage_type)
        return manager

    # --- Backend primitives ---
    @abstractmethod
    def _read(self, table: str, entity_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def _read_all(self, table: str) -> Dict[str, Dict[str, Any]]:
        ...

    @abstractmethod
    def _write(self, table: str, entity_id: str, data: Dict[str, Any]):
        ...

    @abstractmethod
    def _write_all(self, table: str, rows: Dict[str, Dict[str, Any]]):
        """Replace the whole content of ``table`` with ``rows``."""

    @abstractmethod
    def _delete(self, table: str, entity_id: str):
        ...

    @abstractmethod
    def create_table(self, name: str, max_id_length: int):
        ...

    @abstractmethod
    def drop_table(self, name: str):
        ...

    @abstractmethod
    def close(self):
        ...

    # --- Generic operations ---
    def get_generic(self, entity_id: str, table: str, cls: Type[E]) -> Optional[E]:
        try:
            data = self._read(table, entity_id)
        except StorageOperationError as e:
            logger.error("Failed to read %s.%s: %s", table, entity_id, e)
            return None
        if data is None:
            return None
        return self._build(entity_id, table, cls, data)

    def get_all_generic(self, table: str, cls: Type[E]) -> List[E]:
        try:
            rows = self._read_all(table)
        except StorageOperationError as e:
            logger.error("Failed to read table %s: %s", table, e)
            return []
        entities = []
        for entity_id, data in rows.items():
            entity = self._build(entity_id, table, cls, data)
            if entity is not None:
                entities.append(entity)
        return entities

    def save_generic(self, entity, table: str) -> bool:
        try:
            self._write(table, entity.id, entity.to_dict())
            return True
        except (StorageOperationError, EncodeError) as e:
            logger.error("Failed to save %s.%s: %s", table, entity.id, e)
            return False

    def save_all_generic(self, entities: Iterable, table: str) -> bool:
        """Make ``table`` hold exactly ``entities``; rows not among them are removed."""
        rows = {}
        for entity in entities:
            try:
                rows[entity.id] = entity.to_dict()
            except EncodeError as e:
                logger.error("Failed to save table %s, cannot encode %s: %s", table, entity.id, e)
                return False
        try:
            self._write_all(table, rows)
            return True
        except StorageOperationError as e:
            logger.error("Failed to save table %s (%d rows): %s", table, len(rows), e)
            return False

    def delete_generic(self, entity_id: str, table: str) -> bool:
        try:
            self._delete(table, entity_id)
            return True
        except StorageOperationError as e:
            logger.error("Failed to delete %s.%s: %s", table, entity_id, e)
            return False

    def _build(self, entity_id: str, table: str, cls: Type[E], data: Dict[str, Any]) -> Optional[E]:
        try:
            return cls.from_dict(entity_id, data, self.loaders)
        except (MalformedRecordError, ValueError, TypeError, OverflowError) as e:
            logger.error("Skipping malformed %s entry '%s': %s", table, entity_id, e)
            return None

    # --- Barrels ---
    def get_barrel(self, barrel_id: str) -> Optional[Barrel]:
        return self.get_generic(barrel_id, BARRELS, Barrel)

    def get_all_barrels(self) -> List[Barrel]:
        return self.get_all_generic(BARRELS, Barrel)

    def save_barrel(self, barrel: Barrel) -> bool:
        return self.save_generic(barrel, BARRELS)

    def save_all_barrels(self, barrels: Iterable[Barrel]) -> bool:
        return self.save_all_generic(barrels, BARRELS)

    def delete_barrel(self, barrel_id: str) -> bool:
        return self.delete_generic(barrel_id, BARRELS)

    # --- Cauldrons ---
    def get_cauldron(self, cauldron_id: str) -> Optional[Cauldron]:
        return self.get_generic(cauldron_id, CAULDRONS, Cauldron)

    def get_all_cauldrons(self) -> List[Cauldron]:
        return self.get_all_generic(CAULDRONS, Cauldron)

    def save_cauldron(self, cauldron: Cauldron) -> bool:
        return self.save_generic(cauldron, CAULDRONS)

    def save_all_cauldrons(self, cauldrons: Iterable[Cauldron]) -> bool:
        return self.save_all_generic(cauldrons, CAULDRONS)

    def delete_cauldron(self, cauldron_id: str) -> bool:
        return self.delete_generic(cauldron_id, CAULDRONS)

    # --- Players ---
    def get_player(self, player_uuid: str) -> Optional[BPlayer]:
        return self.get_generic(player_uuid, PLAYERS, BPlayer)

    def get_all_players(self) -> List[BPlayer]:
        return self.get_all_generic(PLAYERS, BPlayer)

    def save_player(self, player: BPlayer) -> bool:
        return self.save_generic(player, PLAYERS)

    def save_all_players(self, players: Iterable[BPlayer]) -> bool:
        return self.save_all_generic(players, PLAYERS)

    def delete_player(self, player_uuid: str) -> bool:
        return self.delete_generic(player_uuid, PLAYERS)

    # --- Wakeups ---
    def get_wakeup(self, wakeup_id: str) -> Optional[Wakeup]:
        return self.get_generic(wakeup_id, WAKEUPS, Wakeup)

    def get_all_wakeups(self) -> List[Wakeup]:
        return self.get_all_generic(WAKEUPS, Wakeup)

    def save_wakeup(self, wakeup: Wakeup) -> bool:
        return self.save_generic(wakeup, WAKEUPS)

    def save_all_wakeups(self, wakeups: Iterable[Wakeup]) -> bool:
        return self.save_all_generic(wakeups, WAKEUPS)

    def delete_wakeup(self, wakeup_id: str) -> bool:
        return self.delete_generic(wakeup_id, WAKEUPS)

    # --- Misc ---
    def get_misc_data(self) -> Optional[MiscData]:
        return self.get_generic(MISC_ID, MISC, MiscData)

    def save_misc_data(self, data: MiscData) -> bool:
        return self.save_generic(data, MISC)

    # --- Whole registry ---
    def save_all(self, registry: BreweryRegistry, gate: DataLoadGate) -> bool:
        """Checkpoint every live entity.

        Waits for running legacy loads to finish first. If the gate cannot be
        taken nothing is written.
        """
        try:
            with gate.saving():
                ok = self.save_all_barrels(registry.barrels.values())
                ok &= self.save_all_cauldrons(registry.cauldrons.values())
                ok &= self.save_all_players(registry.players.values())
                ok &= self.save_all_wakeups(registry.wakeups.values())
                if registry.misc is not None:
                    ok &= self.save_misc_data(registry.misc)
        except ConcurrencyTimeout as e:
            logger.error("Save skipped: %s", e)
            return False
        logger.debug("Saved %d barrels, %d cauldrons, %d players, %d wakeups",
                     len(registry.barrels), len(registry.cauldrons),
                     len(registry.players), len(registry.wakeups))
        return ok

    def try_auto_save(self, registry: BreweryRegistry, gate: DataLoadGate,
                      now: Optional[float] = None) -> bool:
        """Save if the auto-save interval has elapsed. Returns True if a save ran."""
        now = time.monotonic() if now is None else now
        if now - self.last_auto_save < self.settings.autosave_minutes * 60:
            return False
        self.last_auto_save = now
        logger.debug("Auto-saving")
        self.save_all(registry, gate)
        return True

    def exit(self, registry: BreweryRegistry, gate: DataLoadGate, save: bool = True):
        if save:
            self.save_all(registry, gate)
        self.close()
        logger.info("Storage closed")
