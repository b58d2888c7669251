"""Startup, per-tick housekeeping and shutdown of the brewery core."""
from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import config
from .codec.records import LoaderRegistry, default_loader_registry
from .legacy.gate import DataLoadGate
from .legacy.loader import LegacyMigrationLoader
from .quality import QualityEngine
from .recipe_loader import load_recipes
from .recipes import RecipeCatalog
from .registry import BreweryRegistry, MainThreadQueue
from .storage.base import DataManager, StorageSettings
from .storage.entities import MiscData

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None):
    logging.basicConfig(level=(level or config.LOG_LEVEL), format=LOG_FORMAT)


@dataclass
class BreweryContext:
    settings: StorageSettings
    loaders: LoaderRegistry
    catalog: RecipeCatalog
    engine: QualityEngine
    storage: DataManager
    registry: BreweryRegistry
    gate: DataLoadGate
    main_queue: MainThreadQueue
    legacy: LegacyMigrationLoader
    legacy_thread: Optional[threading.Thread] = None
    legacy_pending: bool = False


def start(settings: Optional[StorageSettings] = None,
          recipe_document: Optional[Dict[str, Dict[str, Any]]] = None,
          worlds: Iterable[str] = (),
          now_ms: Optional[int] = None) -> BreweryContext:
    """Load recipes, open storage and fill the live registry.

    Must run on the main thread: the registry and queue created here belong
    to the calling thread.

    Raises:
        StorageInitError: If the storage backend cannot be opened.
    """
    settings = settings or StorageSettings.from_env()
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    worlds = list(worlds)

    loaders = default_loader_registry()
    catalog = RecipeCatalog(load_recipes(recipe_document or {}))
    engine = QualityEngine(catalog, config.NEW_WOOD_ALGORITHM)

    storage = DataManager.create(settings, loaders)

    registry = BreweryRegistry()
    for world in worlds:
        registry.add_world(world)
    registry.set_misc(storage.get_misc_data() or MiscData(install_time=now_ms))
    for barrel in storage.get_all_barrels():
        registry.add_barrel(barrel)
    for cauldron in storage.get_all_cauldrons():
        registry.add_cauldron(cauldron)
    for player in storage.get_all_players():
        registry.add_player(player)
    for wakeup in storage.get_all_wakeups():
        registry.add_wakeup(wakeup)
    logger.info("Loaded %d barrels, %d cauldrons, %d players, %d wakeups",
                len(registry.barrels), len(registry.cauldrons),
                len(registry.players), len(registry.wakeups))

    gate = DataLoadGate()
    main_queue = MainThreadQueue()
    legacy = LegacyMigrationLoader(settings.data_dir, loaders, gate)
    context = BreweryContext(settings, loaders, catalog, engine, storage,
                             registry, gate, main_queue, legacy)

    if legacy.has_legacy_data():
        logger.info("Legacy data found in %s, importing", settings.data_dir)
        legacy.read_data(registry, now_ms)
        context.legacy_thread = legacy.start_background_load(worlds, main_queue, registry)
        context.legacy_pending = True
    return context


def tick(context: BreweryContext, now: Optional[float] = None):
    """Main thread housekeeping: merge loaded data, finish migration, auto-save."""
    context.main_queue.drain()
    if context.legacy_pending and not context.legacy_thread.is_alive():
        # the worker queues merges before it exits, pick up the last ones
        context.main_queue.drain()
        if context.legacy.world_load_failed:
            # keep the legacy files so the import runs again on the next start
            context.legacy_pending = False
            logger.error("Legacy world data was not fully imported, keeping the legacy files in %s",
                         context.settings.data_dir)
        elif context.storage.save_all(context.registry, context.gate):
            context.legacy.finalize()
            context.legacy_pending = False
            logger.info("Legacy data migration complete")
    context.storage.try_auto_save(context.registry, context.gate, now)


def shutdown(context: BreweryContext, save: bool = True):
    if context.legacy_thread is not None and context.legacy_thread.is_alive():
        context.legacy_thread.join(context.gate.attempts * context.gate.backoff)
    context.main_queue.drain()
    context.storage.exit(context.registry, context.gate, save)
