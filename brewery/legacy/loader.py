"""One-time import of the legacy data layout.

Older versions kept everything in two documents in the data folder:
``data.json`` (install time, barrel clock, statistics) and ``worlddata.json``
(ingredients, legacy brews, players and per-world sections for cauldrons,
barrels and wakeups). The import runs once; finalize() renames the files so
they are not picked up again.

Global sections are read on the main thread. World sections are parsed on a
worker thread under the load gate and handed back to the main thread, which
only registers them if the world is still loaded.
"""
from __future__ import annotations
import json
import logging
import shutil
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import config
from ..codec.records import LoaderRegistry, deserialize_ingredients
from ..errors import ConcurrencyTimeout
from ..ingredients import IngredientCollection, SimpleItem, to_short
from ..registry import BreweryRegistry, MainThreadQueue
from ..storage.entities import (
    Barrel, BoundingBox, BPlayer, Cauldron, Location, MiscData, Wakeup, java_list_hash,
)
from ..woods import BarrelWoodType
from .gate import DataLoadGate

logger = logging.getLogger(__name__)

DATA_FILE = "data.json"
WORLD_DATA_FILE = "worlddata.json"
WORLD_DATA_BACKUP_FILE = "worlddataBackup.json"
LEGACY_FILES = (DATA_FILE, WORLD_DATA_FILE, WORLD_DATA_BACKUP_FILE)

STATS_SIZE = 7
MS_PER_HOUR = 3_600_000


@dataclass
class LegacyBrew:
    """A brew saved by id in the old layout, before brews carried their own data."""
    id: int
    ingredients: IngredientCollection
    quality: int = 0
    alcohol: int = 0
    distill_runs: int = 0
    age_time: float = 0.0
    wood: Optional[BarrelWoodType] = None
    recipe: Optional[str] = None
    unlabeled: bool = False
    persistent: bool = False
    stat: bool = False
    last_update: int = 0  # hours after install


@dataclass
class WorldLoadResult:
    world: str
    cauldrons: List[Cauldron] = field(default_factory=list)
    barrels: List[Barrel] = field(default_factory=list)
    wakeups: List[Wakeup] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.cauldrons or self.barrels or self.wakeups)


def old_deserialize_ingredients(mats: Dict[str, Any]) -> List[SimpleItem]:
    """Read the oldest ingredient form: ``{"MATERIAL[,durability]": amount}``."""
    ingredients = []
    for key, amount in mats.items():
        parts = key.split(",")
        material = parts[0].strip()
        if not material:
            continue
        durability = None
        if len(parts) == 2:
            try:
                durability = to_short(int(parts[1])) or None
            except ValueError:
                durability = None
        try:
            ingredients.append(SimpleItem(material, durability, int(amount)))
        except (TypeError, ValueError, OverflowError) as e:
            logger.error("Skipping legacy ingredient '%s': %s", key, e)
    return ingredients


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Cannot read legacy file %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Legacy file %s does not contain an object", path)
        return None
    return data


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _int_list(value: Any) -> List[int]:
    """Numeric members of a list value; anything else is dropped."""
    if not isinstance(value, list):
        return []
    numbers = []
    for item in value:
        try:
            numbers.append(int(item))
        except (TypeError, ValueError, OverflowError):
            continue
    return numbers


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if value is not None:
        logger.error("Expected an object at %s in %s, ignoring it", where, WORLD_DATA_FILE)
    return {}


def _legacy_id(section: str, world: str, key: str) -> str:
    # stable ids, so an import that is run again overwrites instead of duplicating
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{WORLD_DATA_FILE}/{section}/{world}/{key}"))


def _block(text: Optional[str], world: str) -> Optional[Location]:
    if not isinstance(text, str) or not text:
        return None
    parts = text.split("/")
    if len(parts) != 3:
        return None
    try:
        return Location(world, *(float(int(p)) for p in parts))
    except ValueError:
        return None


class LegacyMigrationLoader:
    def __init__(self, data_dir: str, loaders: LoaderRegistry, gate: DataLoadGate,
                 retention_hours: Optional[int] = None):
        self.data_dir = Path(data_dir)
        self.loaders = loaders
        self.gate = gate
        self.retention_hours = config.LEGACY_RETENTION_HOURS if retention_hours is None else retention_hours
        self._world_data: Optional[Dict[str, Any]] = None
        self._world_data_lock = threading.Lock()
        # set by the world loader when a world could not be read; the files are then kept
        self.world_load_failed = False

    def has_legacy_data(self) -> bool:
        return (self.data_dir / DATA_FILE).exists() or (self.data_dir / WORLD_DATA_FILE).exists()

    def finalize(self):
        """Rename the legacy files to ``*.old`` so the import never runs again."""
        for name in LEGACY_FILES:
            path = self.data_dir / name
            if path.exists():
                path.rename(path.with_name(name + ".old"))
                logger.info("Renamed legacy file %s to %s.old", name, name)
        with self._world_data_lock:
            self._world_data = None

    # --- Global sections (main thread) ---
    def read_data(self, registry: BreweryRegistry, now_ms: Optional[int] = None):
        """Import misc data, legacy brews and players into ``registry``."""
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        misc = self._read_misc(now_ms)

        world_data = self._get_world_data()
        if world_data is not None:
            ingredients = self._read_ingredients(_mapping(world_data.get("Ingredients"), "Ingredients"))
            brews = self._read_brews(_mapping(world_data.get("Brew"), "Brew"), ingredients)
            if not misc.brews_created or misc.brews_created[0] <= 0:
                misc.brews_created = [len(brews)] + [0] * (STATS_SIZE - 1)
                misc.brews_created_hash = java_list_hash(misc.brews_created)
            for brew in self.purge_brews(brews, misc.install_time, now_ms):
                registry.add_legacy_brew(brew)
            for player in self._read_players(_mapping(world_data.get("Player"), "Player")):
                registry.add_player(player)

        registry.set_misc(misc)

    def _read_misc(self, now_ms: int) -> MiscData:
        misc = MiscData(install_time=now_ms)
        path = self.data_dir / DATA_FILE
        if not path.exists():
            return misc
        data = _read_json(path)
        if data is None:
            return misc
        # unreadable values fall back to their defaults
        misc.install_time = _as_int(data.get("installTime"), now_ms)
        misc.mc_barrel_time = _as_int(data.get("MCBarrelTime"), 0)
        misc.prev_save_seeds = _int_list(data.get("prevSaveSeeds"))
        created = _int_list(data.get("brewsCreated"))
        if len(created) == STATS_SIZE:
            # statistics are only trusted if the stored hash still matches
            if java_list_hash(created) == data.get("brewsCreatedH"):
                misc.brews_created = created
                misc.brews_created_hash = java_list_hash(created)
            else:
                logger.warning("Ignoring legacy brew statistics: hash mismatch")
        return misc

    def _read_ingredients(self, section: Dict[str, Any]) -> Dict[str, IngredientCollection]:
        result = {}
        for ing_id, entry in section.items():
            if not isinstance(entry, dict):
                logger.error("Ingredient id '%s' incomplete in %s", ing_id, WORLD_DATA_FILE)
                continue
            mats = entry.get("mats")
            if isinstance(mats, dict):
                result[ing_id] = IngredientCollection(old_deserialize_ingredients(mats),
                                                      _as_int(entry.get("cookedTime"), 0))
            elif isinstance(mats, str):
                result[ing_id] = deserialize_ingredients(mats, self.loaders)
            else:
                logger.error("Ingredient id '%s' incomplete in %s", ing_id, WORLD_DATA_FILE)
        return result

    def _read_brews(self, section: Dict[str, Any],
                    ingredients: Dict[str, IngredientCollection]) -> List[LegacyBrew]:
        brews = []
        for uid, entry in section.items():
            try:
                brew_id = int(uid)
            except ValueError:
                logger.error("Skipping legacy brew with invalid id '%s'", uid)
                continue
            if not isinstance(entry, dict):
                logger.error("Skipping legacy brew '%s': not an object", uid)
                continue
            try:
                brews.append(self._parse_brew(brew_id, entry, ingredients))
            except (TypeError, ValueError, OverflowError) as e:
                logger.error("Skipping legacy brew '%s': %s", uid, e)
        return brews

    def _parse_brew(self, brew_id: int, entry: Dict[str, Any],
                    ingredients: Dict[str, IngredientCollection]) -> LegacyBrew:
        ing_id = str(entry.get("ingId"))
        collection = ingredients.get(ing_id)
        if collection is None:
            logger.error("Ingredient id '%s' not found in %s", ing_id, WORLD_DATA_FILE)
            collection = IngredientCollection()
        wood = float(entry.get("wood", -1.0))
        recipe = entry.get("recipe")
        return LegacyBrew(
            id=brew_id,
            ingredients=collection,
            quality=int(entry.get("quality", 0)),
            alcohol=int(entry.get("alc", 0)),
            distill_runs=int(entry.get("distillRuns", 0)),
            age_time=float(entry.get("ageTime", 0.0)),
            wood=BarrelWoodType.from_any(wood) if wood >= 0 else None,
            recipe=recipe if isinstance(recipe, str) else None,
            unlabeled=bool(entry.get("unlabeled", False)),
            persistent=bool(entry.get("persist", False)),
            stat=bool(entry.get("stat", False)),
            last_update=int(entry.get("lastUpdate", 0)),
        )

    def purge_brews(self, brews: List[LegacyBrew], install_time: int, now_ms: int) -> List[LegacyBrew]:
        """Drop brews not updated within the retention window.

        ``last_update`` counts hours since install, so the cut-off is the
        current hour after install minus the window.
        """
        hours_after_install = int((now_ms - install_time) / MS_PER_HOUR)
        purge_time = hours_after_install - self.retention_hours
        if purge_time <= 0:
            return list(brews)
        kept = [b for b in brews if b.last_update >= purge_time]
        removed = len(brews) - len(kept)
        if removed:
            logger.info("Removed %d legacy brews not updated in the last %d hours", removed, self.retention_hours)
        return kept

    def _read_players(self, section: Dict[str, Any]) -> List[BPlayer]:
        players = []
        for player_uuid, entry in section.items():
            if not isinstance(entry, dict):
                logger.error("Skipping legacy player '%s': not an object", player_uuid)
                continue
            try:
                players.append(BPlayer(
                    id=player_uuid,
                    quality=int(entry.get("quality", 0)),
                    drunkenness=int(entry.get("drunk", 0)),
                    offline_drunkenness=int(entry.get("offDrunk", 0)),
                ))
            except (TypeError, ValueError, OverflowError) as e:
                logger.error("Skipping legacy player '%s': %s", player_uuid, e)
        return players

    # --- World sections (any thread) ---
    def _get_world_data(self) -> Optional[Dict[str, Any]]:
        with self._world_data_lock:
            if self._world_data is None:
                path = self.data_dir / WORLD_DATA_FILE
                if not path.exists():
                    return None
                started = time.monotonic()
                self._world_data = _read_json(path)
                logger.debug("Loaded %s in %.0fms", WORLD_DATA_FILE, (time.monotonic() - started) * 1000)
            return self._world_data

    def load_world_data(self, world: str) -> WorldLoadResult:
        """Parse the cauldrons, barrels and wakeups of one world. Touches no live state.

        An entry that cannot be read is logged and skipped; its siblings are
        still loaded.
        """
        result = WorldLoadResult(world)
        data = self._get_world_data()
        if data is None:
            return result

        sections = (
            ("BCauldron", self._parse_cauldron, result.cauldrons),
            ("Barrel", self._parse_barrel, result.barrels),
            ("Wakeup", self._parse_wakeup, result.wakeups),
        )
        for section, parse, target in sections:
            entries = _mapping(_mapping(data.get(section), section).get(world), f"{section}.{world}")
            for key, entry in entries.items():
                try:
                    parsed = parse(world, key, entry)
                except (TypeError, ValueError, OverflowError) as e:
                    logger.error("Skipping %s.%s.%s in %s: %s", section, world, key, WORLD_DATA_FILE, e)
                    continue
                if parsed is not None:
                    target.append(parsed)
        return result

    def _parse_cauldron(self, world: str, key: str, entry: Dict[str, Any]) -> Optional[Cauldron]:
        if not isinstance(entry, dict):
            logger.error("Invalid entry in %s: BCauldron.%s.%s", WORLD_DATA_FILE, world, key)
            return None
        raw = entry.get("block")
        block = _block(raw, world)
        if block is None:
            logger.error("%s block data in %s: BCauldron.%s.%s",
                         "Missing" if raw is None else "Incomplete", WORLD_DATA_FILE, world, key)
            return None
        mats = entry.get("ingredients")
        if isinstance(mats, dict):
            ingredients = IngredientCollection(old_deserialize_ingredients(mats))
        elif isinstance(mats, str):
            ingredients = deserialize_ingredients(mats, self.loaders)
        else:
            logger.error("Cauldron BCauldron.%s.%s is missing its ingredients", world, key)
            ingredients = IngredientCollection()
        return Cauldron(_legacy_id("BCauldron", world, key), block, ingredients, int(entry.get("state", 0)))

    def _parse_barrel(self, world: str, key: str, entry: Dict[str, Any]) -> Optional[Barrel]:
        if not isinstance(entry, dict):
            logger.error("Invalid entry in %s: Barrel.%s.%s", WORLD_DATA_FILE, world, key)
            return None
        raw = entry.get("spigot")
        spigot = _block(raw, world)
        if spigot is None:
            logger.error("%s block data in %s: Barrel.%s.%s",
                         "Missing" if raw is None else "Incomplete", WORLD_DATA_FILE, world, key)
            return None
        bounds = None
        if "bounds" in entry:
            bounds = BoundingBox.deserialize(entry.get("bounds"))
        elif "st" in entry:
            # stair and wood corner points from the oldest layout
            points = str(entry.get("st", "")).split(",")
            wood_points = str(entry.get("wo", "")).split(",")
            if len(wood_points) > 1:
                points += wood_points
            try:
                bounds = BoundingBox.from_points([int(p) for p in points])
            except ValueError as e:
                logger.error("Failed to build bounds from stair and wood points of Barrel.%s.%s: %s",
                             world, key, e)
        if bounds is None:
            logger.error("Barrel.%s.%s has no usable bounds, skipping", world, key)
            return None
        return Barrel(
            id=_legacy_id("Barrel", world, key),
            spigot=spigot,
            bounds=bounds,
            time=float(entry.get("time", 0.0)),
            sign=int(entry.get("sign", 0)),
            wood=BarrelWoodType.from_any(entry.get("wood", 0)) or BarrelWoodType.ANY,
        )

    def _parse_wakeup(self, world: str, key: str, entry: Any) -> Optional[Wakeup]:
        parts = str(entry).split("/") if entry is not None else []
        if len(parts) != 5:
            logger.error("Incomplete location data in %s: Wakeup.%s.%s", WORLD_DATA_FILE, world, key)
            return None
        try:
            x, y, z, pitch, yaw = (float(p) for p in parts)
        except ValueError:
            logger.error("Invalid location data in %s: Wakeup.%s.%s", WORLD_DATA_FILE, world, key)
            return None
        return Wakeup(_legacy_id("Wakeup", world, key), Location(world, x, y, z, yaw, pitch))

    # --- Background load ---
    def load_worlds(self, worlds: Iterable[str], main_queue: MainThreadQueue,
                    registry: BreweryRegistry) -> bool:
        """Parse each world under the load gate and queue its merge.

        Returns False if the gate could not be taken; nothing is queued then.
        A world that fails to load does not stop the others, but sets
        ``world_load_failed`` so the legacy files are not retired.
        """
        try:
            self.gate.acquire_load()
        except ConcurrencyTimeout as e:
            logger.error("Could not load world data: %s", e)
            self.world_load_failed = True
            return False
        try:
            for world in worlds:
                try:
                    result = self.load_world_data(world)
                except Exception:
                    logger.exception("Error loading world data of %s", world)
                    self.world_load_failed = True
                    continue
                main_queue.submit(lambda r=result: self.merge(r, registry))
        finally:
            self.gate.release_load()
            if self.gate.count == 0:
                logger.info("Background data loading complete")
        return True

    def start_background_load(self, worlds: Iterable[str], main_queue: MainThreadQueue,
                              registry: BreweryRegistry) -> threading.Thread:
        worker = threading.Thread(
            target=self.load_worlds,
            args=(list(worlds), main_queue, registry),
            name="brewery-legacy-loader",
            daemon=True,
        )
        worker.start()
        return worker

    @staticmethod
    def merge(result: WorldLoadResult, registry: BreweryRegistry) -> bool:
        """Register one world's entities; a world unloaded meanwhile is dropped."""
        if not registry.is_world_loaded(result.world):
            logger.debug("World %s unloaded before its data was merged", result.world)
            return False
        for cauldron in result.cauldrons:
            registry.add_cauldron(cauldron)
        for barrel in result.barrels:
            registry.add_barrel(barrel)
        for wakeup in result.wakeups:
            registry.add_wakeup(wakeup)
        return True


def migrate_data_folder(old_dir: str, new_dir: str) -> bool:
    """Copy an old data folder to a new location that doesn't exist yet."""
    old_path, new_path = Path(old_dir), Path(new_dir)
    if not old_path.is_dir() or new_path.exists():
        return False
    shutil.copytree(old_path, new_path)
    logger.info("Copied data folder %s to %s", old_path, new_path)
    return True
