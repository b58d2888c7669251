"""Persisted entities and their document form.

Every entity converts to a dict of plain JSON values with to_dict() and back
with from_dict(). Locations and bounding boxes are kept as comma separated
strings so they stay readable in the JSON document. Ingredients are stored
as a single basE91 string.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

from ..codec.records import LoaderRegistry, deserialize_ingredients, serialize_ingredients
from ..errors import MalformedRecordError
from ..ingredients import IngredientCollection
from ..woods import BarrelWoodType

BARRELS = "barrels"
CAULDRONS = "cauldrons"
PLAYERS = "players"
WAKEUPS = "wakeups"
MISC = "misc"

MISC_ID = "misc"


def _fmt(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


@dataclass
class Location:
    world: str
    x: float
    y: float
    z: float
    yaw: float = 0.0
    pitch: float = 0.0

    def serialize(self, rotation: bool = False) -> str:
        parts = [self.world, _fmt(self.x), _fmt(self.y), _fmt(self.z)]
        if rotation:
            parts += [_fmt(self.yaw), _fmt(self.pitch)]
        return ",".join(parts)

    @classmethod
    def deserialize(cls, text: Optional[str]) -> Optional[Location]:
        """Parse ``world,x,y,z`` or ``world,x,y,z,yaw,pitch``; None if invalid."""
        if not isinstance(text, str) or not text:
            return None
        parts = text.split(",")
        if len(parts) not in (4, 6) or not parts[0]:
            return None
        try:
            numbers = [float(p) for p in parts[1:]]
        except ValueError:
            return None
        return cls(parts[0], *numbers)

    def block(self) -> Location:
        """Same location snapped to whole block coordinates."""
        return Location(self.world, float(int(self.x // 1)), float(int(self.y // 1)), float(int(self.z // 1)))


@dataclass
class BoundingBox:
    x1: int
    y1: int
    z1: int
    x2: int
    y2: int
    z2: int

    def __post_init__(self):
        self.x1, self.x2 = sorted((int(self.x1), int(self.x2)))
        self.y1, self.y2 = sorted((int(self.y1), int(self.y2)))
        self.z1, self.z2 = sorted((int(self.z1), int(self.z2)))

    def contains(self, x: int, y: int, z: int) -> bool:
        return self.x1 <= x <= self.x2 and self.y1 <= y <= self.y2 and self.z1 <= z <= self.z2

    def serialize(self) -> str:
        return ",".join(str(v) for v in (self.x1, self.y1, self.z1, self.x2, self.y2, self.z2))

    @classmethod
    def from_points(cls, points: List[int]) -> BoundingBox:
        """Smallest box holding every ``x,y,z`` triple of ``points``."""
        if not points or len(points) % 3 != 0:
            raise ValueError(f"Bounding box needs x,y,z triples, got {len(points)} coordinates")
        xs, ys, zs = points[0::3], points[1::3], points[2::3]
        return cls(min(xs), min(ys), min(zs), max(xs), max(ys), max(zs))

    @classmethod
    def deserialize(cls, text: Optional[str]) -> Optional[BoundingBox]:
        if not isinstance(text, str) or not text:
            return None
        try:
            return cls.from_points([int(p) for p in text.split(",")])
        except ValueError:
            return None


def _document(data: Any, table: str, entity_id: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedRecordError(f"{table}.{entity_id}: expected an object, got {type(data).__name__}")
    return data


def _ingredients(value: Any, table: str, entity_id: str, loaders: LoaderRegistry) -> IngredientCollection:
    if not isinstance(value, str):
        raise MalformedRecordError(f"{table}.{entity_id}: ingredients must be a string")
    return deserialize_ingredients(value, loaders) if value else IngredientCollection()


def _require(data: Dict[str, Any], key: str, table: str, entity_id: str) -> Any:
    value = data.get(key)
    if value is None:
        raise MalformedRecordError(f"{table}.{entity_id}: missing '{key}'")
    return value


def _location(data: Dict[str, Any], key: str, table: str, entity_id: str) -> Location:
    loc = Location.deserialize(_require(data, key, table, entity_id))
    if loc is None:
        raise MalformedRecordError(f"{table}.{entity_id}: invalid location '{data[key]}'")
    return loc


@dataclass
class Barrel:
    TABLE: ClassVar[str] = BARRELS

    id: str
    spigot: Location
    bounds: BoundingBox
    time: float = 0.0
    sign: int = 0
    wood: BarrelWoodType = BarrelWoodType.ANY
    ingredients: IngredientCollection = field(default_factory=IngredientCollection)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spigot": self.spigot.serialize(),
            "bounds": self.bounds.serialize(),
            "time": self.time,
            "sign": self.sign,
            "wood": self.wood.index,
            "ingredients": serialize_ingredients(self.ingredients),
        }

    @classmethod
    def from_dict(cls, entity_id: str, data: Dict[str, Any], loaders: LoaderRegistry) -> Barrel:
        data = _document(data, BARRELS, entity_id)
        bounds = BoundingBox.deserialize(_require(data, "bounds", BARRELS, entity_id))
        if bounds is None:
            raise MalformedRecordError(f"{BARRELS}.{entity_id}: invalid bounds '{data['bounds']}'")
        return cls(
            id=entity_id,
            spigot=_location(data, "spigot", BARRELS, entity_id),
            bounds=bounds,
            time=float(data.get("time", 0.0)),
            sign=int(data.get("sign", 0)),
            wood=BarrelWoodType.from_any(data.get("wood", 0)) or BarrelWoodType.ANY,
            ingredients=_ingredients(data.get("ingredients") or "", BARRELS, entity_id, loaders),
        )


@dataclass
class Cauldron:
    TABLE: ClassVar[str] = CAULDRONS

    id: str
    block: Location
    ingredients: IngredientCollection = field(default_factory=IngredientCollection)
    state: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block": self.block.serialize(),
            "ingredients": serialize_ingredients(self.ingredients),
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, entity_id: str, data: Dict[str, Any], loaders: LoaderRegistry) -> Cauldron:
        data = _document(data, CAULDRONS, entity_id)
        return cls(
            id=entity_id,
            block=_location(data, "block", CAULDRONS, entity_id),
            ingredients=_ingredients(_require(data, "ingredients", CAULDRONS, entity_id),
                                     CAULDRONS, entity_id, loaders),
            state=int(data.get("state", 0)),
        )


@dataclass
class BPlayer:
    TABLE: ClassVar[str] = PLAYERS

    id: str
    quality: int = 0
    drunkenness: int = 0
    offline_drunkenness: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quality": self.quality,
            "drunkenness": self.drunkenness,
            "offlineDrunkenness": self.offline_drunkenness,
        }

    @classmethod
    def from_dict(cls, entity_id: str, data: Dict[str, Any], loaders: LoaderRegistry) -> BPlayer:
        data = _document(data, PLAYERS, entity_id)
        return cls(
            id=entity_id,
            quality=int(data.get("quality", 0)),
            drunkenness=int(data.get("drunkenness", 0)),
            offline_drunkenness=int(data.get("offlineDrunkenness", 0)),
        )


@dataclass
class Wakeup:
    TABLE: ClassVar[str] = WAKEUPS

    id: str
    location: Location

    def to_dict(self) -> Dict[str, Any]:
        return {"location": self.location.serialize(rotation=True)}

    @classmethod
    def from_dict(cls, entity_id: str, data: Dict[str, Any], loaders: LoaderRegistry) -> Wakeup:
        data = _document(data, WAKEUPS, entity_id)
        return cls(id=entity_id, location=_location(data, "location", WAKEUPS, entity_id))


@dataclass
class MiscData:
    TABLE: ClassVar[str] = MISC

    install_time: int
    mc_barrel_time: int = 0
    prev_save_seeds: List[int] = field(default_factory=list)
    brews_created: List[int] = field(default_factory=list)
    brews_created_hash: int = 0

    @property
    def id(self) -> str:
        return MISC_ID

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installTime": self.install_time,
            "mcBarrelTime": self.mc_barrel_time,
            "previousSaveSeeds": list(self.prev_save_seeds),
            "brewsCreated": list(self.brews_created),
            "brewsCreatedHash": self.brews_created_hash,
        }

    @classmethod
    def from_dict(cls, entity_id: str, data: Dict[str, Any], loaders: LoaderRegistry) -> MiscData:
        data = _document(data, MISC, entity_id)
        return cls(
            install_time=int(_require(data, "installTime", MISC, entity_id)),
            mc_barrel_time=int(data.get("mcBarrelTime", 0)),
            prev_save_seeds=[int(s) for s in data.get("previousSaveSeeds", [])],
            brews_created=[int(c) for c in data.get("brewsCreated", [])],
            brews_created_hash=int(data.get("brewsCreatedHash", 0)),
        )


def java_list_hash(values: List[int]) -> int:
    """Hash of a list of ints as computed by java.util.List.hashCode()."""
    h = 1
    for v in values:
        h = (31 * h + (v & 0xFFFFFFFF)) & 0xFFFFFFFF
    return h - (1 << 32) if h & 0x80000000 else h
