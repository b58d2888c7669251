"""Ingredient kinds and the ingredient collection.

Every kind carries a short save tag that selects its decoder when a binary
record is read back (see brewery.codec.records). Kinds are plain dataclasses
so that similarity is just field equality minus the amount.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field, replace
from typing import ClassVar, Iterator, List, Optional

from .codec.datastream import ItemLoader, RecordWriter

_COLOR_CODE = re.compile(r"[§&][0-9a-fk-orx]", re.IGNORECASE)


def strip_color(text: str) -> str:
    """Remove formatting codes such as ``§a`` or ``&l`` from a display string."""
    return _COLOR_CODE.sub("", text)


def to_short(value: int) -> int:
    """Wrap ``value`` into the signed 16 bit range, as a Java short cast does."""
    return ((int(value) + 0x8000) & 0xFFFF) - 0x8000


class Ingredient:
    """Common behaviour of all ingredient kinds.

    Subclasses are dataclasses whose last field is ``amount``.
    """
    SAVE_ID: ClassVar[str] = ""
    amount: int

    def __post_init__(self):
        if self.amount < 1:
            raise ValueError(f"Ingredient amount must be at least 1, got {self.amount}")

    def is_similar(self, other: Ingredient) -> bool:
        """True when ``other`` is the same kind with the same attributes, ignoring amount."""
        if type(other) is not type(self):
            return False
        return replace(other, amount=self.amount) == self

    def matches(self, other: Ingredient) -> bool:
        raise NotImplementedError

    def save_to(self, writer: RecordWriter):
        raise NotImplementedError

    @classmethod
    def load_from(cls, loader: ItemLoader) -> Optional[Ingredient]:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def copy(self, amount: Optional[int] = None) -> Ingredient:
        return replace(self, amount=self.amount if amount is None else amount)


@dataclass
class SimpleItem(Ingredient):
    """A plain material, optionally pinned to a durability value."""
    SAVE_ID: ClassVar[str] = "SI"

    material: str
    durability: Optional[int] = None
    amount: int = 1

    def __post_init__(self):
        self.material = self.material.upper()
        if self.durability is not None:
            self.durability = to_short(self.durability)
        super().__post_init__()

    def matches(self, other: Ingredient) -> bool:
        if self.is_similar(other):
            return True
        if isinstance(other, SimpleItem):
            if other.material != self.material:
                return False
            return self.durability is None or self.durability == other.durability
        if isinstance(other, CustomItem):
            return other.material == self.material and other.is_material_only()
        return False

    def save_to(self, writer: RecordWriter):
        writer.write_utf(self.SAVE_ID)
        writer.write_utf(self.material)
        writer.write_bool(self.durability is not None)
        if self.durability is not None:
            writer.write_short(self.durability)

    @classmethod
    def load_from(cls, loader: ItemLoader) -> Optional[SimpleItem]:
        reader = loader.reader
        material = reader.read_utf()
        if loader.version < 1:
            # version 0 records always carry a durability, 0 meaning "unset"
            durability = reader.read_short()
            return cls(material, durability or None)
        durability = reader.read_short() if reader.read_bool() else None
        if not material:
            return None
        return cls(material, durability)

    def describe(self) -> str:
        if self.durability is not None:
            return f"{self.amount}x {self.material}:{self.durability}"
        return f"{self.amount}x {self.material}"


@dataclass
class CustomItem(Ingredient):
    """An item identified by any mix of material, display name, lore and model data."""
    SAVE_ID: ClassVar[str] = "CI"

    material: Optional[str] = None
    name: Optional[str] = None
    lore: List[str] = field(default_factory=list)
    custom_model_data: int = 0
    amount: int = 1

    def __post_init__(self):
        if self.material is not None:
            self.material = self.material.upper()
        super().__post_init__()

    def copy(self, amount: Optional[int] = None) -> CustomItem:
        clone = super().copy(amount)
        clone.lore = list(clone.lore)
        return clone

    def has_name(self) -> bool:
        return self.name is not None

    def has_lore(self) -> bool:
        return bool(self.lore)

    def has_custom_model_data(self) -> bool:
        return self.custom_model_data != 0

    def is_material_only(self) -> bool:
        return (self.material is not None and not self.has_name()
                and not self.has_lore() and not self.has_custom_model_data())

    def matches(self, other: Ingredient) -> bool:
        if self.is_similar(other):
            return True
        if isinstance(other, SimpleItem):
            # a richer custom item never matches a plain material
            return self.is_material_only() and self.material == other.material
        if isinstance(other, CustomItem):
            if self.material is not None and self.material != other.material:
                return False
            if self.has_name() and (other.name is None or self.name.lower() != other.name.lower()):
                return False
            if self.has_custom_model_data() and self.custom_model_data != other.custom_model_data:
                return False
            return not self.has_lore() or (other.has_lore() and self.match_lore(other.lore))
        return False

    def match_lore(self, used_lore: List[str]) -> bool:
        """True if our lore appears as consecutive lines of ``used_lore``.

        Comparison ignores case and formatting codes in ``used_lore``.
        """
        if not self.lore:
            return True
        wanted = [line.lower() for line in self.lore]
        given = [line.lower() for line in used_lore]
        plain = [strip_color(line) for line in given]
        for start in range(len(given) - len(wanted) + 1):
            if all(w == given[start + i] or w == plain[start + i] for i, w in enumerate(wanted)):
                return True
        return False

    def save_to(self, writer: RecordWriter):
        writer.write_utf(self.SAVE_ID)
        writer.write_bool(self.material is not None)
        if self.material is not None:
            writer.write_utf(self.material)
        writer.write_bool(self.name is not None)
        if self.name is not None:
            writer.write_utf(self.name)
        writer.write_short(len(self.lore))
        for line in self.lore:
            writer.write_utf(line)
        writer.write_bool(self.has_custom_model_data())
        if self.has_custom_model_data():
            writer.write_int(self.custom_model_data)

    @classmethod
    def load_from(cls, loader: ItemLoader) -> Optional[CustomItem]:
        reader = loader.reader
        material = reader.read_utf() if reader.read_bool() else None
        name = reader.read_utf() if reader.read_bool() else None
        lore = [reader.read_utf() for _ in range(max(reader.read_short(), 0))]
        model_data = reader.read_int() if reader.read_bool() else 0
        return cls(material, name, lore, model_data)

    def describe(self) -> str:
        label = self.name or self.material or "custom item"
        return f"{self.amount}x {label}"


@dataclass
class PluginItem(Ingredient):
    """An item owned by another plugin, identified by plugin name and item id."""
    SAVE_ID: ClassVar[str] = "PI"

    plugin: str
    item_id: str
    amount: int = 1

    def matches(self, other: Ingredient) -> bool:
        if not isinstance(other, PluginItem):
            return False
        return self.plugin.lower() == other.plugin.lower() and self.item_id == other.item_id

    def save_to(self, writer: RecordWriter):
        writer.write_utf(self.SAVE_ID)
        writer.write_utf(self.plugin)
        writer.write_utf(self.item_id)

    @classmethod
    def load_from(cls, loader: ItemLoader) -> Optional[PluginItem]:
        plugin = loader.reader.read_utf()
        item_id = loader.reader.read_utf()
        return cls(plugin, item_id)

    def describe(self) -> str:
        return f"{self.amount}x {self.plugin}:{self.item_id}"


INGREDIENT_KINDS = (SimpleItem, CustomItem, PluginItem)


class IngredientCollection:
    """Ordered ingredients plus the number of minutes they have been cooked."""

    def __init__(self, ingredients: Optional[List[Ingredient]] = None, cooked_time: int = 0):
        self.ingredients: List[Ingredient] = list(ingredients or [])
        self.cooked_time = cooked_time

    def add(self, ingredient: Ingredient):
        """Add one unit of ``ingredient``, merging into a similar entry if present."""
        self.add_amount(ingredient, 1)

    def add_amount(self, ingredient: Ingredient, amount: int):
        if amount < 1:
            raise ValueError(f"Cannot add {amount} of {ingredient.describe()}")
        for existing in self.ingredients:
            if existing.is_similar(ingredient):
                existing.amount += amount
                return
        self.ingredients.append(ingredient.copy(amount))

    @property
    def ingredients_count(self) -> int:
        return sum(ing.amount for ing in self.ingredients)

    def is_empty(self) -> bool:
        return not self.ingredients

    def copy(self) -> IngredientCollection:
        return IngredientCollection([ing.copy() for ing in self.ingredients], self.cooked_time)

    def describe(self) -> str:
        return ", ".join(ing.describe() for ing in self.ingredients)

    def __len__(self) -> int:
        return len(self.ingredients)

    def __iter__(self) -> Iterator[Ingredient]:
        return iter(self.ingredients)

    def __eq__(self, other) -> bool:
        if not isinstance(other, IngredientCollection):
            return NotImplemented
        return self.cooked_time == other.cooked_time and self.ingredients == other.ingredients

    def __repr__(self) -> str:
        return f"IngredientCollection(cooked_time={self.cooked_time}, ingredients={self.ingredients!r})"
