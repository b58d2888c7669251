"""Barrel wood types.

The numeric index is persisted and also drives wood-fit scoring, where the
distance between two woods is the difference of their indices.
"""
from __future__ import annotations
from enum import Enum
from typing import Optional, Union


class BarrelWoodType(Enum):
    ANY = 0
    BIRCH = 1
    OAK = 2
    JUNGLE = 3
    SPRUCE = 4
    ACACIA = 5
    DARK_OAK = 6
    CRIMSON = 7
    WARPED = 8
    MANGROVE = 9
    CHERRY = 10
    BAMBOO = 11
    CUT_COPPER = 12
    PALE_OAK = 13

    @property
    def index(self) -> int:
        return self.value

    @property
    def display_name(self) -> str:
        return self.name.replace("_", " ").title()

    def distance(self, other: BarrelWoodType) -> int:
        return abs(self.index - other.index)

    @classmethod
    def from_index(cls, index: int) -> Optional[BarrelWoodType]:
        try:
            return cls(index)
        except ValueError:
            return None

    @classmethod
    def from_any(cls, value: Union[str, int, float, BarrelWoodType, None]) -> Optional[BarrelWoodType]:
        """Resolve a wood from its name, its index or a numeric string."""
        if isinstance(value, BarrelWoodType):
            return value
        if isinstance(value, (int, float)):
            return cls.from_index(int(value))
        if not isinstance(value, str):
            return None
        text = value.strip().upper().replace(" ", "_").replace("-", "_")
        if text in cls.__members__:
            return cls[text]
        try:
            return cls.from_index(int(float(text)))
        except ValueError:
            return None
