"""Recipe definitions and the recipe catalog.

A Recipe is immutable once built. The catalog keeps recipes coming from the
configuration apart from recipes added at runtime; lookups and scoring walk
configuration recipes first, then added ones, in insertion order.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .ingredients import Ingredient
from .utils import round_half_up
from .woods import BarrelWoodType

logger = logging.getLogger(__name__)

# (quality band, text): 0 = any quality, 1 = bad, 2 = normal, 3 = good
QualityString = Tuple[int, str]


def quality_band(quality: int) -> int:
    if quality <= 3:
        return 1
    if quality <= 7:
        return 2
    return 3


@dataclass(frozen=True)
class Recipe:
    names: Tuple[str, ...]
    ingredients: Tuple[Ingredient, ...]
    cooking_time: int
    id: Optional[str] = None
    difficulty: int = 0
    distill_runs: int = 0
    distill_time: int = 0
    barrel_types: Tuple[BarrelWoodType, ...] = (BarrelWoodType.ANY,)
    age: int = 0
    color: str = "BLUE"
    alcohol: int = 0
    lore: Tuple[QualityString, ...] = ()
    player_cmds: Tuple[QualityString, ...] = ()
    server_cmds: Tuple[QualityString, ...] = ()
    drink_msg: Optional[str] = None
    drink_title: Optional[str] = None
    glint: bool = False
    cm_data: Tuple[int, int, int] = (0, 0, 0)

    # --- Names ---
    def name_for(self, quality: int) -> str:
        """Display name for a quality: bad/normal/good when three names are set."""
        if len(self.names) > 2:
            return self.names[quality_band(quality) - 1]
        return self.names[0]

    @property
    def recipe_name(self) -> str:
        return self.name_for(5)

    def has_name(self, name: str) -> bool:
        return any(n.lower() == name.lower() for n in self.names)

    # --- Tolerances ---
    def allowed_count_diff(self, count: int) -> int:
        """Allowed deviation from an ingredient count at this difficulty (never 0)."""
        return self._allowed_diff(count)

    def allowed_time_diff(self, time: int) -> int:
        """Allowed deviation from the cooking time at this difficulty (never 0)."""
        return self._allowed_diff(time)

    def _allowed_diff(self, n: int) -> int:
        diff = round_half_up((11.0 - self.difficulty) * (max(n, 8) / 10.0))
        return diff if diff != 0 else 1

    # --- Woods ---
    @property
    def primary_wood(self) -> BarrelWoodType:
        return self.barrel_types[0] if self.barrel_types else BarrelWoodType.ANY

    def uses_any_wood(self) -> bool:
        return self.primary_wood is BarrelWoodType.ANY

    def wood_diff(self, wood: float) -> float:
        """Smallest index distance between ``wood`` and any accepted wood."""
        if not self.barrel_types:
            return 0.0
        return min(abs(wood - w.index) for w in self.barrel_types)

    # --- Type predicates ---
    def is_cooking_only(self) -> bool:
        return self.age == 0 and self.distill_runs == 0

    def needs_distilling(self) -> bool:
        return self.distill_runs != 0

    def needs_to_age(self) -> bool:
        return self.age != 0

    def is_alcoholic(self) -> bool:
        return self.alcohol > 0

    # --- Ingredients ---
    def is_missing_ingredients(self, offered: Sequence[Ingredient]) -> bool:
        """True if some required ingredient has no matching offered ingredient."""
        if len(offered) < len(self.ingredients):
            return True
        return any(not any(req.matches(used) for used in offered) for req in self.ingredients)

    def missing_ingredients(self, offered: Sequence[Ingredient]) -> List[Ingredient]:
        return [req for req in self.ingredients if not any(req.matches(used) for used in offered)]

    def amount_of(self, ingredient: Ingredient) -> int:
        """Required amount of ``ingredient``, 0 if the recipe does not use it."""
        for req in self.ingredients:
            if req.matches(ingredient):
                return req.amount
        return 0

    # --- Quality strings ---
    def strings_for_quality(self, quality: int, source: Iterable[QualityString]) -> List[str]:
        band = quality_band(quality)
        return [text for tag, text in source if tag == 0 or tag == band]

    def lore_for_quality(self, quality: int) -> List[str]:
        return self.strings_for_quality(quality, self.lore)

    def player_cmds_for_quality(self, quality: int) -> List[str]:
        return self.strings_for_quality(quality, self.player_cmds)

    def server_cmds_for_quality(self, quality: int) -> List[str]:
        return self.strings_for_quality(quality, self.server_cmds)

    def custom_model_data_for(self, quality: int) -> int:
        return self.cm_data[quality_band(quality) - 1]

    # --- Validation ---
    def validation_errors(self) -> List[str]:
        errors = []
        if not self.ingredients:
            errors.append("no ingredients")
        if self.cooking_time < 1:
            errors.append(f"invalid cooking time '{self.cooking_time}'")
        if self.distill_runs < 0:
            errors.append(f"invalid distill runs '{self.distill_runs}'")
        if self.distill_time < 0:
            errors.append(f"invalid distill time '{self.distill_time}'")
        if self.age < 0:
            errors.append(f"invalid age '{self.age}'")
        if self.difficulty < 0 or self.difficulty > 10:
            errors.append(f"invalid difficulty '{self.difficulty}'")
        return errors

    def is_valid(self) -> bool:
        errors = self.validation_errors()
        for reason in errors:
            logger.error("Recipe '%s': %s", self.recipe_name, reason)
        return not errors


class RecipeBuilder:
    """Fluent builder for recipes added at runtime.

    Example:
        recipe = (RecipeBuilder("Wheatbeer").add_ingredient(SimpleItem("WHEAT", amount=3))
                  .cook(8).age(2, BarrelWoodType.BIRCH).alcohol(5).build())
    """

    def __init__(self, *names: str):
        self._names = names
        self._ingredients: List[Ingredient] = []
        self._lore: List[QualityString] = []
        self._player_cmds: List[QualityString] = []
        self._server_cmds: List[QualityString] = []
        self._woods: List[BarrelWoodType] = [BarrelWoodType.ANY]
        self._values = {}

    def add_ingredient(self, *items: Ingredient) -> RecipeBuilder:
        self._ingredients.extend(item.copy() for item in items)
        return self

    def difficulty(self, difficulty: int) -> RecipeBuilder:
        self._values["difficulty"] = difficulty
        return self

    def color(self, color: str) -> RecipeBuilder:
        self._values["color"] = color
        return self

    def cook(self, cooking_time: int) -> RecipeBuilder:
        self._values["cooking_time"] = cooking_time
        return self

    def distill(self, runs: int, distill_time: int = 0) -> RecipeBuilder:
        self._values["distill_runs"] = runs
        self._values["distill_time"] = distill_time
        return self

    def age(self, age: int, *woods: BarrelWoodType) -> RecipeBuilder:
        self._values["age"] = age
        if woods:
            self._woods = list(woods)
        return self

    def alcohol(self, alcohol: int) -> RecipeBuilder:
        self._values["alcohol"] = alcohol
        return self

    def add_lore(self, line: str, quality: int = 0) -> RecipeBuilder:
        if quality < 0 or quality > 3:
            raise ValueError(f"Lore quality band must be 0-3, got {quality}")
        self._lore.append((quality, line))
        return self

    def add_player_cmds(self, *cmds: str) -> RecipeBuilder:
        self._player_cmds.extend((0, c) for c in cmds)
        return self

    def add_server_cmds(self, *cmds: str) -> RecipeBuilder:
        self._server_cmds.extend((0, c) for c in cmds)
        return self

    def drink_msg(self, msg: str) -> RecipeBuilder:
        self._values["drink_msg"] = msg
        return self

    def drink_title(self, title: str) -> RecipeBuilder:
        self._values["drink_title"] = title
        return self

    def glint(self, glint: bool) -> RecipeBuilder:
        self._values["glint"] = glint
        return self

    def set_id(self, recipe_id: str) -> RecipeBuilder:
        self._values["id"] = recipe_id
        return self

    def custom_model_data(self, bad: int, normal: int, good: int) -> RecipeBuilder:
        self._values["cm_data"] = (bad, normal, good)
        return self

    def build(self) -> Recipe:
        """Create the recipe.

        Raises:
            ValueError: If names, ingredients or any value is invalid.
        """
        if len(self._names) not in (1, 3):
            raise ValueError("Recipe needs either 1 or 3 names")
        if not self._ingredients:
            raise ValueError("Recipe has no ingredients")
        values = dict(self._values)
        recipe = Recipe(
            names=tuple(self._names),
            ingredients=tuple(self._ingredients),
            cooking_time=values.pop("cooking_time", 1),
            barrel_types=normalize_woods(self._woods),
            lore=tuple(self._lore),
            player_cmds=tuple(self._player_cmds),
            server_cmds=tuple(self._server_cmds),
            **values,
        )
        errors = recipe.validation_errors()
        if errors:
            raise ValueError(f"Recipe '{recipe.recipe_name}' is not valid: {', '.join(errors)}")
        return recipe


def normalize_woods(woods: Iterable[BarrelWoodType]) -> Tuple[BarrelWoodType, ...]:
    """Deduplicate while keeping order; any ANY entry means every wood is accepted."""
    result: List[BarrelWoodType] = []
    for wood in woods:
        if wood is BarrelWoodType.ANY:
            return (BarrelWoodType.ANY,)
        if wood not in result:
            result.append(wood)
    return tuple(result) or (BarrelWoodType.ANY,)


class RecipeCatalog:
    """Configuration recipes followed by recipes added at runtime.

    The two groups are separate lists so reloading the configuration never
    disturbs added recipes, and iteration always yields configuration
    recipes first.
    """

    def __init__(self, config_recipes: Optional[Iterable[Recipe]] = None):
        self._config: List[Recipe] = list(config_recipes or [])
        self._added: List[Recipe] = []

    @property
    def config_recipes(self) -> Tuple[Recipe, ...]:
        return tuple(self._config)

    @property
    def added_recipes(self) -> Tuple[Recipe, ...]:
        return tuple(self._added)

    @property
    def all_recipes(self) -> List[Recipe]:
        return self._config + self._added

    def set_config_recipes(self, recipes: Iterable[Recipe]):
        self._config = list(recipes)

    def add_recipe(self, recipe: Recipe):
        self._added.append(recipe)

    def remove_added(self, recipe: Recipe) -> bool:
        try:
            self._added.remove(recipe)
            return True
        except ValueError:
            return False

    def get(self, name: str) -> Optional[Recipe]:
        """Recipe whose main (normal quality) name equals ``name``, ignoring case."""
        for recipe in self:
            if recipe.recipe_name.lower() == name.lower():
                return recipe
        return None

    def get_matching(self, name: str) -> Optional[Recipe]:
        """Look up by main name, then by bad or good name, then by id."""
        found = self.get(name)
        if found is not None:
            return found
        lowered = name.lower()
        for recipe in self:
            if recipe.name_for(1).lower() == lowered or recipe.name_for(10).lower() == lowered:
                return recipe
        for recipe in self:
            if recipe.id is not None and recipe.id.lower() == lowered:
                return recipe
        return None

    def get_by_id(self, recipe_id: str) -> Optional[Recipe]:
        for recipe in self:
            if recipe.id == recipe_id:
                return recipe
        return None

    def __iter__(self) -> Iterator[Recipe]:
        yield from self._config
        yield from self._added

    def __len__(self) -> int:
        return len(self._config) + len(self._added)
