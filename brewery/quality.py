"""Quality scoring and recipe selection.

Every fit score is an integer from 0 to 10; ingredient and cooking fit
return -1 when the recipe cannot match at all. Rounding follows
round_half_up so that scores on a .5 boundary always go up.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from .ingredients import IngredientCollection
from .recipes import Recipe, RecipeCatalog
from .utils import round_half_up
from .woods import BarrelWoodType

logger = logging.getLogger(__name__)

NO_MATCH = -1

# Base quality by wood distance for the new wood algorithm
WOOD_DISTANCE_QUALITY = {0: 10.0, 1: 9.0, 2: 7.75, 3: 6.25, 4: 4.5, 5: 2.5}


def ingredient_quality(collection: IngredientCollection, recipe: Recipe) -> int:
    """How well the offered ingredients fit ``recipe``, or -1 if they don't."""
    if recipe.is_missing_ingredients(collection.ingredients):
        return NO_MATCH
    quality = 10.0
    total = collection.ingredients_count
    bad_stuff = 0
    for ingredient in collection.ingredients:
        required = recipe.amount_of(ingredient)
        count = ingredient.amount
        if required == 0:
            # foreign ingredient
            if count > total // 2:
                return NO_MATCH
            bad_stuff += 1
            if bad_stuff < len(collection.ingredients):
                quality -= count * (recipe.difficulty / 2.0)
                continue
            return NO_MATCH
        quality -= abs(count - required) / recipe.allowed_count_diff(required) * 10.0
    if quality >= 0:
        return round_half_up(quality)
    return NO_MATCH


def cooking_quality(collection: IngredientCollection, recipe: Recipe, distilled: bool) -> int:
    """How well the cooked time fits ``recipe``, or -1 if the distillation need differs."""
    if (not recipe.needs_distilling()) == distilled:
        return NO_MATCH
    deviation = abs(collection.cooked_time - recipe.cooking_time)
    quality = 10 - round_half_up(deviation / recipe.allowed_time_diff(recipe.cooking_time) * 10.0)
    if quality >= 0:
        if collection.cooked_time < 1:
            return 0
        return quality
    return NO_MATCH


def distill_quality(recipe: Recipe, distill_runs: int) -> int:
    if recipe.needs_distilling() != (distill_runs > 0):
        return 0
    return 10 - abs(recipe.distill_runs - distill_runs)


def wood_quality(recipe: Recipe, wood: BarrelWoodType, new_algorithm: bool = True) -> int:
    """How well the barrel wood fits ``recipe``.

    The legacy algorithm loses ``distance * difficulty`` points. The new one
    looks the distance up in WOOD_DISTANCE_QUALITY and scales the loss by
    half the difficulty, so that at difficulty 1 a close wood still scores
    well while at difficulty 10 only the right wood does.
    """
    if recipe.uses_any_wood():
        return 10
    distance = recipe.wood_diff(wood.index)
    if not new_algorithm:
        return max(10 - round_half_up(distance * recipe.difficulty), 0)
    base = WOOD_DISTANCE_QUALITY.get(int(distance), 0.0)
    if base == 0.0:
        return 0
    quality = 10.0 - (10.0 - base) * 0.5 * recipe.difficulty
    return max(round_half_up(quality), 0)


def age_quality(recipe: Recipe, time: float) -> int:
    quality = 10 - round_half_up(abs(time - recipe.age) * (recipe.difficulty / 2.0))
    return max(quality, 0)


@dataclass
class CookResult:
    """Outcome of cooking: the recipe (if any) with the resulting quality and alcohol."""
    recipe: Optional[Recipe]
    quality: int = 0
    alcohol: int = 0


class QualityEngine:
    """Scores ingredient collections against every recipe of a catalog."""

    def __init__(self, catalog: RecipeCatalog, new_wood_algorithm: bool = True):
        self.catalog = catalog
        self.new_wood_algorithm = new_wood_algorithm

    def wood_quality(self, recipe: Recipe, wood: BarrelWoodType) -> int:
        return wood_quality(recipe, wood, self.new_wood_algorithm)

    def best_recipe(self, collection: IngredientCollection, wood: BarrelWoodType,
                    time: float, distilled: bool) -> Optional[Recipe]:
        """Highest scoring recipe for the current state of a brew.

        Recipes are tried in catalog order and a later recipe only wins with a
        strictly higher score, so ties go to the earlier recipe.
        """
        quality = 0.0
        best = None
        for recipe in self.catalog:
            ing_q = ingredient_quality(collection, recipe)
            cook_q = cooking_quality(collection, recipe, distilled)
            if ing_q <= NO_MATCH or cook_q <= NO_MATCH:
                continue
            if recipe.needs_to_age() or time > 0.5:
                # needs ripening in a barrel
                age_q = age_quality(recipe, time)
                wood_q = self.wood_quality(recipe, wood)
                logger.debug("Ingredient quality %d, cooking quality %d, wood quality %d, age quality %d for %s",
                             ing_q, cook_q, wood_q, age_q, recipe.recipe_name)
                score = (ing_q + cook_q + wood_q + age_q) / 4.0
            else:
                logger.debug("Ingredient quality %d, cooking quality %d for %s",
                             ing_q, cook_q, recipe.recipe_name)
                score = (ing_q + cook_q) / 2.0
            if score > quality:
                quality = score
                best = recipe
        if best is not None:
            logger.debug("Best recipe %s has quality %.2f", best.recipe_name, quality)
        return best

    def cook_recipe(self, collection: IngredientCollection) -> Optional[Recipe]:
        """Best recipe if it only needs cooking.

        The type check happens after the global search, so a recipe needing
        aging or distilling can win and hide a cooking-only match.
        """
        best = self.best_recipe(collection, BarrelWoodType.ANY, 0, False)
        if best is not None and best.is_cooking_only():
            return best
        return None

    def distill_recipe(self, collection: IngredientCollection, wood: BarrelWoodType,
                       time: float) -> Optional[Recipe]:
        best = self.best_recipe(collection, wood, time, True)
        if best is not None and best.needs_distilling():
            return best
        return None

    def age_recipe(self, collection: IngredientCollection, wood: BarrelWoodType,
                   time: float, distilled: bool) -> Optional[Recipe]:
        best = self.best_recipe(collection, wood, time, distilled)
        if best is not None and best.needs_to_age():
            return best
        return None

    def cook(self, collection: IngredientCollection, state: int) -> CookResult:
        """Finish cooking after ``state`` minutes and score the result.

        Sets the collection's cooked time. Quality is the rounded mean of
        ingredient and cooking fit; alcohol scales with quality.
        """
        collection.cooked_time = state
        recipe = self.cook_recipe(collection)
        if recipe is None:
            return CookResult(None)
        quality = round_half_up((ingredient_quality(collection, recipe)
                                 + cooking_quality(collection, recipe, False)) / 2.0)
        alcohol = round_half_up(recipe.alcohol * (quality / 10.0))
        logger.debug("Cooked brew has quality %d, alcohol %d", quality, alcohol)
        return CookResult(recipe, quality, alcohol)
