"""Recipe loading from parsed configuration documents.

Each recipe is validated on its own: a broken recipe is logged and left out,
the remaining recipes still load.
"""
from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import jsonschema

from .errors import ConfigValidationError
from .ingredients import CustomItem, Ingredient, PluginItem, SimpleItem
from .recipe_schema import RECIPE_SCHEMA
from .recipes import QualityString, Recipe, RecipeCatalog, normalize_woods
from .woods import BarrelWoodType

logger = logging.getLogger(__name__)


def validate_schema(recipe_id: str, data: Dict[str, Any]):
    """Validate a recipe document against the recipe schema.

    Raises:
        ConfigValidationError: If the document does not match the schema.
    """
    try:
        jsonschema.validate(data, RECIPE_SCHEMA)
    except jsonschema.ValidationError as e:
        path = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigValidationError(recipe_id, f"{path}: {e.message}") from e


def parse_recipe(recipe_id: str, data: Dict[str, Any]) -> Recipe:
    """Convert one recipe document into a Recipe.

    Args:
        recipe_id: Key of the recipe in the configuration
        data: Parsed recipe document

    Returns:
        The validated Recipe

    Raises:
        ConfigValidationError: If the structure or any value is invalid
    """
    validate_schema(recipe_id, data)

    names = _parse_names(data["name"])
    if len(names) not in (1, 3):
        raise ConfigValidationError(recipe_id, f"expected 1 or 3 names, got {len(names)}")

    woods_raw = data.get("wood", 0)
    if not isinstance(woods_raw, list):
        woods_raw = [woods_raw]
    woods = []
    for raw in woods_raw:
        wood = BarrelWoodType.from_any(raw)
        if wood is None:
            raise ConfigValidationError(recipe_id, f"unknown wood type '{raw}'")
        woods.append(wood)

    try:
        ingredients = tuple(_parse_ingredient(item) for item in data["ingredients"])
    except ValueError as e:
        raise ConfigValidationError(recipe_id, str(e)) from e

    recipe = Recipe(
        names=names,
        ingredients=ingredients,
        cooking_time=data["cookingtime"],
        id=recipe_id,
        difficulty=data.get("difficulty", 0),
        distill_runs=data.get("distillruns", 0),
        distill_time=data.get("distilltime", 0),
        barrel_types=normalize_woods(woods),
        age=data.get("age", 0),
        color=data.get("color", "BLUE").upper(),
        alcohol=data.get("alcohol", 0),
        lore=_parse_quality_strings(data.get("lore", [])),
        player_cmds=_parse_quality_strings(data.get("playercommands", [])),
        server_cmds=_parse_quality_strings(data.get("servercommands", [])),
        drink_msg=data.get("drinkmessage"),
        drink_title=data.get("drinktitle"),
        glint=data.get("glint", False),
        cm_data=tuple(data.get("customModelData", (0, 0, 0))),
    )
    errors = recipe.validation_errors()
    if errors:
        raise ConfigValidationError(recipe_id, ", ".join(errors))
    return recipe


def load_recipes(document: Dict[str, Dict[str, Any]]) -> List[Recipe]:
    """Load every recipe of a ``{recipe_id: recipe_document}`` mapping, skipping invalid ones."""
    recipes = []
    for recipe_id, data in document.items():
        try:
            recipes.append(parse_recipe(str(recipe_id), data))
        except ConfigValidationError as e:
            logger.error("Skipping recipe: %s", e)
    logger.info("Loaded %d of %d recipes", len(recipes), len(document))
    return recipes


def load_recipe_file(path: str, catalog: RecipeCatalog) -> int:
    """Replace the configuration recipes of ``catalog`` with those in a JSON file.

    Returns:
        Number of recipes loaded

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid JSON
    """
    recipe_path = Path(path)
    if not recipe_path.exists():
        raise FileNotFoundError(f"Recipe file not found: {path}")
    try:
        with open(recipe_path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in recipe file: {e}")
    recipes = load_recipes(document.get("recipes", {}))
    catalog.set_config_recipes(recipes)
    return len(recipes)


def _parse_names(raw: Any) -> Tuple[str, ...]:
    if isinstance(raw, str):
        return tuple(part.strip() for part in raw.split("/"))
    return tuple(raw)


def _parse_ingredient(item: Dict[str, Any]) -> Ingredient:
    amount = item.get("amount", 1)
    kind = item["type"]
    if kind == "simple":
        return SimpleItem(item["material"], item.get("durability"), amount)
    if kind == "plugin":
        return PluginItem(item["plugin"], item["item"], amount)
    custom = CustomItem(item.get("material"), item.get("name"), list(item.get("lore", [])),
                        item.get("custom_model_data", 0), amount)
    if custom.material is None and not custom.has_name() and not custom.has_lore():
        raise ValueError("custom ingredient needs at least a material, name or lore")
    return custom


def _parse_quality_strings(entries: List[Any]) -> Tuple[QualityString, ...]:
    result = []
    for entry in entries:
        if isinstance(entry, str):
            result.append((0, entry))
        else:
            result.append((entry.get("quality", 0), entry["text"]))
    return tuple(result)
