"""JSON schema for recipe definitions.

Recipes arrive as already-parsed documents (one object per recipe id);
this schema only checks structure, value ranges are checked by
Recipe.validation_errors().
"""

_QUALITY_STRINGS = {
    "type": "array",
    "items": {
        "oneOf": [
            {"type": "string"},
            {
                "type": "object",
                "required": ["text"],
                "properties": {
                    "quality": {"type": "integer", "minimum": 0, "maximum": 3},
                    "text": {"type": "string"}
                },
                "additionalProperties": False
            }
        ]
    }
}

_WOOD = {"type": ["string", "number"]}

INGREDIENT_SCHEMA = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string", "enum": ["simple", "custom", "plugin"]},
        "amount": {"type": "integer", "minimum": 1, "maximum": 65535, "default": 1},
        "material": {"type": "string", "minLength": 1},
        "durability": {"type": "integer"},
        "name": {"type": "string"},
        "lore": {"type": "array", "items": {"type": "string"}},
        "custom_model_data": {"type": "integer"},
        "plugin": {"type": "string", "minLength": 1},
        "item": {"type": "string", "minLength": 1}
    },
    "allOf": [
        {"if": {"properties": {"type": {"const": "simple"}}}, "then": {"required": ["material"]}},
        {"if": {"properties": {"type": {"const": "plugin"}}}, "then": {"required": ["plugin", "item"]}}
    ],
    "additionalProperties": False
}

RECIPE_SCHEMA = {
    "type": "object",
    "required": ["name", "ingredients", "cookingtime"],
    "properties": {
        "name": {
            "oneOf": [
                {"type": "string", "minLength": 1},
                {"type": "array", "items": {"type": "string", "minLength": 1}, "minItems": 1, "maxItems": 3}
            ]
        },
        "ingredients": {"type": "array", "items": INGREDIENT_SCHEMA, "minItems": 1},
        "cookingtime": {"type": "integer"},
        "distillruns": {"type": "integer", "default": 0},
        "distilltime": {"type": "integer", "default": 0},
        "wood": {"oneOf": [_WOOD, {"type": "array", "items": _WOOD}]},
        "age": {"type": "integer", "default": 0},
        "difficulty": {"type": "integer", "default": 0},
        "color": {"type": "string"},
        "alcohol": {"type": "integer", "default": 0},
        "lore": _QUALITY_STRINGS,
        "servercommands": _QUALITY_STRINGS,
        "playercommands": _QUALITY_STRINGS,
        "drinkmessage": {"type": "string"},
        "drinktitle": {"type": "string"},
        "glint": {"type": "boolean", "default": False},
        "customModelData": {"type": "array", "items": {"type": "integer"}, "minItems": 3, "maxItems": 3}
    },
    "additionalProperties": False
}
