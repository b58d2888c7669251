"""Generic payload serializer for the relational backend.

Rows hold one text payload per entity: the entity's document form as
compact JSON with sorted keys, so identical entities produce identical rows.
"""
from __future__ import annotations
import json
from typing import Any, Dict

from ..errors import MalformedRecordError


class EntitySerializer:
    def serialize(self, data: Dict[str, Any]) -> str:
        return json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)

    def deserialize(self, payload: str) -> Dict[str, Any]:
        try:
            data = json.loads(payload)
        except (TypeError, json.JSONDecodeError) as e:
            raise MalformedRecordError(f"Unreadable payload: {e}") from e
        if not isinstance(data, dict):
            raise MalformedRecordError(f"Payload is a {type(data).__name__}, expected an object")
        return data
