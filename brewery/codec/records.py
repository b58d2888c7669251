"""Versioned binary records for ingredient collections.

Layout (big-endian)::

    byte    version
    int32   cooked time in minutes
    uint8   ingredient count
    repeat: utf   kind tag
            ...   kind payload
            uint16 amount

The text form stored by every backend is the basE91 encoding of the whole
record, version byte included.
"""
from __future__ import annotations
import logging
from typing import Callable, Dict, Iterator, Optional

from . import base91
from .datastream import ItemLoader, RecordReader, RecordWriter
from ..errors import DecodeError
from ..ingredients import INGREDIENT_KINDS, Ingredient, IngredientCollection

logger = logging.getLogger(__name__)

# Record format version - increment when a kind payload changes
RECORD_VERSION = 1
MAX_ENTRIES = 255
MAX_AMOUNT = 0xFFFF

KindDecoder = Callable[[ItemLoader], Optional[Ingredient]]


class LoaderRegistry:
    """Maps kind tags to the functions able to decode their payload."""

    def __init__(self):
        self._loaders: Dict[str, KindDecoder] = {}

    def register(self, save_id: str, decoder: KindDecoder):
        if save_id in self._loaders:
            logger.warning("Replacing ingredient loader for '%s'", save_id)
        self._loaders[save_id] = decoder

    def unregister(self, save_id: str):
        self._loaders.pop(save_id, None)

    def get(self, save_id: str) -> Optional[KindDecoder]:
        return self._loaders.get(save_id)

    def __contains__(self, save_id: str) -> bool:
        return save_id in self._loaders

    def __iter__(self) -> Iterator[str]:
        return iter(self._loaders)

    def __len__(self) -> int:
        return len(self._loaders)


def default_loader_registry() -> LoaderRegistry:
    """Registry with every built-in ingredient kind."""
    registry = LoaderRegistry()
    for kind in INGREDIENT_KINDS:
        registry.register(kind.SAVE_ID, kind.load_from)
    return registry


def save(collection: IngredientCollection, writer: Optional[RecordWriter] = None) -> bytes:
    """Write cooked time, count and entries (everything after the version byte)."""
    writer = writer or RecordWriter()
    entries = collection.ingredients
    if len(entries) > MAX_ENTRIES:
        logger.warning("Ingredient collection has %d entries, only the first %d are saved",
                       len(entries), MAX_ENTRIES)
        entries = entries[:MAX_ENTRIES]
    writer.write_int(collection.cooked_time)
    writer.write_ubyte(len(entries))
    for ingredient in entries:
        ingredient.save_to(writer)
        writer.write_ushort(min(max(ingredient.amount, 0), MAX_AMOUNT))
    return writer.getvalue()


def load(reader: RecordReader, version: int, loaders: LoaderRegistry) -> IngredientCollection:
    """Read a collection written by save().

    An unknown kind tag stops the read: the payload length of an unknown kind
    is not known, so nothing after it can be trusted. Whatever was decoded up
    to that point is returned.

    Raises:
        DecodeError: If the record ends early.
    """
    cooked_time = reader.read_int()
    size = reader.read_ubyte()
    collection = IngredientCollection(cooked_time=cooked_time)
    for _ in range(size):
        save_id = reader.read_utf()
        decoder = loaders.get(save_id)
        if decoder is None:
            logger.error("Ingredient loader not found: %s", save_id)
            break
        loaded = decoder(ItemLoader(version, reader, save_id))
        amount = reader.read_ushort()
        if loaded is not None and amount > 0:
            loaded.amount = amount
            collection.ingredients.append(loaded)
    return collection


def serialize_ingredients(collection: IngredientCollection) -> str:
    """Encode a collection into its text-at-rest form."""
    writer = RecordWriter()
    writer.write_byte(RECORD_VERSION)
    save(collection, writer)
    return base91.encode(writer.getvalue())


def deserialize_ingredients(text: str, loaders: LoaderRegistry) -> IngredientCollection:
    """Decode the text form. Unreadable input is logged and yields an empty collection."""
    try:
        reader = RecordReader(base91.decode(text))
        version = reader.read_byte()
        if version > RECORD_VERSION:
            logger.warning("Ingredient record version %d is newer than supported version %d",
                           version, RECORD_VERSION)
        return load(reader, version, loaders)
    except DecodeError as e:
        logger.error("Failed to deserialize ingredients: %s", e)
        return IngredientCollection()
