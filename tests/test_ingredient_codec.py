"""Tests for ingredient kinds and the binary ingredient record."""

import logging

import pytest

from brewery.codec import base91
from brewery.codec.datastream import RecordReader, RecordWriter
from brewery.codec.records import (
    RECORD_VERSION,
    LoaderRegistry,
    default_loader_registry,
    deserialize_ingredients,
    load,
    save,
    serialize_ingredients,
)
from brewery.errors import EncodeError
from brewery.ingredients import CustomItem, IngredientCollection, PluginItem, SimpleItem


@pytest.fixture
def loaders():
    return default_loader_registry()


@pytest.fixture
def mixed_collection():
    """One ingredient of every kind."""
    return IngredientCollection([
        SimpleItem("WHEAT", amount=3),
        SimpleItem("POTION", durability=7, amount=1),
        CustomItem("APPLE", "Golden Fruit", ["Shiny", "From the orchard"], 1234, amount=2),
        CustomItem(None, "Mystery", [], 0, amount=1),
        PluginItem("ItemsAdder", "herbs:mint", amount=4),
    ], cooked_time=12)


def _load_bytes(data, loaders, version=RECORD_VERSION):
    return load(RecordReader(data), version, loaders)


class TestCollection:
    """Test IngredientCollection mutation and equality."""

    def test_add_merges_similar(self):
        c = IngredientCollection()
        c.add(SimpleItem("WHEAT"))
        c.add(SimpleItem("wheat"))
        c.add(SimpleItem("SUGAR"))
        assert len(c) == 2
        assert c.ingredients[0].amount == 2
        assert c.ingredients_count == 3

    def test_add_copies_with_amount_one(self):
        item = SimpleItem("WHEAT", amount=5)
        c = IngredientCollection()
        c.add(item)
        assert c.ingredients[0].amount == 1
        assert item.amount == 5

    def test_equality_is_structural(self, mixed_collection):
        assert mixed_collection.copy() == mixed_collection
        other = mixed_collection.copy()
        other.cooked_time += 1
        assert other != mixed_collection

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            SimpleItem("WHEAT", amount=0)

    def test_custom_item_copy_owns_its_lore(self):
        item = CustomItem("APPLE", lore=["Shiny"], amount=2)
        clone = item.copy(5)
        clone.lore.append("Dull")
        assert item.lore == ["Shiny"]
        assert (clone.amount, item.amount) == (5, 2)


class TestMatching:
    """Test similarity and matching between kinds."""

    def test_similar_ignores_amount(self):
        assert SimpleItem("WHEAT", amount=1).is_similar(SimpleItem("WHEAT", amount=9))
        assert not SimpleItem("WHEAT").is_similar(SimpleItem("WHEAT", 3))

    def test_simple_without_durability_matches_any_durability(self):
        assert SimpleItem("POTION").matches(SimpleItem("POTION", 3))
        assert not SimpleItem("POTION", 2).matches(SimpleItem("POTION", 3))

    def test_custom_name_ignores_case(self):
        recipe_item = CustomItem(name="Golden Fruit")
        assert recipe_item.matches(CustomItem("APPLE", "golden fruit", ["x"]))

    def test_custom_lore_must_be_consecutive(self):
        recipe_item = CustomItem("APPLE", lore=["b", "c"])
        assert recipe_item.matches(CustomItem("APPLE", lore=["a", "b", "c", "d"]))
        assert recipe_item.matches(CustomItem("APPLE", lore=["§aB", "&lc"]))
        assert not recipe_item.matches(CustomItem("APPLE", lore=["b", "x", "c"]))

    def test_rich_custom_item_does_not_match_plain_material(self):
        assert not CustomItem("APPLE", "Golden Fruit").matches(SimpleItem("APPLE"))
        assert CustomItem("APPLE").matches(SimpleItem("APPLE"))

    def test_plugin_item(self):
        assert PluginItem("ItemsAdder", "mint").matches(PluginItem("itemsadder", "mint"))
        assert not PluginItem("ItemsAdder", "mint").matches(PluginItem("ItemsAdder", "basil"))


class TestRecordRoundTrip:
    """Test load(save(c)) == c."""

    def test_every_kind(self, mixed_collection, loaders):
        assert _load_bytes(save(mixed_collection), loaders) == mixed_collection

    def test_empty_collection(self, loaders):
        c = IngredientCollection(cooked_time=0)
        assert _load_bytes(save(c), loaders) == c

    def test_text_form(self, mixed_collection, loaders):
        text = serialize_ingredients(mixed_collection)
        assert set(text) <= set(base91.ALPHABET)
        assert deserialize_ingredients(text, loaders) == mixed_collection

    def test_text_form_starts_with_version(self, mixed_collection):
        raw = base91.decode(serialize_ingredients(mixed_collection))
        assert raw[0] == RECORD_VERSION

    def test_layout(self):
        c = IngredientCollection([PluginItem("P", "i", amount=2)], cooked_time=5)
        expected = (
            b"\x00\x00\x00\x05"      # cooked time
            b"\x01"                  # count
            b"\x00\x02PI"            # kind tag
            b"\x00\x01P\x00\x01i"    # payload
            b"\x00\x02"              # amount
        )
        assert save(c) == expected


class TestRecordLimits:
    """Test clamping and capping."""

    def test_amount_clamped_to_uint16(self, loaders):
        c = IngredientCollection([SimpleItem("WHEAT", amount=70000)])
        loaded = _load_bytes(save(c), loaders)
        assert loaded.ingredients[0].amount == 65535

    def test_more_than_255_entries_truncated(self, loaders, caplog):
        c = IngredientCollection([SimpleItem(f"MAT_{i}") for i in range(300)])
        with caplog.at_level(logging.WARNING):
            loaded = _load_bytes(save(c), loaders)
        assert len(loaded) == 255
        assert loaded.ingredients[-1].material == "MAT_254"
        assert "only the first 255" in caplog.text

    def test_durability_wraps_like_a_short(self, loaders):
        item = SimpleItem("POTION", 40000)
        assert item.durability == -25536
        loaded = deserialize_ingredients(serialize_ingredients(IngredientCollection([item])), loaders)
        assert loaded.ingredients == [item]

    def test_value_outside_field_raises_encode_error(self):
        writer = RecordWriter()
        with pytest.raises(EncodeError):
            writer.write_int(2 ** 40)
        with pytest.raises(EncodeError):
            writer.write_utf("x" * 70000)
        with pytest.raises(EncodeError):
            serialize_ingredients(IngredientCollection([CustomItem("APPLE", custom_model_data=2 ** 40)]))


class TestLoaderRegistry:
    """Test kind dispatch through the loader registry."""

    def test_unknown_tag_keeps_partial_data(self, caplog):
        c = IngredientCollection([
            SimpleItem("WHEAT", amount=2),
            PluginItem("P", "x"),
            SimpleItem("SUGAR", amount=1),
        ], cooked_time=3)
        partial = LoaderRegistry()
        partial.register("SI", SimpleItem.load_from)
        with caplog.at_level(logging.ERROR):
            loaded = _load_bytes(save(c), partial)
        # reading stops at the unknown tag: SUGAR after it is lost as well
        assert loaded == IngredientCollection([SimpleItem("WHEAT", amount=2)], cooked_time=3)
        assert "Ingredient loader not found: PI" in caplog.text

    def test_decoder_returning_none_skips_entry(self):
        c = IngredientCollection([PluginItem("P", "x"), SimpleItem("WHEAT", amount=2)])
        registry = default_loader_registry()

        def reject(loader):
            PluginItem.load_from(loader)
            return None

        registry.register("PI", reject)
        loaded = _load_bytes(save(c), registry)
        assert loaded.ingredients == [SimpleItem("WHEAT", amount=2)]

    def test_decoders_receive_declared_version(self):
        seen = []
        registry = default_loader_registry()

        def spy(loader):
            seen.append((loader.version, loader.save_id))
            return PluginItem.load_from(loader)

        registry.register("PI", spy)
        _load_bytes(save(IngredientCollection([PluginItem("P", "x")])), registry, version=42)
        assert seen == [(42, "PI")]

    def test_version_zero_simple_item(self, loaders):
        writer = RecordWriter()
        writer.write_int(0)
        writer.write_ubyte(2)
        for material, durability in (("WHEAT", 0), ("POTION", 5)):
            writer.write_utf("SI")
            writer.write_utf(material)
            writer.write_short(durability)
            writer.write_ushort(1)
        loaded = _load_bytes(writer.getvalue(), loaders, version=0)
        assert loaded.ingredients == [SimpleItem("WHEAT"), SimpleItem("POTION", 5)]


class TestBrokenText:
    """Test that unreadable text yields an empty collection."""

    def test_invalid_symbol(self, loaders):
        assert deserialize_ingredients('bad"text', loaders) == IngredientCollection()

    def test_truncated_record(self, mixed_collection, loaders):
        raw = base91.decode(serialize_ingredients(mixed_collection))
        assert deserialize_ingredients(base91.encode(raw[:10]), loaders) == IngredientCollection()
