"""Tests for the flat file and SQLite storage backends."""

import logging
import sqlite3

import pytest

from brewery.codec.records import default_loader_registry
from brewery.errors import MalformedRecordError, StorageInitError, StorageOperationError
from brewery.ingredients import CustomItem, IngredientCollection, SimpleItem
from brewery.legacy.gate import DataLoadGate
from brewery.registry import BreweryRegistry
from brewery.storage import (
    Barrel, BoundingBox, BPlayer, Cauldron, DataManager, Location, MiscData, StorageSettings, Wakeup,
)
from brewery.storage.entities import BARRELS, CAULDRONS, PLAYERS, java_list_hash
from brewery.storage.flatfile import FlatFileStorage
from brewery.storage.sqlite import SQLiteStorage
from brewery.woods import BarrelWoodType


def make_settings(tmp_path, storage_type, **overrides):
    values = dict(data_dir=str(tmp_path), storage_type=storage_type, database="test")
    values.update(overrides)
    return StorageSettings(**values)


@pytest.fixture(params=["flatfile", "sqlite"])
def storage(request, tmp_path):
    manager = DataManager.create(make_settings(tmp_path, request.param), default_loader_registry())
    yield manager
    manager.close()


def make_barrel(barrel_id="b1", world="world"):
    return Barrel(
        id=barrel_id,
        spigot=Location(world, 10, 64, -3),
        bounds=BoundingBox(12, 63, -1, 9, 66, -4),
        time=2.5,
        sign=1,
        wood=BarrelWoodType.SPRUCE,
        ingredients=IngredientCollection([SimpleItem("WHEAT", amount=3)], cooked_time=8),
    )


def make_cauldron(cauldron_id="c1", world="world"):
    return Cauldron(
        id=cauldron_id,
        block=Location(world, 1, 70, 1),
        ingredients=IngredientCollection([CustomItem("APPLE", "Golden Fruit", amount=2)], cooked_time=3),
        state=3,
    )


class FailingConnection:
    """Connection wrapper that fails every statement starting with ``prefix``."""

    def __init__(self, conn, prefix):
        self._conn = conn
        self._prefix = prefix

    def __getattr__(self, name):
        return getattr(self._conn, name)

    def execute(self, sql, *args):
        if sql.startswith(self._prefix):
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, *args)


class TestEntities:
    """Test document forms of entities."""

    def test_bounds_are_sorted(self):
        box = BoundingBox(12, 63, -1, 9, 66, -4)
        assert box.serialize() == "9,63,-4,12,66,-1"
        assert box.contains(10, 64, -3)
        assert not box.contains(13, 64, -3)

    def test_location_forms(self):
        loc = Location("world", 1.5, 64, 2, 90, -10)
        assert loc.serialize() == "world,1.5,64,2"
        assert Location.deserialize(loc.serialize(rotation=True)) == loc
        assert Location.deserialize("world,1,2") is None
        assert Location.deserialize("world,a,b,c") is None

    def test_misc_requires_install_time(self):
        with pytest.raises(MalformedRecordError):
            MiscData.from_dict("misc", {"mcBarrelTime": 1}, default_loader_registry())

    def test_java_list_hash(self):
        assert java_list_hash([]) == 1
        assert java_list_hash([1, 2, 3]) == 30817
        assert -2 ** 31 <= java_list_hash([2 ** 31 - 1] * 7) < 2 ** 31


class TestStorageRoundTrip:
    """Test that saved entities read back unchanged on both backends."""

    def test_barrel(self, storage):
        barrel = make_barrel()
        assert storage.save_barrel(barrel)
        assert storage.get_barrel("b1") == barrel

    def test_cauldron(self, storage):
        cauldron = make_cauldron()
        storage.save_cauldron(cauldron)
        assert storage.get_cauldron("c1") == cauldron

    def test_player_and_wakeup(self, storage):
        player = BPlayer("8f2a2a7c-3c1e-4d0a-9a53-2f4b8e3c1d11", quality=7, drunkenness=40, offline_drunkenness=12)
        wakeup = Wakeup("w1", Location("world", 1.5, 64, 2, 90, -10))
        storage.save_player(player)
        storage.save_wakeup(wakeup)
        assert storage.get_all_players() == [player]
        assert storage.get_wakeup("w1") == wakeup

    def test_misc(self, storage):
        assert storage.get_misc_data() is None
        misc = MiscData(install_time=1_600_000_000_000, mc_barrel_time=42,
                        prev_save_seeds=[3, 1], brews_created=[5, 0, 0, 0, 0, 0, 1])
        misc.brews_created_hash = java_list_hash(misc.brews_created)
        assert storage.save_misc_data(misc)
        assert storage.get_misc_data() == misc

    def test_missing_entity(self, storage):
        assert storage.get_barrel("nope") is None
        assert storage.get_all_wakeups() == []

    def test_save_overwrites(self, storage):
        cauldron = make_cauldron()
        storage.save_cauldron(cauldron)
        cauldron.state = 9
        storage.save_cauldron(cauldron)
        assert storage.get_cauldron("c1").state == 9
        assert len(storage.get_all_cauldrons()) == 1

    def test_delete(self, storage):
        storage.save_barrel(make_barrel("b1"))
        storage.save_barrel(make_barrel("b2"))
        assert storage.delete_barrel("b1")
        assert storage.delete_barrel("b1")
        assert [b.id for b in storage.get_all_barrels()] == ["b2"]

    def test_replace_all_removes_absent_rows(self, storage):
        storage.save_all_barrels([make_barrel("b1"), make_barrel("b2"), make_barrel("b3")])
        storage.save_all_barrels([make_barrel("b2")])
        assert [b.id for b in storage.get_all_barrels()] == ["b2"]
        storage.save_all_barrels([])
        assert storage.get_all_barrels() == []

    def test_reopen(self, storage, tmp_path):
        storage.save_barrel(make_barrel())
        storage.close()
        reopened = DataManager.create(storage.settings, default_loader_registry())
        try:
            assert reopened.get_barrel("b1") == make_barrel()
        finally:
            reopened.close()


class TestStorageErrors:
    """Test the error policy of DataManager."""

    def test_malformed_entry_skipped(self, storage, caplog):
        storage.save_cauldron(make_cauldron())
        storage._write(CAULDRONS, "broken", {"ingredients": "", "state": 1})
        with caplog.at_level(logging.ERROR):
            cauldrons = storage.get_all_cauldrons()
        assert [c.id for c in cauldrons] == ["c1"]
        assert "broken" in caplog.text
        assert storage.get_cauldron("broken") is None

    def test_wrongly_typed_fields_skipped(self, storage, caplog):
        storage.save_cauldron(make_cauldron())
        storage._write(CAULDRONS, "numeric", {"block": 5, "ingredients": "", "state": 1})
        storage._write(CAULDRONS, "listed", {"block": "world,1,2,3", "ingredients": [1, 2]})
        storage._write(BARRELS, "boxed", {"spigot": "world,1,2,3", "bounds": {"x": 1}})
        with caplog.at_level(logging.ERROR):
            assert [c.id for c in storage.get_all_cauldrons()] == ["c1"]
            assert storage.get_all_barrels() == []
        assert "numeric" in caplog.text
        assert "listed" in caplog.text
        assert "boxed" in caplog.text

    def test_non_object_entry_skipped(self, storage, caplog):
        storage.save_player(BPlayer("p1"))
        storage._write(PLAYERS, "p2", [1, 2])
        with caplog.at_level(logging.ERROR):
            assert [p.id for p in storage.get_all_players()] == ["p1"]
        assert storage.get_player("p2") is None
        assert "p2" in caplog.text

    def test_unencodable_entity_leaves_table_alone(self, storage, caplog):
        storage.save_all_barrels([make_barrel("b1")])
        bad = make_barrel("b2")
        bad.ingredients = IngredientCollection([CustomItem("APPLE", custom_model_data=2 ** 40)])
        with caplog.at_level(logging.ERROR):
            assert not storage.save_all_barrels([make_barrel("b3"), bad])
            assert not storage.save_barrel(bad)
        assert [b.id for b in storage.get_all_barrels()] == ["b1"]
        assert "cannot encode b2" in caplog.text

    def test_failed_flatfile_write_is_not_applied(self, tmp_path, monkeypatch):
        storage = FlatFileStorage(make_settings(tmp_path, "flatfile"), default_loader_registry())
        storage.save_barrel(make_barrel("b1"))

        def fail(*args, **kwargs):
            raise StorageOperationError("disk full")

        monkeypatch.setattr(storage, "_flush", fail)
        assert not storage.save_barrel(make_barrel("b2"))
        assert not storage.save_all_barrels([make_barrel("b3")])
        assert not storage.delete_barrel("b1")
        assert storage.get_barrel("b2") is None
        assert [b.id for b in storage.get_all_barrels()] == ["b1"]

        monkeypatch.undo()
        storage.close()
        reopened = FlatFileStorage(make_settings(tmp_path, "flatfile"), default_loader_registry())
        try:
            assert [b.id for b in reopened.get_all_barrels()] == ["b1"]
        finally:
            reopened.close()

    def test_failed_write_is_logged(self, storage, monkeypatch, caplog):
        def fail(*args, **kwargs):
            raise StorageOperationError("disk full")

        monkeypatch.setattr(storage, "_write", fail)
        monkeypatch.setattr(storage, "_write_all", fail)
        with caplog.at_level(logging.ERROR):
            assert not storage.save_barrel(make_barrel())
            assert not storage.save_all_barrels([make_barrel()])
        assert "disk full" in caplog.text

    def test_failed_read_yields_nothing(self, storage, monkeypatch):
        def fail(*args, **kwargs):
            raise StorageOperationError("gone")

        monkeypatch.setattr(storage, "_read", fail)
        monkeypatch.setattr(storage, "_read_all", fail)
        assert storage.get_barrel("b1") is None
        assert storage.get_all_barrels() == []

    def test_unreadable_flatfile(self, tmp_path):
        (tmp_path / "test.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageInitError):
            FlatFileStorage(make_settings(tmp_path, "flatfile"), default_loader_registry())

    def test_flatfile_not_an_object(self, tmp_path):
        (tmp_path / "test.json").write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(StorageInitError):
            FlatFileStorage(make_settings(tmp_path, "flatfile"), default_loader_registry())

    def test_data_dir_is_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(StorageInitError):
            SQLiteStorage(make_settings(blocker, "sqlite"), default_loader_registry())

    def test_invalid_table_prefix(self, tmp_path):
        with pytest.raises(StorageInitError):
            SQLiteStorage(make_settings(tmp_path, "sqlite", table_prefix="drop table;"), default_loader_registry())


class TestSQLiteLayout:
    """Test the relational table layout."""

    def test_tables_use_prefix(self, tmp_path):
        storage = SQLiteStorage(make_settings(tmp_path, "sqlite", table_prefix="bt_"), default_loader_registry())
        storage.close()
        conn = sqlite3.connect(str(tmp_path / "test.db"))
        try:
            names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        finally:
            conn.close()
        assert names == {"bt_barrels", "bt_cauldrons", "bt_players", "bt_wakeups", "bt_misc"}

    def test_drop_table(self, tmp_path):
        storage = SQLiteStorage(make_settings(tmp_path, "sqlite"), default_loader_registry())
        try:
            storage.save_barrel(make_barrel())
            storage.drop_table("barrels")
            assert storage.get_all_barrels() == []
            storage.create_table("barrels", 36)
            assert storage.save_barrel(make_barrel())
        finally:
            storage.close()

    def test_replace_all_rolls_back_on_failure(self, tmp_path, monkeypatch, caplog):
        storage = SQLiteStorage(make_settings(tmp_path, "sqlite"), default_loader_registry())
        try:
            storage.save_all_barrels([make_barrel("b1"), make_barrel("b2")])
            live = storage._table(BARRELS)
            # fails after the stale rows were already deleted inside the transaction
            monkeypatch.setattr(storage, "conn", FailingConnection(storage.conn, f"INSERT OR REPLACE INTO {live} "))
            with caplog.at_level(logging.ERROR):
                assert not storage.save_all_barrels([make_barrel("b2"), make_barrel("b9")])
            assert "rolled back" in caplog.text
            monkeypatch.undo()
            assert sorted(b.id for b in storage.get_all_barrels()) == ["b1", "b2"]
            assert storage.save_all_barrels([make_barrel("b9")])
            assert [b.id for b in storage.get_all_barrels()] == ["b9"]
        finally:
            storage.close()


class TestSaveAll:
    """Test checkpointing the live registry."""

    @pytest.fixture
    def registry(self):
        registry = BreweryRegistry()
        registry.add_barrel(make_barrel())
        registry.add_cauldron(make_cauldron())
        registry.add_player(BPlayer("p1", quality=3))
        registry.set_misc(MiscData(install_time=1000))
        return registry

    def test_save_all(self, storage, registry):
        assert storage.save_all(registry, DataLoadGate(attempts=2, backoff=0.01))
        assert storage.get_all_barrels() == [make_barrel()]
        assert storage.get_player("p1").quality == 3
        assert storage.get_misc_data().install_time == 1000

    def test_save_all_replaces_stale_rows(self, storage, registry):
        storage.save_barrel(make_barrel("stale"))
        storage.save_all(registry, DataLoadGate(attempts=2, backoff=0.01))
        assert [b.id for b in storage.get_all_barrels()] == ["b1"]

    def test_save_skipped_while_loading(self, storage, registry, caplog):
        gate = DataLoadGate(attempts=2, backoff=0.01)
        gate.acquire_load()
        try:
            with caplog.at_level(logging.ERROR):
                assert not storage.save_all(registry, gate)
        finally:
            gate.release_load()
        assert storage.get_all_barrels() == []
        assert "Save skipped" in caplog.text
        assert gate.count == 0

    def test_auto_save_interval(self, storage, registry):
        gate = DataLoadGate(attempts=2, backoff=0.01)
        storage.last_auto_save = 0.0
        assert not storage.try_auto_save(registry, gate, now=60.0)
        assert storage.get_all_barrels() == []
        assert storage.try_auto_save(registry, gate, now=180.0)
        assert storage.get_all_barrels() == [make_barrel()]
        assert not storage.try_auto_save(registry, gate, now=200.0)

    def test_exit_saves_and_closes(self, tmp_path, registry):
        settings = make_settings(tmp_path, "flatfile")
        storage = DataManager.create(settings, default_loader_registry())
        storage.exit(registry, DataLoadGate(attempts=2, backoff=0.01))
        reopened = DataManager.create(settings, default_loader_registry())
        assert len(reopened.get_all_cauldrons()) == 1
        reopened.close()
