"""Tests for the data load gate."""

import threading
import time

import pytest

from brewery.errors import ConcurrencyTimeout
from brewery.legacy.gate import IDLE, SAVING, DataLoadGate


@pytest.fixture
def gate():
    return DataLoadGate(attempts=3, backoff=0.01)


class TestCounting:
    """Test the counter states."""

    def test_loads_run_together(self, gate):
        gate.acquire_load()
        gate.acquire_load()
        assert gate.count == 2
        gate.release_load()
        gate.release_load()
        assert gate.count == IDLE

    def test_save_state(self, gate):
        assert gate.try_acquire_save()
        assert gate.count == SAVING
        assert not gate.try_acquire_save()
        gate.release_save()
        assert gate.count == IDLE

    def test_try_save_refused_while_loading(self, gate):
        with gate.loading():
            assert not gate.try_acquire_save()

    def test_unbalanced_release(self, gate):
        with pytest.raises(RuntimeError):
            gate.release_load()
        with pytest.raises(RuntimeError):
            gate.release_save()

    def test_context_managers_release_on_error(self, gate):
        with pytest.raises(ValueError):
            with gate.loading():
                raise ValueError("boom")
        assert gate.count == IDLE
        with pytest.raises(ValueError):
            with gate.saving():
                raise ValueError("boom")
        assert gate.count == IDLE


class TestTimeouts:
    """Test bounded waiting."""

    def test_save_times_out_while_loading(self, gate):
        gate.acquire_load()
        with pytest.raises(ConcurrencyTimeout):
            gate.acquire_save()
        assert gate.count == 1

    def test_load_times_out_while_saving(self, gate):
        gate.acquire_save()
        with pytest.raises(ConcurrencyTimeout):
            gate.acquire_load()
        assert gate.count == SAVING


class TestWaiting:
    """Test that waiters proceed once the other side is done."""

    def test_save_waits_for_loads(self):
        gate = DataLoadGate(attempts=200, backoff=0.01)
        gate.acquire_load()
        saved = threading.Event()

        def save():
            with gate.saving():
                saved.set()

        worker = threading.Thread(target=save)
        worker.start()
        time.sleep(0.05)
        assert not saved.is_set()
        gate.release_load()
        worker.join(2)
        assert saved.is_set()
        assert gate.count == IDLE

    def test_load_waits_for_save(self):
        gate = DataLoadGate(attempts=200, backoff=0.01)
        gate.acquire_save()
        loaded = threading.Event()

        def load():
            with gate.loading():
                loaded.set()

        worker = threading.Thread(target=load)
        worker.start()
        time.sleep(0.05)
        assert not loaded.is_set()
        gate.release_save()
        worker.join(2)
        assert loaded.is_set()
        assert gate.count == IDLE

    def test_concurrent_loads(self):
        gate = DataLoadGate(attempts=200, backoff=0.01)
        inside = []
        barrier = threading.Barrier(4)

        def load():
            with gate.loading():
                barrier.wait(2)
                inside.append(gate.count)

        workers = [threading.Thread(target=load) for _ in range(4)]
        for w in workers:
            w.start()
        for w in workers:
            w.join(2)
        assert len(inside) == 4
        assert max(inside) == 4
        assert gate.count == IDLE
