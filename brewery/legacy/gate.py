"""Counting gate between legacy data loads and saves.

The counter is -1 while a save runs, 0 when idle and N while N loads run.
Any number of loads may run together; a save waits until no load is
running, and new loads wait while a save runs. Waiting is bounded: after
``attempts`` waits of ``backoff`` seconds the caller gets ConcurrencyTimeout.
"""
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Iterator

import config
from ..errors import ConcurrencyTimeout

logger = logging.getLogger(__name__)

SAVING = -1
IDLE = 0


class DataLoadGate:
    def __init__(self, attempts: int | None = None, backoff: float | None = None):
        self.attempts = config.GATE_ATTEMPTS if attempts is None else attempts
        self.backoff = config.GATE_BACKOFF_SECONDS if backoff is None else backoff
        self._count = IDLE
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def _wait_for(self, ready, what: str):
        """Wait (holding the condition) until ``ready()`` is true or attempts run out."""
        for attempt in range(self.attempts):
            if ready():
                return
            logger.debug("Waiting for %s (attempt %d/%d, count %d)", what, attempt + 1, self.attempts, self._count)
            self._cond.wait(self.backoff)
        if ready():
            return
        raise ConcurrencyTimeout(
            f"Gave up waiting for {what} after {self.attempts} attempts ({self._count})")

    def acquire_load(self):
        """Join the running loads, waiting while a save is in progress.

        Raises:
            ConcurrencyTimeout: If the save does not finish in time.
        """
        with self._cond:
            self._wait_for(lambda: self._count >= IDLE, "a save to finish")
            self._count += 1

    def release_load(self):
        with self._cond:
            if self._count <= IDLE:
                raise RuntimeError(f"release_load without a running load (count {self._count})")
            self._count -= 1
            if self._count == IDLE:
                self._cond.notify_all()

    def try_acquire_save(self) -> bool:
        with self._cond:
            if self._count != IDLE:
                return False
            self._count = SAVING
            return True

    def acquire_save(self):
        """Start a save once all loads are done.

        Raises:
            ConcurrencyTimeout: If the loads do not finish in time.
        """
        with self._cond:
            self._wait_for(lambda: self._count == IDLE, "running loads to finish")
            self._count = SAVING

    def release_save(self):
        with self._cond:
            if self._count != SAVING:
                raise RuntimeError(f"release_save without a running save (count {self._count})")
            self._count = IDLE
            self._cond.notify_all()

    @contextmanager
    def loading(self) -> Iterator[None]:
        self.acquire_load()
        try:
            yield
        finally:
            self.release_load()

    @contextmanager
    def saving(self) -> Iterator[None]:
        self.acquire_save()
        try:
            yield
        finally:
            self.release_save()
