"""Live in-memory registries.

The registry belongs to the thread that created it (the main thread).
Worker threads never touch it: they hand work back through MainThreadQueue,
which the main thread drains on every tick.
"""
from __future__ import annotations
import logging
import queue
import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional, Set

from .storage.entities import Barrel, BPlayer, Cauldron, MiscData, Wakeup

if TYPE_CHECKING:
    from .legacy.loader import LegacyBrew

logger = logging.getLogger(__name__)


class WrongThreadError(RuntimeError):
    """Raised when live state is touched from a thread other than its owner."""
    pass


class MainThreadQueue:
    """Callbacks queued by workers and run by the owning thread."""

    def __init__(self):
        self.owner = threading.get_ident()
        self._queue: queue.SimpleQueue = queue.SimpleQueue()

    def submit(self, fn: Callable[[], None]):
        self._queue.put(fn)

    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self, limit: Optional[int] = None) -> int:
        """Run queued callbacks on the owning thread. Returns how many ran."""
        if threading.get_ident() != self.owner:
            raise WrongThreadError("MainThreadQueue.drain called outside the owning thread")
        done = 0
        while limit is None or done < limit:
            try:
                fn = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                fn()
            except Exception:
                logger.exception("Queued main thread task failed")
            done += 1
        return done


class BreweryRegistry:
    def __init__(self):
        self.owner = threading.get_ident()
        self._barrels: Dict[str, Barrel] = {}
        self._cauldrons: Dict[str, Cauldron] = {}
        self._players: Dict[str, BPlayer] = {}
        self._wakeups: Dict[str, Wakeup] = {}
        self._legacy_brews: Dict[int, LegacyBrew] = {}
        self._worlds: Set[str] = set()
        self.misc: Optional[MiscData] = None

    def _check_thread(self):
        if threading.get_ident() != self.owner:
            raise WrongThreadError("Live registries may only be changed from the main thread")

    # --- Read-only views ---
    @property
    def barrels(self) -> Mapping[str, Barrel]:
        return MappingProxyType(self._barrels)

    @property
    def cauldrons(self) -> Mapping[str, Cauldron]:
        return MappingProxyType(self._cauldrons)

    @property
    def players(self) -> Mapping[str, BPlayer]:
        return MappingProxyType(self._players)

    @property
    def wakeups(self) -> Mapping[str, Wakeup]:
        return MappingProxyType(self._wakeups)

    @property
    def legacy_brews(self) -> Mapping[int, LegacyBrew]:
        return MappingProxyType(self._legacy_brews)

    # --- Worlds ---
    def add_world(self, world: str):
        self._check_thread()
        self._worlds.add(world)

    def remove_world(self, world: str):
        """Unload a world and drop every entity located in it."""
        self._check_thread()
        self._worlds.discard(world)
        for barrel_id in [k for k, b in self._barrels.items() if b.spigot.world == world]:
            del self._barrels[barrel_id]
        for cauldron_id in [k for k, c in self._cauldrons.items() if c.block.world == world]:
            del self._cauldrons[cauldron_id]
        for wakeup_id in [k for k, w in self._wakeups.items() if w.location.world == world]:
            del self._wakeups[wakeup_id]

    def is_world_loaded(self, world: str) -> bool:
        return world in self._worlds

    # --- Entities ---
    def add_barrel(self, barrel: Barrel):
        self._check_thread()
        self._barrels[barrel.id] = barrel

    def remove_barrel(self, barrel_id: str) -> Optional[Barrel]:
        self._check_thread()
        return self._barrels.pop(barrel_id, None)

    def add_cauldron(self, cauldron: Cauldron):
        self._check_thread()
        self._cauldrons[cauldron.id] = cauldron

    def remove_cauldron(self, cauldron_id: str) -> Optional[Cauldron]:
        self._check_thread()
        return self._cauldrons.pop(cauldron_id, None)

    def add_player(self, player: BPlayer):
        self._check_thread()
        self._players[player.id] = player

    def remove_player(self, player_uuid: str) -> Optional[BPlayer]:
        self._check_thread()
        return self._players.pop(player_uuid, None)

    def add_wakeup(self, wakeup: Wakeup):
        self._check_thread()
        self._wakeups[wakeup.id] = wakeup

    def remove_wakeup(self, wakeup_id: str) -> Optional[Wakeup]:
        self._check_thread()
        return self._wakeups.pop(wakeup_id, None)

    def add_legacy_brew(self, brew: LegacyBrew):
        self._check_thread()
        self._legacy_brews[brew.id] = brew

    def remove_legacy_brew(self, brew_id: int) -> Optional[LegacyBrew]:
        self._check_thread()
        return self._legacy_brews.pop(brew_id, None)

    def set_misc(self, misc: MiscData):
        self._check_thread()
        self.misc = misc
