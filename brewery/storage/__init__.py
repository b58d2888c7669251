"""Persistent storage for barrels, cauldrons, players, wakeups and misc data."""

from .base import DataManager, StorageSettings, TABLES
from .entities import Barrel, BoundingBox, BPlayer, Cauldron, Location, MiscData, Wakeup

__all__ = [
    'DataManager', 'StorageSettings', 'TABLES',
    'Barrel', 'BoundingBox', 'BPlayer', 'Cauldron', 'Location', 'MiscData', 'Wakeup',
]
