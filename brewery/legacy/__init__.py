"""Import of the legacy on-disk data layout."""

from .gate import DataLoadGate
from .loader import LegacyBrew, LegacyMigrationLoader, WorldLoadResult, migrate_data_folder

__all__ = ['DataLoadGate', 'LegacyBrew', 'LegacyMigrationLoader', 'WorldLoadResult', 'migrate_data_folder']
