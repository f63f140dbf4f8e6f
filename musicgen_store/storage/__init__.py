"""
Storage Layer.

This package handles all data persistence: the versioned track database, the
size-bounded flat store, the legacy archive migration, and configuration files.
"""

from .config_manager import ConfigManager
from .flat_store import FlatStore
from .legacy_migrator import MigrationReport, migrate_legacy_archive, run_startup_migration
from .quota_guard import PersistOutcome, PersistState, QuotaGuard, RetentionLadder
from .repository import TrackRepository
from .schema_store import SchemaStore, close_all_stores, open_store

__all__ = [
    "ConfigManager",
    "FlatStore",
    "MigrationReport",
    "PersistOutcome",
    "PersistState",
    "QuotaGuard",
    "RetentionLadder",
    "SchemaStore",
    "TrackRepository",
    "close_all_stores",
    "migrate_legacy_archive",
    "open_store",
    "run_startup_migration",
]
