"""Storage backends for the scan results cache.

This module provides the backends the cache persists its entries in and a
factory selecting one from the audit configuration.
"""

from license_auditor.config import ConfigurationError, StorageConfig
from license_auditor.storages.base import FileStorage
from license_auditor.storages.local import LocalFileStorage
from license_auditor.storages.sqlite import SQLiteStorage

__all__ = [
    "FileStorage",
    "LocalFileStorage",
    "SQLiteStorage",
    "create_storage",
]


def create_storage(config: StorageConfig) -> FileStorage:
    """Create the storage backend named in the configuration.

    Args:
        config: Storage configuration.

    Returns:
        A new backend instance. The caller owns it and must close it.

    Raises:
        ConfigurationError: If the backend name is unknown.
    """
    if config.backend == "local":
        return LocalFileStorage(config.path)
    if config.backend == "sqlite":
        path = config.path if config.path.suffix == ".db" else config.path / "storage.db"
        return SQLiteStorage(path)

    raise ConfigurationError(
        f"Unknown storage backend '{config.backend}'. Supported backends: local, sqlite"
    )
