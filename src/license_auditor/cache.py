"""Durable cache of scan results keyed by package identifier.

Detection takes minutes per package, so every scan result is persisted and
looked up before scanning again. Entries are append-only: adding a result
reads the existing container, appends, and writes the whole container back.

Consistency model: within one process, appends to the same key are
serialized by a per-key lock. Across processes or hosts there is no locking;
two concurrent writers of the same key race and the last one wins, which may
drop the other writer's result. Duplicate results are harmless to resolution,
and a lost result only causes a re-scan later.
"""

import json
import logging
import threading
import weakref

from license_auditor.models import PackageId, ScanResult, ScanResultContainer
from license_auditor.result import Failure, Result, Success
from license_auditor.storages.base import FileStorage

logger = logging.getLogger(__name__)

SCAN_RESULTS_FILE_NAME = "scan-results.json"


class ForeignEntryError(ValueError):
    """Raised when a storage entry holds the scan results of another package."""


class ScanResultsStorage:
    """Reads and appends scan results through a storage backend.

    All expected outcomes (missing entry, corrupt entry, I/O error) are
    reported as Success/Failure results. Other exceptions raised by the
    backend propagate.

    Attributes:
        backend: Storage backend holding the serialized containers.
    """

    def __init__(self, backend: FileStorage) -> None:
        self.backend = backend
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def name(self) -> str:
        return f"{type(self).__name__} with {self.backend.name} backend"

    @staticmethod
    def storage_path(id: PackageId) -> str:
        """Return the backend key for a package: ``<type>/<namespace>/<name>/<version>/scan-results.json``."""
        return f"{id.to_path()}/{SCAN_RESULTS_FILE_NAME}"

    def _lock_for(self, path: str) -> threading.Lock:
        # Entries vanish once no caller holds the lock.
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    def read(self, id: PackageId) -> Result[ScanResultContainer]:
        """Read all stored scan results of a package.

        Args:
            id: Package identifier.

        Returns:
            Success with the container, which is empty if nothing was stored
            yet, or Failure if the entry could not be read or decoded.
        """
        path = self.storage_path(id)

        try:
            data = self.backend.read(path)
        except FileNotFoundError:
            logger.debug("No scan results stored for '%s'", id.to_coordinates())
            return Success(ScanResultContainer(id))
        except (OSError, ValueError) as e:
            message = f"Could not read scan results for '{id.to_coordinates()}' from path '{path}': {e}"
            logger.info(message)
            return Failure(message, cause=e)

        try:
            container = ScanResultContainer.from_dict(json.loads(data))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            message = (
                f"Could not decode scan results for '{id.to_coordinates()}' at path '{path}': "
                f"{type(e).__name__}: {e}"
            )
            logger.info(message)
            return Failure(message, cause=e)

        if container.id != id:
            message = (
                f"Scan results at path '{path}' belong to '{container.id.to_coordinates()}', "
                f"not '{id.to_coordinates()}'"
            )
            logger.info(message)
            return Failure(message, cause=ForeignEntryError(message))

        return Success(container)

    def add(self, id: PackageId, scan_result: ScanResult) -> Result[None]:
        """Append a scan result to the stored results of a package.

        An unreadable existing entry is replaced by a container holding only
        the new result. An entry holding the results of another package is
        never replaced.

        Args:
            id: Package identifier.
            scan_result: The result to append.

        Returns:
            Success, or Failure if the entry belongs to another package or
            could not be written. A failed write may or may not have reached
            the backend and is safe to retry.
        """
        path = self.storage_path(id)

        with self._lock_for(path):
            read_result = self.read(id)
            if isinstance(read_result, Success):
                existing = read_result.value
            elif isinstance(read_result.cause, ForeignEntryError):
                logger.warning(
                    "Not storing scan result for '%s': %s", id.to_coordinates(), read_result.message
                )
                return read_result
            else:
                logger.warning(
                    "Discarding unreadable scan results for '%s': %s",
                    id.to_coordinates(),
                    read_result.message,
                )
                existing = ScanResultContainer(id)

            container = existing.append(scan_result)
            data = json.dumps(container.to_dict(), indent=2).encode("utf-8")

            try:
                self.backend.write(path, data)
            except (OSError, ValueError) as e:
                message = f"Could not store scan result for '{id.to_coordinates()}' at path '{path}': {e}"
                logger.warning(message)
                return Failure(message, cause=e)

        logger.debug(
            "Stored scan result for '%s' at path '%s' (%d result(s) in total)",
            id.to_coordinates(),
            path,
            len(container),
        )
        return Success(None)

    write = add

    def delete(self, id: PackageId) -> bool:
        """Remove all stored scan results of a package."""
        path = self.storage_path(id)
        with self._lock_for(path):
            return self.backend.delete(path)

    def list_ids(self) -> list[PackageId]:
        """Return the identifiers of all packages with stored results."""
        ids = []
        for path in self.backend.list_paths():
            if not path.endswith(f"/{SCAN_RESULTS_FILE_NAME}"):
                continue
            try:
                data = json.loads(self.backend.read(path))
                ids.append(PackageId.from_coordinates(data["id"]))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.info("Skipping unreadable cache entry '%s': %s", path, e)
        return ids

    def clear(self) -> int:
        """Remove the stored scan results of all packages.

        Returns:
            Number of removed entries.
        """
        removed = 0
        for path in self.backend.list_paths():
            if path.endswith(f"/{SCAN_RESULTS_FILE_NAME}") and self.backend.delete(path):
                removed += 1
        logger.info("Removed %d scan results entries", removed)
        return removed

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> "ScanResultsStorage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
