"""Base interface for key/blob storage backends.

Backends persist opaque bytes under slash separated relative keys. They know
nothing about scan results; serialization is done by the caller.
"""

from abc import ABC, abstractmethod
from typing import Optional


def validate_path(path: str) -> str:
    """Check that a storage key is a clean relative path.

    Args:
        path: Slash separated key.

    Returns:
        The key unchanged.

    Raises:
        ValueError: If the key is empty, absolute, or contains "." or ".." segments.
    """
    if not path or path.startswith("/") or "\\" in path:
        raise ValueError(f"Invalid storage path '{path}'")
    if any(segment in ("", ".", "..") for segment in path.split("/")):
        raise ValueError(f"Invalid storage path '{path}'")
    return path


class FileStorage(ABC):
    """Abstract base class for storage backends.

    Backends are constructed once per run and closed at the end of the run.
    They can be used as context managers.
    """

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Read the bytes stored under a key.

        Args:
            path: Storage key.

        Returns:
            The stored bytes.

        Raises:
            FileNotFoundError: If nothing is stored under the key.
            OSError: If the backend cannot be read.
        """
        ...

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """Atomically store bytes under a key, replacing any previous value.

        Args:
            path: Storage key.
            data: Bytes to store.

        Raises:
            OSError: If the backend cannot be written.
        """
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove a key. Returns True if something was removed."""
        ...

    @abstractmethod
    def list_paths(self, prefix: Optional[str] = None) -> list[str]:
        """Return all stored keys, optionally restricted to a key prefix."""
        ...

    def info(self) -> dict:
        """Return backend statistics for display."""
        return {"count": len(self.list_paths())}

    def close(self) -> None:
        """Release backend resources. The default does nothing."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def __enter__(self) -> "FileStorage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
