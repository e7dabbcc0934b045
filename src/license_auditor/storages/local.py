"""Storage backend keeping one file per key in a local directory."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from license_auditor.storages.base import FileStorage, validate_path

logger = logging.getLogger(__name__)


class LocalFileStorage(FileStorage):
    """Stores every key as a file below a base directory.

    Writes go to a temporary file in the target directory which is then
    renamed over the target, so readers never see a partially written file.

    Attributes:
        directory: Base directory of the storage.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _file(self, path: str) -> Path:
        return self.directory.joinpath(*validate_path(path).split("/"))

    def read(self, path: str) -> bytes:
        return self._file(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        target = self._file(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote %d bytes to '%s'", len(data), target)

    def exists(self, path: str) -> bool:
        return self._file(path).is_file()

    def delete(self, path: str) -> bool:
        target = self._file(path)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def list_paths(self, prefix: Optional[str] = None) -> list[str]:
        paths = sorted(
            p.relative_to(self.directory).as_posix()
            for p in self.directory.rglob("*")
            if p.is_file() and not p.name.endswith(".tmp")
        )
        if prefix:
            paths = [p for p in paths if p.startswith(prefix)]
        return paths

    def info(self) -> dict:
        files = [p for p in self.directory.rglob("*") if p.is_file()]
        return {
            "path": str(self.directory),
            "count": len(self.list_paths()),
            "size_bytes": sum(p.stat().st_size for p in files),
        }
