"""
File store infrastructure for pore.

Provides TOML file persistence for tree state with:
- Atomic writes (write to temp, then rename)
- Thread-safe operations
- Automatic parent directory creation
"""

import os
import tempfile
import threading
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import toml

from ..exit_codes import DATA_ERROR, CommandError

logger = logging.getLogger(__name__)


class FileStore:
    """
    TOML file persistence with atomic writes.

    Example:
        store = FileStore(Path("tree/.pore/tree.toml"))
        store.write({"remote": "aosp", "branch": "master"})
        remote = store.read()["remote"]
    """

    def __init__(self, path: Path):
        """
        Initialize FileStore.

        Args:
            path: Path to TOML file
        """
        self.path = Path(path).expanduser().absolute()
        self._lock = threading.RLock()
        self._cache: Optional[Dict[str, Any]] = None

    def exists(self) -> bool:
        return self.path.exists()

    def _write_atomic(self, data: Dict[str, Any]) -> None:
        """Write data atomically using temp file and rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temp file in same directory
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp"
        )

        try:
            with os.fdopen(fd, 'w') as f:
                f.write(toml.dumps(data))

            # Atomic rename
            os.replace(temp_path, self.path)

        except Exception:
            # Clean up temp file on error
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def read(self) -> Dict[str, Any]:
        """
        Read entire store.

        Returns:
            Dictionary with all stored data; empty if the file does not exist

        Raises:
            CommandError: if the file exists but is not valid TOML
        """
        with self._lock:
            if self._cache is not None:
                return dict(self._cache)

            if not self.path.exists():
                return {}

            try:
                with open(self.path, 'rb') as f:
                    self._cache = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise CommandError(f"failed to parse {self.path}", DATA_ERROR) from e

            return dict(self._cache)

    def write(self, data: Dict[str, Any]) -> None:
        """
        Write entire store.

        Args:
            data: Dictionary to write
        """
        with self._lock:
            self._write_atomic(data)
            self._cache = dict(data)
