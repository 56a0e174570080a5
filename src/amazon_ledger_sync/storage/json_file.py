import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.repositories.base import StoreCorruptError, StoreLockedError

logger = get_logger(__name__)


class StoreConfig:
    """Persisted store location."""

    def __init__(self, store_path: Path | str = "data/transactions.json"):
        self.store_path = Path(store_path)

    @property
    def lock_path(self) -> Path:
        return self.store_path.with_name(self.store_path.name + ".lock")


class JsonStoreFile:
    """
    Reads and writes one JSON document as a whole.

    Writes go to a temporary file in the same directory which then replaces
    the target, so readers never see a half-written document.
    """

    def __init__(self, config: StoreConfig):
        self.config = config

    @property
    def path(self) -> Path:
        return self.config.store_path

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Read the document.

        Returns:
            The parsed JSON object, or None if the file doesn't exist

        Raises:
            StoreCorruptError: If the file is not a JSON object
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreCorruptError(f"{self.path} is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise StoreCorruptError(f"{self.path} must contain a JSON object")
        return document

    def write(self, document: Dict[str, Any]) -> None:
        """Atomically replace the document"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=str(self.path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @contextmanager
    def lock(self) -> Generator[None, None, None]:
        """
        Hold the single-writer lock file for the duration of the block.

        Raises:
            StoreLockedError: If the lock file already exists
        """
        lock_path = self.config.lock_path
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise StoreLockedError(
                f"{self.path} is locked by another run (remove {lock_path} if that run died)"
            ) from e

        try:
            os.write(fd, str(os.getpid()).encode())
            os.close(fd)
            logger.debug("Acquired store lock %s", lock_path)
            yield
        finally:
            os.unlink(lock_path)
            logger.debug("Released store lock %s", lock_path)
