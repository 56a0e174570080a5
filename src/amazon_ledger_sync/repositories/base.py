from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Iterable, List

from amazon_ledger_sync.domain.models import TransactionRecord


class StoreError(Exception):
    """Base class for persisted store failures."""
    pass


class StoreLockedError(StoreError):
    """Raised when another run holds the single-writer lock."""
    pass


class StoreCorruptError(StoreError):
    """Raised when the persisted document cannot be read."""
    pass


class TransactionNotFoundError(StoreError):
    """Raised when no record carries the requested order id."""
    pass


class TransactionRepository(ABC):
    """
    Abstract repository for the persisted transaction collection.

    The collection is read and written wholesale: every run loads all
    records, works in memory and saves the full list back once. Callers
    that read-modify-write must hold `lock()` for the whole cycle.
    """

    @abstractmethod
    def load(self) -> List[TransactionRecord]:
        """
        Load every persisted record, in stored order.

        Returns:
            The records, or an empty list if nothing was persisted yet

        Raises:
            StoreCorruptError: If the stored document is unreadable
        """
        pass

    @abstractmethod
    def save(self, records: Iterable[TransactionRecord]) -> int:
        """
        Replace the persisted collection atomically.

        Args:
            records: The complete collection, in the order to store it

        Returns:
            Number of records written
        """
        pass

    @abstractmethod
    def lock(self) -> AbstractContextManager:
        """
        Run-level single-writer gate.

        Usage:
            with repository.lock():
                records = repository.load()
                ...
                repository.save(records)

        Raises:
            StoreLockedError: If another run holds the lock
        """
        pass
