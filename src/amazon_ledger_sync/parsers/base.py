from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Mapping

from amazon_ledger_sync.domain.models import TransactionRecord
from amazon_ledger_sync.parsers.blocks import RawBlock


class TransactionParser(ABC):
    """
    Abstract base class for retailer payment-history normalizers.

    This implements the Strategy pattern - each retailer gets its own
    concrete parser that implements this interface.
    """

    @abstractmethod
    def parse(self, raw_blocks: Iterable[Mapping[str, Any]]) -> List[TransactionRecord]:
        """
        Normalize scraped blocks into transaction records.

        Args:
            raw_blocks: `{text, link}` records from the scraper

        Returns:
            List of TransactionRecord objects, in scrape order

        Raises:
            ValueError: If a block is not a `{text, link}` record
        """
        pass

    @abstractmethod
    def validate_block(self, raw: Mapping[str, Any]) -> RawBlock:
        """
        Validate that a scraped record has the expected shape.

        Args:
            raw: One scraper record

        Returns:
            The record as a RawBlock

        Raises:
            ValueError: If the record is malformed
        """
        pass
