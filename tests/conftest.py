import pytest

from amazon_ledger_sync.config.settings import SyncConfig
from amazon_ledger_sync.domain.models import TransactionRecord
from amazon_ledger_sync.parsers.amazon_de import AmazonDeTransactionParser
from amazon_ledger_sync.parsers.locale import parse_amount
from amazon_ledger_sync.repositories.json_transaction_repository import JsonTransactionRepository
from amazon_ledger_sync.storage.json_file import JsonStoreFile, StoreConfig
from tests.sample_data import (
    COMPANION_BLOCK_TEXT,
    MULTI_BLOCK_TEXT,
    REFUND_BLOCK_TEXT,
    SINGLE_BLOCK_TEXT,
)


@pytest.fixture
def sync_config() -> SyncConfig:
    """Default settings, no config file involved"""
    return SyncConfig()


@pytest.fixture
def parser(sync_config) -> AmazonDeTransactionParser:
    """Create a parser instance for each test"""
    return AmazonDeTransactionParser(sync_config)


@pytest.fixture
def sample_blocks():
    """Scraped payment history covering every block kind"""
    return [
        {"text": SINGLE_BLOCK_TEXT, "link": "https://www.amazon.de/cpe/yourpayments/1"},
        {"text": MULTI_BLOCK_TEXT, "link": "https://www.amazon.de/cpe/yourpayments/2"},
        {"text": COMPANION_BLOCK_TEXT, "link": None},
        {"text": REFUND_BLOCK_TEXT},
        {"text": "Ihre Zahlungen Übersicht"},
    ]


@pytest.fixture
def make_record():
    """Factory for records with sensible defaults"""

    def _make(
        order_id="304-1234567-1234567",
        date="17. September 2025",
        amount_text="-€4,99",
        **kwargs,
    ) -> TransactionRecord:
        is_refund = kwargs.pop("is_refund", False)
        amount = kwargs.pop("amount_minor_units", parse_amount(amount_text, is_refund))
        return TransactionRecord(
            date=date,
            amount_text=amount_text,
            amount_minor_units=amount,
            order_id=order_id,
            is_refund=is_refund,
            merchant=kwargs.pop("merchant", "Amazon"),
            payment_instrument=kwargs.pop("payment_instrument", "Amazon Visa ••••1234"),
            **kwargs,
        )

    return _make


@pytest.fixture
def store_file(tmp_path) -> JsonStoreFile:
    """Store document in pytest's temporary directory"""
    return JsonStoreFile(StoreConfig(tmp_path / "data" / "transactions.json"))


@pytest.fixture
def repository(store_file) -> JsonTransactionRepository:
    return JsonTransactionRepository(store_file)

