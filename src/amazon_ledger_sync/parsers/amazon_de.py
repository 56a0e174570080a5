import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from amazon_ledger_sync.config.settings import SyncConfig
from amazon_ledger_sync.domain.models import MultiOrderGroup, TransactionRecord
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.parsers.base import TransactionParser
from amazon_ledger_sync.parsers.blocks import (
    CompanionBlock,
    MultiOrderBlock,
    ParsedBlock,
    RawBlock,
    ScrapedFields,
    SingleOrderBlock,
)
from amazon_ledger_sync.parsers.details import LoginArtifactScrubber
from amazon_ledger_sync.parsers.locale import parse_amount

logger = get_logger(__name__)

DETAILS_URL = "https://www.amazon.de/gp/css/summary/edit.html?orderID={order_id}"


class AmazonDeTransactionParser(TransactionParser):
    """
    Normalizer for the Amazon.de payment history ("Ihre Zahlungen").

    Each entry's link text reads roughly:
        "17. September 2025 Amazon.de · Amazon Visa ••••1234 -€4,99
         Bestellnummer 304-1234567-1234567"

    Input conventions are fixed, not detected:
    - German month names ("März", "Dezember")
    - "€"-prefixed amounts with comma decimals, "+" for credits
    - one or more "Bestellnummer" tokens; several mean the amount is the
      total of a multi-order bundle
    """

    ORDER_ID_PATTERN = re.compile(r"Bestellnummer\s+([0-9-]+)")
    DATE_PATTERN = re.compile(
        r"(\d{1,2}\.\s*(?:Januar|Februar|März|Maerz|April|Mai|Juni|Juli|August|"
        r"September|Oktober|November|Dezember)\s+\d{4})",
        re.IGNORECASE,
    )
    AMOUNT_PATTERN = re.compile(r"([+-]?€\s?\d+(?:\.\d{3})*[.,]\d{2})")
    AMAZON_MERCHANT_PATTERN = re.compile(r"^(AMAZON|AMZN|Amazon\.de|WWW\.AMAZON\.DE)", re.IGNORECASE)
    CARD_INSTRUMENTS = (r"Amazon Visa[^·€+\-]*", "Mastercard", "Visa", "American Express")
    REFUND_MARKER = "Erstattet"

    def __init__(self, config: Optional[SyncConfig] = None):
        self.config = config or SyncConfig()
        self.scrubber = LoginArtifactScrubber(self.config.login_sentinels)
        loyalty = [re.escape(name) for name in self.config.loyalty_instruments]
        self._instrument_pattern = re.compile(
            "(" + "|".join(loyalty + list(self.CARD_INSTRUMENTS)) + ")",
            re.IGNORECASE,
        )
        self.skipped_blocks = 0

    def validate_block(self, raw: Mapping[str, Any]) -> RawBlock:
        if not isinstance(raw, Mapping):
            raise ValueError(f"Raw block must be a mapping, got {type(raw).__name__}")
        return RawBlock.from_mapping(raw)

    def parse(self, raw_blocks: Iterable[Mapping[str, Any]]) -> List[TransactionRecord]:
        """
        Parse scraped payment-history entries.

        Entries without an order number, or with neither a date nor an
        amount, are skipped and counted in `skipped_blocks`.
        """
        self.skipped_blocks = 0
        records: List[TransactionRecord] = []

        for position, raw in enumerate(raw_blocks):
            block = self.classify(self.validate_block(raw))
            if block is None:
                self.skipped_blocks += 1
                logger.debug("Skipping block %d: no order number, date or amount", position)
                continue

            for record in self._records_from_block(block):
                records.append(self.scrubber.scrub(record))

        logger.info("Parsed %d records (%d blocks skipped)", len(records), self.skipped_blocks)
        return records

    def classify(self, raw: RawBlock) -> Optional[ParsedBlock]:
        """Resolve a raw block into its tagged kind, or None if unusable"""
        text = " ".join(raw.text.split())

        order_ids = [m.rstrip("-") for m in self.ORDER_ID_PATTERN.findall(text)]
        order_ids = [oid for oid in order_ids if oid]
        if not order_ids:
            return None

        date_match = self.DATE_PATTERN.search(text)
        date_text = date_match.group(1) if date_match else None

        amount_match = self.AMOUNT_PATTERN.search(text)
        amount_text = amount_match.group(1).replace(" ", "") if amount_match else None

        if not date_text and not amount_text:
            return None

        is_refund = self.REFUND_MARKER in text or bool(amount_text and amount_text.startswith("+"))

        instrument_match = self._instrument_pattern.search(text)
        instrument = instrument_match.group(1).strip() if instrument_match else None

        fields = ScrapedFields(
            date=date_text,
            amount_text=amount_text,
            is_refund=is_refund,
            merchant=self._extract_merchant(text, date_text),
            payment_instrument=instrument,
            link=raw.link,
        )

        if len(order_ids) > 1:
            return MultiOrderBlock(fields=fields, order_ids=tuple(order_ids))
        if instrument and any(name.lower() in instrument.lower() for name in self.config.loyalty_instruments):
            return CompanionBlock(fields=fields, order_id=order_ids[0])
        return SingleOrderBlock(fields=fields, order_id=order_ids[0])

    def _extract_merchant(self, text: str, date_text: Optional[str]) -> Optional[str]:
        """First "·"-separated part after the date"""
        if not date_text:
            return None

        after_date = text[text.index(date_text) + len(date_text):]
        parts = [p.strip() for p in after_date.split("·") if p.strip()]
        if not parts:
            return None

        merchant = parts[0]
        if self.AMAZON_MERCHANT_PATTERN.match(merchant):
            merchant = merchant.split()[0]
        return merchant

    def _records_from_block(self, block: ParsedBlock) -> List[TransactionRecord]:
        fields = block.fields
        amount = parse_amount(fields.amount_text, fields.is_refund)

        if isinstance(block, MultiOrderBlock):
            total_orders = len(block.order_ids)
            return [
                self._make_record(
                    fields,
                    order_id,
                    amount if index == 0 else None,
                    MultiOrderGroup(
                        total_amount_text=fields.amount_text,
                        total_amount_minor_units=amount,
                        order_index=index,
                        total_orders=total_orders,
                    ),
                )
                for index, order_id in enumerate(block.order_ids)
            ]

        return [self._make_record(fields, block.order_id, amount, None)]

    def _make_record(
        self,
        fields: ScrapedFields,
        order_id: str,
        amount: Optional[int],
        group: Optional[MultiOrderGroup],
    ) -> TransactionRecord:
        return TransactionRecord(
            date=fields.date,
            amount_text=fields.amount_text,
            amount_minor_units=amount,
            payment_instrument=fields.payment_instrument,
            merchant=fields.merchant,
            order_id=order_id,
            order_url=DETAILS_URL.format(order_id=order_id) if order_id else fields.link,
            is_refund=fields.is_refund,
            multi_order_group=group,
        )


def headline_count(records: Sequence[TransactionRecord], loyalty_instruments: Sequence[str]) -> int:
    """
    Number of transactions to show as a headline total.

    A loyalty-point companion does not count when a record paid with another
    instrument exists for the same order.
    """
    primaries = {
        r.order_id for r in records
        if r.order_id and not r.uses_instrument(loyalty_instruments)
    }
    return sum(
        1 for r in records
        if not (r.uses_instrument(loyalty_instruments) and r.order_id in primaries)
    )
