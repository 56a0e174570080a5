from typing import Iterable, Sequence

from amazon_ledger_sync.domain.enums import SelectionStatus
from amazon_ledger_sync.domain.models import TransactionRecord
from amazon_ledger_sync.selection.base import EligibilityRule, Exclusion

INVALID_DATE = "invalid_date"
ALREADY_SYNCED = "already_synced"
INVALID_AMOUNT = "invalid_amount"


class InvalidDateRule(EligibilityRule):
    """Excludes records whose date text does not parse"""

    name = "invalid-date"

    def _matches(self, record: TransactionRecord) -> bool:
        return record.parsed_date is None

    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        return Exclusion(rule=self.name, bucket=INVALID_DATE, status=SelectionStatus.INVALID_DATE)


class AlreadySyncedRule(EligibilityRule):
    """
    Excludes records the ledger already holds: a ledger transaction id was
    returned, or the ledger reported the import id as a duplicate.

    Ambiguous attempts (sync state without either) pass through so they
    are retried.
    """

    name = "already-synced"

    def _matches(self, record: TransactionRecord) -> bool:
        return record.is_terminally_synced

    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        detail = "duplicate-import-id" if record.sync_state.is_duplicate_import_id else None
        return Exclusion(
            rule=self.name,
            bucket=ALREADY_SYNCED,
            status=SelectionStatus.ALREADY_SYNCED,
            detail=detail,
        )


class LoyaltyCompanionRule(EligibilityRule):
    """
    Excludes loyalty-point payments. They are folded into the memo of the
    record that paid the rest of the order.
    """

    name = "loyalty-companion"

    def __init__(self, instruments: Sequence[str]):
        super().__init__()
        self.instruments = tuple(instruments)

    def _matches(self, record: TransactionRecord) -> bool:
        return record.uses_instrument(self.instruments)

    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        return Exclusion(
            rule=self.name,
            status=SelectionStatus.ALREADY_SYNCED,
            detail="loyalty-companion",
            weak=True,
        )

    def __repr__(self):
        return f"LoyaltyCompanionRule({len(self.instruments)} instruments)"


class MultiOrderSiblingRule(EligibilityRule):
    """Excludes bundle members other than the first; it carries the total"""

    name = "multi-order-sibling"

    def _matches(self, record: TransactionRecord) -> bool:
        return record.is_multi_order_sibling

    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        return Exclusion(
            rule=self.name,
            status=SelectionStatus.ALREADY_SYNCED,
            detail="multi-order-sibling",
            weak=True,
        )


class InvalidAmountRule(EligibilityRule):
    """
    Excludes records whose amount text did not parse. Reported with the
    `invalid-date` status since the record's canonical form is incomplete.
    """

    name = "invalid-amount"

    def _matches(self, record: TransactionRecord) -> bool:
        return record.amount_minor_units is None

    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        return Exclusion(
            rule=self.name,
            bucket=INVALID_AMOUNT,
            status=SelectionStatus.INVALID_DATE,
            detail="invalid-amount",
        )


class SelectedOrdersRule(EligibilityRule):
    """Keeps only records whose order id the caller asked for"""

    name = "not-selected"

    def __init__(self, order_ids: Iterable[str]):
        super().__init__()
        self.order_ids = frozenset(order_ids)

    def _matches(self, record: TransactionRecord) -> bool:
        return record.order_id not in self.order_ids

    def _exclusion(self, record: TransactionRecord) -> Exclusion:
        return Exclusion(rule=self.name)

    def __repr__(self):
        return f"SelectedOrdersRule({len(self.order_ids)} orders)"
