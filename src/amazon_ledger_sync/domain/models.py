from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Sequence, Tuple

from amazon_ledger_sync.parsers.locale import parse_locale_date


class _Unknown:
    """Marker for an enrichment field that no scrape has observed yet"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        return "UNKNOWN"


UNKNOWN = _Unknown()

ENRICHMENT_FIELDS = (
    "order_description",
    "order_titles",
    "order_items",
    "order_summary",
    "ai_summary",
)


def is_known(value: Any) -> bool:
    return value is not UNKNOWN


def overlay(current: Any, fresh: Any) -> Any:
    """
    Decide which value an enrichment field keeps when a fresh observation
    is merged onto a persisted one.

    Each side is in one of three states: UNKNOWN (never observed), None
    (observed empty) or a value. A fresh value always wins; a fresh None
    only fills a field that was still UNKNOWN; a fresh UNKNOWN changes
    nothing. A value is therefore never replaced by None.

    Args:
        current: The persisted field value
        fresh: The newly observed field value

    Returns:
        The value to persist
    """
    if fresh is UNKNOWN:
        return current
    if fresh is None:
        return None if current is UNKNOWN else current
    return fresh


@dataclass
class OrderItem:
    """One purchased line of an order"""
    title: str
    price: Optional[str] = None
    quantity: int = 1


@dataclass
class OrderSummary:
    """Totals block of an order detail page, kept as locale text"""
    subtotal: Optional[str] = None
    voucher: Optional[str] = None
    bonus_points: Optional[str] = None
    shipping: Optional[str] = None
    total: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.voucher or self.bonus_points or self.total)


@dataclass
class MultiOrderGroup:
    """Position of a record inside a bundle of orders charged as one amount"""
    total_amount_text: Optional[str]
    total_amount_minor_units: Optional[int]
    order_index: int
    total_orders: int

    @property
    def is_primary(self) -> bool:
        return self.order_index == 0


@dataclass
class SyncState:
    """Outcome of the last attempt to submit a record to the ledger"""
    synced_at: str
    import_id: str
    ledger_transaction_id: Optional[str] = None
    is_duplicate_import_id: bool = False
    amount_minor_units: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        """The ledger holds this record, either created now or earlier"""
        return self.ledger_transaction_id is not None or self.is_duplicate_import_id

    @property
    def is_ambiguous(self) -> bool:
        """Submitted, but the ledger never confirmed it"""
        return not self.is_terminal


@dataclass
class TransactionRecord:
    """
    One observed ledger-worthy event from the retailer's payment history.

    `date` and `amount_text` keep the scraped German-locale text; the
    canonical forms are derived from them (`iso_date`, `amount_minor_units`
    in milliunits, negative for charges).

    Enrichment fields default to UNKNOWN and are filled by a separate
    order-detail pass. `sync_state` is only set by the ledger sync.
    """
    date: Optional[str]
    amount_text: Optional[str]
    amount_minor_units: Optional[int]
    payment_instrument: Optional[str] = None
    merchant: Optional[str] = None
    order_id: Optional[str] = None
    order_url: Optional[str] = None
    is_refund: bool = False
    order_description: Any = UNKNOWN
    order_titles: Any = UNKNOWN
    order_items: Any = UNKNOWN
    order_summary: Any = UNKNOWN
    ai_summary: Any = UNKNOWN
    multi_order_group: Optional[MultiOrderGroup] = None
    sync_state: Optional[SyncState] = None

    @property
    def parsed_date(self) -> Optional[date]:
        return parse_locale_date(self.date) if self.date else None

    @property
    def iso_date(self) -> Optional[str]:
        parsed = self.parsed_date
        return parsed.isoformat() if parsed else None

    @property
    def is_multi_order(self) -> bool:
        return self.multi_order_group is not None

    @property
    def is_multi_order_sibling(self) -> bool:
        """Non-primary member of a bundle; its primary carries the total"""
        return self.multi_order_group is not None and not self.multi_order_group.is_primary

    @property
    def is_terminally_synced(self) -> bool:
        return self.sync_state is not None and self.sync_state.is_terminal

    @property
    def merge_identity(self) -> Tuple[str, ...]:
        """Composite key that identifies this record across scrapes"""
        parts = (
            self.order_id or "no-id",
            self.amount_text or "no-amount",
            self.date or "no-date",
        )
        if self.multi_order_group is not None:
            parts += (f"idx-{self.multi_order_group.order_index}",)
        return parts

    @property
    def sample_id(self) -> str:
        return self.order_id or "no-id"

    def uses_instrument(self, instruments: Sequence[str]) -> bool:
        """True if the payment instrument names any of `instruments`, ignoring case"""
        if not self.payment_instrument:
            return False
        instrument = self.payment_instrument.lower()
        return any(name.lower() in instrument for name in instruments)

    def first_item_title(self) -> Optional[str]:
        items: List[OrderItem] = self.order_items if self.order_items else []
        return items[0].title if items else None

    def __repr__(self):
        sync = "synced" if self.is_terminally_synced else ("pending" if self.sync_state else "new")
        return f"TransactionRecord({self.order_id}, {self.date}, {self.amount_text}, {sync})"
