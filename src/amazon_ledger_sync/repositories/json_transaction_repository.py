from contextlib import AbstractContextManager
from typing import Any, Dict, Iterable, List, Optional

from amazon_ledger_sync.domain.models import (
    UNKNOWN,
    MultiOrderGroup,
    OrderItem,
    OrderSummary,
    SyncState,
    TransactionRecord,
    is_known,
)
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.parsers.locale import parse_amount
from amazon_ledger_sync.repositories.base import StoreCorruptError, TransactionRepository
from amazon_ledger_sync.storage.json_file import JsonStoreFile

logger = get_logger(__name__)


class JsonTransactionRepository(TransactionRepository):
    """
    JSON file implementation of the TransactionRepository.

    The document has the shape `{count, withOrderId, transactions: [...]}`
    with camelCase record keys. Documents written by the earlier tool
    (`amount`, `multiOrderTransaction`, `ynabSync`, ...) are read as well
    and rewritten in the current shape on the next save.
    """

    def __init__(self, store_file: JsonStoreFile):
        self.store = store_file

    def load(self) -> List[TransactionRecord]:
        document = self.store.read()
        if document is None:
            return []

        raw_records = document.get("transactions", [])
        if not isinstance(raw_records, list):
            raise StoreCorruptError("'transactions' must be a list")

        return [self._dict_to_record(raw, position) for position, raw in enumerate(raw_records)]

    def save(self, records: Iterable[TransactionRecord]) -> int:
        records = list(records)
        self.store.write(build_document(records))
        logger.info("Persisted %d records to %s", len(records), self.store.path)
        return len(records)

    def lock(self) -> AbstractContextManager:
        return self.store.lock()

    def _dict_to_record(self, raw: Any, position: int) -> TransactionRecord:
        """Convert a stored JSON object into a TransactionRecord."""
        if not isinstance(raw, dict):
            raise StoreCorruptError(f"Record {position} is not a JSON object")

        is_refund = bool(raw.get("isRefund", False))
        group = _read_group(raw, is_refund)

        amount_text = raw.get("amountText", raw.get("amount"))
        if amount_text is None and group is not None:
            amount_text = group.total_amount_text

        if "amountMinorUnits" in raw:
            amount = raw["amountMinorUnits"]
        elif group is not None and not group.is_primary:
            amount = None
        else:
            amount = parse_amount(amount_text, is_refund)

        return TransactionRecord(
            date=raw.get("date"),
            amount_text=amount_text,
            amount_minor_units=amount,
            payment_instrument=raw.get("paymentInstrument"),
            merchant=raw.get("merchant"),
            order_id=raw.get("orderId"),
            order_url=raw.get("orderUrl"),
            is_refund=is_refund,
            order_description=raw.get("orderDescription", UNKNOWN),
            order_titles=_read_titles(raw),
            order_items=_read_items(raw),
            order_summary=_read_summary(raw),
            ai_summary=raw.get("aiSummary", UNKNOWN),
            multi_order_group=group,
            sync_state=_read_sync_state(raw),
        )


def build_document(records: List[TransactionRecord]) -> Dict[str, Any]:
    """Store document with its derived counters"""
    return {
        "count": len(records),
        "withOrderId": sum(1 for r in records if r.order_id),
        "transactions": [record_to_dict(r) for r in records],
    }


def record_to_dict(record: TransactionRecord) -> Dict[str, Any]:
    """Convert a TransactionRecord to its stored JSON object."""
    data: Dict[str, Any] = {
        "date": record.date,
        "isoDate": record.iso_date,
        "amountText": record.amount_text,
        "amountMinorUnits": record.amount_minor_units,
        "paymentInstrument": record.payment_instrument,
        "merchant": record.merchant,
        "orderId": record.order_id,
        "orderUrl": record.order_url,
        "isRefund": record.is_refund,
    }

    # UNKNOWN enrichment is omitted so it loads back as UNKNOWN
    if is_known(record.order_description):
        data["orderDescription"] = record.order_description
    if is_known(record.order_titles):
        data["orderTitles"] = list(record.order_titles) if record.order_titles is not None else None
    if is_known(record.order_items):
        data["orderItems"] = (
            [{"title": i.title, "price": i.price, "quantity": i.quantity} for i in record.order_items]
            if record.order_items is not None else None
        )
    if is_known(record.order_summary):
        summary = record.order_summary
        data["orderSummary"] = {
            "subtotal": summary.subtotal,
            "voucher": summary.voucher,
            "bonusPoints": summary.bonus_points,
            "shipping": summary.shipping,
            "total": summary.total,
        } if summary is not None else None
    if is_known(record.ai_summary):
        data["aiSummary"] = record.ai_summary

    if record.multi_order_group is not None:
        group = record.multi_order_group
        data["multiOrderGroup"] = {
            "totalAmountText": group.total_amount_text,
            "totalAmountMinorUnits": group.total_amount_minor_units,
            "orderIndex": group.order_index,
            "totalOrders": group.total_orders,
        }

    if record.sync_state is not None:
        state = record.sync_state
        data["syncState"] = {
            "syncedAt": state.synced_at,
            "importId": state.import_id,
            "ledgerTransactionId": state.ledger_transaction_id,
            "isDuplicateImportId": state.is_duplicate_import_id,
            "amountMinorUnits": state.amount_minor_units,
        }

    return data


def _read_group(raw: Dict[str, Any], is_refund: bool) -> Optional[MultiOrderGroup]:
    group = raw.get("multiOrderGroup")
    if isinstance(group, dict):
        return MultiOrderGroup(
            total_amount_text=group.get("totalAmountText"),
            total_amount_minor_units=group.get("totalAmountMinorUnits"),
            order_index=int(group.get("orderIndex", 0)),
            total_orders=int(group.get("totalOrders", 1)),
        )

    # Legacy flat layout
    if raw.get("multiOrderTransaction") is True:
        total_text = raw.get("totalAmount") or raw.get("amount")
        return MultiOrderGroup(
            total_amount_text=total_text,
            total_amount_minor_units=parse_amount(total_text, is_refund),
            order_index=int(raw.get("orderIndex") or 0),
            total_orders=int(raw.get("totalOrders") or 1),
        )
    return None


def _read_titles(raw: Dict[str, Any]) -> Any:
    if "orderTitles" not in raw:
        return UNKNOWN
    titles = raw["orderTitles"]
    return [str(t) for t in titles] if titles else None


def _read_items(raw: Dict[str, Any]) -> Any:
    if "orderItems" not in raw:
        return UNKNOWN
    items = raw["orderItems"]
    if not items:
        return None
    return [
        OrderItem(title=i.get("title", ""), price=i.get("price"), quantity=int(i.get("quantity") or 1))
        for i in items
        if isinstance(i, dict)
    ]


def _read_summary(raw: Dict[str, Any]) -> Any:
    if "orderSummary" not in raw:
        return UNKNOWN
    summary = raw["orderSummary"]
    if not summary:
        return None
    return OrderSummary(
        subtotal=summary.get("subtotal"),
        voucher=summary.get("voucher"),
        bonus_points=summary.get("bonusPoints"),
        shipping=summary.get("shipping"),
        total=summary.get("total"),
    )


def _read_sync_state(raw: Dict[str, Any]) -> Optional[SyncState]:
    state = raw.get("syncState")
    if isinstance(state, dict):
        return SyncState(
            synced_at=state.get("syncedAt", ""),
            import_id=state.get("importId", ""),
            ledger_transaction_id=state.get("ledgerTransactionId"),
            is_duplicate_import_id=bool(state.get("isDuplicateImportId", False)),
            amount_minor_units=state.get("amountMinorUnits"),
        )

    legacy = raw.get("ynabSync")
    if isinstance(legacy, dict):
        return SyncState(
            synced_at=legacy.get("at", ""),
            import_id=legacy.get("importId") or "",
            ledger_transaction_id=legacy.get("ynabTransactionId"),
            is_duplicate_import_id=bool(legacy.get("duplicateImportId", False)),
            amount_minor_units=legacy.get("amountMilliunits"),
        )
    return None
