"""
Order-detail enrichment and login-artifact scrubbing.

Order detail pages are scraped in a separate pass. When the retailer session
has expired, the scraper reads the sign-in page instead and its text
("Anmelden") ends up in titles. Every title and description field is
scrubbed before a record is persisted and again after each merge.
"""
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from amazon_ledger_sync.domain.models import (
    OrderItem,
    OrderSummary,
    TransactionRecord,
    is_known,
)
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.parsers.locale import MILLIUNITS_PER_UNIT, format_decimal_de, parse_amount

logger = get_logger(__name__)

MAX_DESCRIPTION_ITEMS = 5


def _clean(text: Any) -> Optional[str]:
    if not isinstance(text, str):
        return None
    collapsed = " ".join(text.split())
    return collapsed or None


@dataclass
class OrderDetail:
    """What the detail page of one order yielded"""
    order_id: str
    titles: Optional[List[str]] = None
    items: Optional[List[OrderItem]] = None
    summary: Optional[OrderSummary] = None
    ai_summary: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "OrderDetail":
        """
        Build from a scraper detail record (camelCase keys).

        Raises:
            ValueError: If the record has no order id
        """
        order_id = _clean(data.get("orderId"))
        if not order_id:
            raise ValueError(f"Order detail needs an 'orderId', got {data!r}")

        items = None
        if data.get("items"):
            items = []
            for raw in data["items"]:
                title = _clean(raw.get("title"))
                if not title:
                    continue
                quantity = raw.get("quantity") or 1
                items.append(OrderItem(title=title, price=_clean(raw.get("price")), quantity=int(quantity)))

        summary = None
        if data.get("summary"):
            raw_summary = data["summary"]
            summary = OrderSummary(
                subtotal=_clean(raw_summary.get("subtotal")),
                voucher=_clean(raw_summary.get("voucher")),
                bonus_points=_clean(raw_summary.get("bonusPoints")),
                shipping=_clean(raw_summary.get("shipping")),
                total=_clean(raw_summary.get("total")),
            )

        titles = [t for t in (_clean(x) for x in data.get("titles") or []) if t]
        return cls(
            order_id=order_id,
            titles=titles or None,
            items=items,
            summary=summary,
            ai_summary=_clean(data.get("aiSummary")),
        )


class LoginArtifactScrubber:
    """Removes sign-in page text from a record's title and description fields"""

    def __init__(self, sentinels: Sequence[str]):
        phrases = [r"\s+".join(re.escape(word) for word in s.split()) for s in sentinels if s.strip()]
        self._pattern = re.compile(r"\b(?:" + "|".join(phrases) + r")\b", re.IGNORECASE) if phrases else None

    def is_login_text(self, text: Optional[str]) -> bool:
        if not text or self._pattern is None:
            return False
        return self._pattern.search(text) is not None

    def scrub(self, record: TransactionRecord) -> TransactionRecord:
        """Scrub in place and return the record. Emptied lists become None."""
        if is_known(record.order_description) and self.is_login_text(record.order_description):
            record.order_description = None

        if record.order_titles:
            titles = [t for t in record.order_titles if not self.is_login_text(t)]
            record.order_titles = titles or None

        if record.order_items:
            items = [i for i in record.order_items if not self.is_login_text(i.title)]
            record.order_items = items or None

        return record


def dedupe_titles(titles: Iterable[str]) -> List[str]:
    """Exact, case-sensitive de-duplication keeping first-seen order"""
    seen = set()
    unique = []
    for title in titles:
        if title in seen:
            continue
        seen.add(title)
        unique.append(title)
    return unique


def dedupe_items(items: Iterable[OrderItem]) -> List[OrderItem]:
    """
    De-duplicate items by exact title. The surviving item keeps the price
    and quantity of the first slot that carried that title.
    """
    seen = set()
    unique = []
    for item in items:
        title = item.title.strip()
        if not title or title in seen:
            continue
        seen.add(title)
        unique.append(OrderItem(title=title, price=item.price, quantity=item.quantity))
    return unique


def format_description(
    items: Optional[Sequence[OrderItem]],
    titles: Optional[Sequence[str]],
) -> Optional[str]:
    """
    Render a one-line order description:
    "1. Kabel (€9,99) | 2. Adapter | +2 weitere Artikel"
    """
    if items:
        parts = [
            f"{idx + 1}. {item.title}" + (f" ({item.price})" if item.price else "")
            for idx, item in enumerate(items[:MAX_DESCRIPTION_ITEMS])
        ]
        overflow = len(items) - MAX_DESCRIPTION_ITEMS
    elif titles:
        parts = [f"{idx + 1}. {title}" for idx, title in enumerate(titles[:MAX_DESCRIPTION_ITEMS])]
        overflow = len(titles) - MAX_DESCRIPTION_ITEMS
    else:
        return None

    if overflow > 0:
        parts.append(f"+{overflow} weitere Artikel")
    return " | ".join(parts)


def compute_subtotal(items: Optional[Sequence[OrderItem]]) -> Optional[str]:
    """Gross subtotal from item prices, or None unless every item is priced"""
    if not items:
        return None

    total = Decimal(0)
    for item in items:
        milliunits = parse_amount(item.price, is_refund_hint=True)
        if milliunits is None:
            return None
        total += Decimal(milliunits) * item.quantity

    if total <= 0:
        return None
    return format_decimal_de(total / MILLIUNITS_PER_UNIT)


def apply_order_detail(
    record: TransactionRecord,
    detail: OrderDetail,
    scrubber: LoginArtifactScrubber,
) -> TransactionRecord:
    """Set the enrichment fields of `record` from its order detail page"""
    titles = dedupe_titles(t for t in (detail.titles or []) if not scrubber.is_login_text(t))
    items = dedupe_items(i for i in (detail.items or []) if not scrubber.is_login_text(i.title))

    summary = None
    if detail.summary is not None:
        summary = OrderSummary(
            subtotal=compute_subtotal(items) or detail.summary.subtotal,
            voucher=detail.summary.voucher,
            bonus_points=detail.summary.bonus_points,
            shipping=detail.summary.shipping,
            total=detail.summary.total,
        )
        if summary.is_empty():
            summary = None

    record.order_titles = titles or None
    record.order_items = items or None
    record.order_description = format_description(items, titles)
    record.order_summary = summary
    if detail.ai_summary is not None:
        record.ai_summary = detail.ai_summary

    return scrubber.scrub(record)


def enrich_records(
    records: Sequence[TransactionRecord],
    details: Iterable[OrderDetail],
    scrubber: LoginArtifactScrubber,
) -> int:
    """
    Apply order details to every record sharing the detail's order id.

    Returns:
        Number of records enriched
    """
    by_order: Dict[str, OrderDetail] = {d.order_id: d for d in details}
    enriched = 0
    for record in records:
        detail = by_order.get(record.order_id or "")
        if detail is None:
            continue
        apply_order_detail(record, detail, scrubber)
        enriched += 1

    missing = set(by_order) - {r.order_id for r in records if r.order_id}
    if missing:
        logger.debug("Order details without a matching record: %s", sorted(missing))
    return enriched
