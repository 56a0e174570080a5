"""
Raw scraped blocks and the tagged union they resolve into.

The scraper hands over loosely shaped `{text, link}` pairs. A parser reads
each one exactly once into a `ScrapedFields` plus one of three block kinds;
nothing past the parser sees the loose shape.
"""
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional, Tuple, Union

from amazon_ledger_sync.domain.enums import BlockKind


@dataclass(frozen=True)
class RawBlock:
    """Text of one payment-history entry and the link it pointed at"""
    text: str
    link: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawBlock":
        """
        Build from a scraper record.

        Raises:
            ValueError: If the record has no usable text
        """
        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ValueError(f"Raw block needs a non-empty 'text', got {data!r}")
        link = data.get("link") or data.get("href")
        return cls(text=text, link=link if isinstance(link, str) else None)


@dataclass(frozen=True)
class ScrapedFields:
    """Values every block kind shares"""
    date: Optional[str]
    amount_text: Optional[str]
    is_refund: bool
    merchant: Optional[str]
    payment_instrument: Optional[str]
    link: Optional[str]


@dataclass(frozen=True)
class SingleOrderBlock:
    kind: ClassVar[BlockKind] = BlockKind.SINGLE_ORDER
    fields: ScrapedFields
    order_id: str


@dataclass(frozen=True)
class MultiOrderBlock:
    """One charge covering several orders; `amount_text` is the bundle total"""
    kind: ClassVar[BlockKind] = BlockKind.MULTI_ORDER
    fields: ScrapedFields
    order_ids: Tuple[str, ...]


@dataclass(frozen=True)
class CompanionBlock:
    """Loyalty-point part payment of an order charged elsewhere"""
    kind: ClassVar[BlockKind] = BlockKind.COMPANION
    fields: ScrapedFields
    order_id: str


ParsedBlock = Union[SingleOrderBlock, MultiOrderBlock, CompanionBlock]
