import copy
from typing import Dict, List, Optional, Sequence, Tuple

from amazon_ledger_sync.config.settings import SyncConfig
from amazon_ledger_sync.domain.models import ENRICHMENT_FIELDS, TransactionRecord, overlay
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.parsers.details import LoginArtifactScrubber
from amazon_ledger_sync.services.models import MergeResult

logger = get_logger(__name__)

# Scraped fields that are filled in when the persisted copy lacks them
_BACKFILL_FIELDS = ("merchant", "payment_instrument", "order_url")


def _recency_key(record: TransactionRecord) -> Tuple[bool, int]:
    parsed = record.parsed_date
    return (parsed is None, -parsed.toordinal() if parsed else 0)


class Reconciler:
    """
    Merges freshly normalized records into the persisted collection.

    Records are matched by merge identity (order id, amount text, date and,
    inside a multi-order bundle, the order index). A match keeps the
    persisted record, including its sync state, and overlays the fresh
    enrichment onto it; anything unmatched is added.

    Usage:
        reconciler = Reconciler(config)
        result = reconciler.merge(repository.load(), parser.parse(blocks))
        repository.save(result.records)
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        scrubber: Optional[LoginArtifactScrubber] = None,
    ):
        self.config = config or SyncConfig()
        self.scrubber = scrubber or LoginArtifactScrubber(self.config.login_sentinels)

    def merge(
        self,
        existing: Sequence[TransactionRecord],
        fresh: Sequence[TransactionRecord],
    ) -> MergeResult:
        """
        Merge `fresh` into `existing`. Neither input is modified.

        Before matching, persisted records are dropped when they are
        - loyalty companions whose order has no other record and that the
          fresh batch does not observe again
        - carrying a malformed order id (trailing "-")
        - single-order records of an order that the fresh batch now shows
          inside a multi-order bundle

        Returns:
            MergeResult with new records first (most recent first) followed
            by the persisted records in their original order
        """
        existing = copy.deepcopy(list(existing))
        fresh = copy.deepcopy(list(fresh))
        result = MergeResult(records=[])

        loyalty = self.config.loyalty_instruments
        primary_order_ids = {
            r.order_id for r in existing + fresh
            if r.order_id and not r.uses_instrument(loyalty)
        }
        fresh_bundle_ids = {r.order_id for r in fresh if r.is_multi_order and r.order_id}
        fresh_identities = {r.merge_identity for r in fresh}

        kept: List[TransactionRecord] = []
        by_identity: Dict[Tuple[str, ...], TransactionRecord] = {}

        for record in existing:
            if record.order_id and record.order_id.endswith("-"):
                result.dropped_malformed += 1
                logger.info("Dropping record with malformed order id %s", record.order_id)
                continue

            if (
                record.uses_instrument(loyalty)
                and record.order_id not in primary_order_ids
                and record.merge_identity not in fresh_identities
            ):
                result.dropped_orphan_companions += 1
                logger.info("Dropping orphaned loyalty record %s", record.sample_id)
                continue

            if not record.is_multi_order and record.order_id in fresh_bundle_ids:
                result.dropped_superseded += 1
                logger.info("Dropping single-order record %s, now part of a bundle", record.order_id)
                continue

            identity = record.merge_identity
            first = by_identity.get(identity)
            if first is not None:
                self._absorb(first, record)
                result.collapsed_duplicates += 1
                logger.info("Collapsing duplicate persisted record %s", identity)
                continue

            by_identity[identity] = record
            kept.append(record)

        added: List[TransactionRecord] = []
        for record in fresh:
            self.scrubber.scrub(record)
            identity = record.merge_identity
            current = by_identity.get(identity)

            if current is None:
                by_identity[identity] = record
                added.append(record)
                continue

            if self._absorb(current, record):
                result.updated += 1
            self.scrubber.scrub(current)

        added.sort(key=_recency_key)
        result.added = len(added)
        result.records = added + kept

        for record in result.records:
            self.scrubber.scrub(record)

        logger.info(
            "Merged %d fresh records: %d added, %d updated, %d dropped, %d total",
            len(fresh), result.added, result.updated, result.dropped, result.count,
        )
        return result

    def _absorb(self, current: TransactionRecord, fresh: TransactionRecord) -> bool:
        """Overlay `fresh` onto `current`. Returns True if anything changed."""
        changed = False

        for name in ENRICHMENT_FIELDS:
            before = getattr(current, name)
            after = overlay(before, getattr(fresh, name))
            if after != before:
                setattr(current, name, after)
                changed = True

        for name in _BACKFILL_FIELDS:
            if getattr(current, name) is None and getattr(fresh, name) is not None:
                setattr(current, name, getattr(fresh, name))
                changed = True

        if current.sync_state is None and fresh.sync_state is not None:
            current.sync_state = fresh.sync_state
            changed = True

        return changed
