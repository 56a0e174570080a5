import json
from typing import Dict, Iterable, List, Optional, Sequence

from amazon_ledger_sync.config.settings import SyncConfig
from amazon_ledger_sync.domain.enums import SelectionStatus
from amazon_ledger_sync.domain.models import TransactionRecord
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.selection.base import EligibilityRule
from amazon_ledger_sync.selection.rules import (
    ALREADY_SYNCED,
    INVALID_AMOUNT,
    INVALID_DATE,
    AlreadySyncedRule,
    InvalidAmountRule,
    InvalidDateRule,
    LoyaltyCompanionRule,
    MultiOrderSiblingRule,
    SelectedOrdersRule,
)
from amazon_ledger_sync.services.models import (
    CandidateStats,
    FilterEntry,
    SelectionResult,
    SelectionTotals,
    StatusEntry,
)

logger = get_logger(__name__)

SYNCED_WITHOUT_ID = "synced_without_id"


def normalize_order_ids(order_ids: Optional[Iterable[str]]) -> List[str]:
    """Trim, drop empties and de-duplicate, keeping first-seen order"""
    if not order_ids:
        return []
    seen = set()
    result = []
    for raw in order_ids:
        order_id = str(raw).strip()
        if not order_id or order_id in seen:
            continue
        seen.add(order_id)
        result.append(order_id)
    return result


def parse_order_ids(text: Optional[str]) -> List[str]:
    """
    Parse an order id list given as a JSON array or as comma separated text.

    Example:
        parse_order_ids('["302-1", "302-2"]') == ["302-1", "302-2"]
        parse_order_ids("302-1, 302-2") == ["302-1", "302-2"]
    """
    if not text or not text.strip():
        return []

    stripped = text.strip()
    if stripped.startswith("["):
        try:
            values = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Order id list is not valid JSON: {e}") from e
        if not isinstance(values, list):
            raise ValueError("Order id list must be a JSON array")
        return normalize_order_ids(str(v) for v in values)

    return normalize_order_ids(stripped.split(","))


class SyncSelector:
    """
    Chooses which persisted records go to the ledger.

    Builds a chain of eligibility rules in this order:
    1. Date must parse
    2. Not already held by the ledger
    3. Not a loyalty-point companion
    4. Not a non-primary member of a multi-order bundle
    5. Amount must parse
    6. In the caller's selection, if one was given

    Usage:
        selector = SyncSelector(config)
        result = selector.select(records, selected_ids=["304-1111111-2222222"])
        for record in result.candidates:
            ...
    """

    def __init__(self, config: Optional[SyncConfig] = None):
        self.config = config or SyncConfig()

    def build_chain(self, selected_ids: Sequence[str] = ()) -> EligibilityRule:
        rules: List[EligibilityRule] = [
            InvalidDateRule(),
            AlreadySyncedRule(),
            LoyaltyCompanionRule(self.config.loyalty_instruments),
            MultiOrderSiblingRule(),
            InvalidAmountRule(),
        ]
        if selected_ids:
            rules.append(SelectedOrdersRule(selected_ids))

        for i in range(len(rules) - 1):
            rules[i].set_next(rules[i + 1])
        return rules[0]

    def select(
        self,
        records: Sequence[TransactionRecord],
        selected_ids: Optional[Iterable[str]] = None,
    ) -> SelectionResult:
        """
        Run every record through the rule chain.

        Args:
            records: The persisted collection
            selected_ids: Optional order ids to restrict the run to

        Returns:
            SelectionResult with the candidates in stored order plus the
            counters and the per-order status map
        """
        requested = normalize_order_ids(selected_ids)
        chain = self.build_chain(requested)
        limit = self.config.summary_sample_limit

        totals = SelectionTotals(file_transactions=len(records))
        filters: Dict[str, FilterEntry] = {
            INVALID_DATE: FilterEntry(),
            ALREADY_SYNCED: FilterEntry(),
            INVALID_AMOUNT: FilterEntry(),
        }
        flags: Dict[str, FilterEntry] = {SYNCED_WITHOUT_ID: FilterEntry()}
        statuses: Dict[str, StatusEntry] = {
            order_id: StatusEntry(SelectionStatus.NOT_FOUND) for order_id in requested
        }
        candidates: List[TransactionRecord] = []
        stats = CandidateStats()

        for record in records:
            if record.order_id:
                totals.with_order_id += 1
            if record.parsed_date is not None:
                totals.with_valid_date += 1
            if record.sync_state is not None and record.sync_state.is_ambiguous:
                flags[SYNCED_WITHOUT_ID].add(record.sample_id, limit)

            exclusion = chain.evaluate(record)

            if exclusion is None or exclusion.rule == SelectedOrdersRule.name:
                totals.eligible_before_selection += 1

            if exclusion is None:
                candidates.append(record)
                stats.count += 1
                stats.refunds += 1 if record.is_refund else 0
                stats.total_minor_units += record.amount_minor_units
                self._set_status(statuses, requested, record, StatusEntry(SelectionStatus.QUEUED))
                continue

            logger.debug("Excluding %r: %s", record, exclusion.rule)
            if exclusion.bucket is not None:
                filters[exclusion.bucket].add(record.sample_id, limit)
            if exclusion.status is not None:
                self._set_status(
                    statuses,
                    requested,
                    record,
                    StatusEntry(exclusion.status, exclusion.detail),
                    weak=exclusion.weak,
                )

        logger.info(
            "Selected %d of %d records (%d before selection)",
            len(candidates), len(records), totals.eligible_before_selection,
        )
        return SelectionResult(
            candidates=candidates,
            statuses=statuses,
            totals=totals,
            filters=filters,
            flags=flags,
            candidate_stats=stats,
            requested_ids=requested,
        )

    @staticmethod
    def _set_status(
        statuses: Dict[str, StatusEntry],
        requested: List[str],
        record: TransactionRecord,
        entry: StatusEntry,
        weak: bool = False,
    ) -> None:
        """
        Record the audit status of the record's order id.

        With a caller selection only selected ids are tracked. A queued
        status is never overwritten, and a weak status only replaces
        `not-found`.
        """
        order_id = record.order_id
        if not order_id:
            return
        if requested and order_id not in statuses:
            return

        current = statuses.get(order_id)
        if current is not None:
            if current.status is SelectionStatus.QUEUED:
                return
            if weak and current.status is not SelectionStatus.NOT_FOUND:
                return
        statuses[order_id] = entry
