"""
Service layer models - DTOs for service operations.

These models represent the results of service operations, not domain entities.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from amazon_ledger_sync.domain.enums import SelectionStatus, SyncOutcome
from amazon_ledger_sync.domain.models import TransactionRecord
from amazon_ledger_sync.parsers.locale import render_amount


@dataclass
class MergeResult:
    """
    Result of merging a fresh batch into the persisted collection.

    `records` is the merged collection in its final order.
    """
    records: List[TransactionRecord]
    added: int = 0
    updated: int = 0
    dropped_malformed: int = 0
    dropped_superseded: int = 0
    dropped_orphan_companions: int = 0
    collapsed_duplicates: int = 0

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def with_order_id(self) -> int:
        return sum(1 for r in self.records if r.order_id)

    @property
    def dropped(self) -> int:
        return (
            self.dropped_malformed
            + self.dropped_superseded
            + self.dropped_orphan_companions
            + self.collapsed_duplicates
        )


@dataclass
class ImportResult:
    """
    Result of importing a scraped payment history.

    Provides feedback about what happened during import:
    - How many blocks were read and how many became records
    - Which records were new vs matched an existing one
    - What the merge dropped from the persisted collection
    """
    total_blocks: int
    parsed: int
    skipped_blocks: int
    enriched: int
    headline_count: int
    merge: MergeResult
    filepath: str = ""
    dry_run: bool = False

    @property
    def success(self) -> bool:
        """Import is successful if at least one record was added or updated"""
        return self.merge.added > 0 or self.merge.updated > 0

    def __str__(self) -> str:
        lines = [
            f"Import summary for {self.filepath or 'scraped blocks'}:",
            f" 📄 Blocks: {self.total_blocks} ({self.skipped_blocks} skipped)",
            f" 🧾 Transactions: {self.parsed} ({self.headline_count} excluding point companions)",
            f" ✅ New: {self.merge.added}",
            f" 🔁 Updated: {self.merge.updated}",
        ]
        if self.merge.dropped:
            lines.append(f" 🗑️ Dropped from store: {self.merge.dropped}")
        if self.dry_run:
            lines.append(" (dry run, nothing saved)")
        return "\n".join(lines)


@dataclass
class FilterEntry:
    """Count of records in one bucket plus a few sample order ids"""
    count: int = 0
    samples: List[str] = field(default_factory=list)

    def add(self, sample_id: str, limit: int = 5) -> None:
        self.count += 1
        if len(self.samples) < limit:
            self.samples.append(sample_id)


@dataclass
class StatusEntry:
    """Where a selected order id ended up"""
    status: SelectionStatus
    detail: Optional[str] = None


@dataclass
class SelectionTotals:
    file_transactions: int = 0
    with_order_id: int = 0
    with_valid_date: int = 0
    eligible_before_selection: int = 0


@dataclass
class CandidateStats:
    count: int = 0
    refunds: int = 0
    total_minor_units: int = 0


@dataclass
class SelectionResult:
    """
    Output of the sync selector.

    `statuses` maps every order id the selector has an opinion on to its
    audit status. When the caller supplied a selection, only those ids
    appear, and ids that never matched a record stay `not-found`.
    """
    candidates: List[TransactionRecord]
    statuses: Dict[str, StatusEntry]
    totals: SelectionTotals
    filters: Dict[str, FilterEntry]
    flags: Dict[str, FilterEntry]
    candidate_stats: CandidateStats
    requested_ids: List[str] = field(default_factory=list)


@dataclass
class LedgerResponseSummary:
    requested: int = 0
    created: int = 0
    duplicate_import_ids: List[str] = field(default_factory=list)
    missing_import_ids: List[str] = field(default_factory=list)
    matched_import_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SyncSummary:
    """
    Value returned by one sync run.

    Distinguishes "nothing to do" (no candidates), "everything failed"
    (`response.error` set) and partial success (`missing_import_ids`).
    """
    selection: SelectionResult
    payloads: List[Dict[str, Any]] = field(default_factory=list)
    outcomes: Dict[str, SyncOutcome] = field(default_factory=dict)
    response: Optional[LedgerResponseSummary] = None
    dry_run: bool = False
    persisted: bool = False

    @property
    def nothing_to_do(self) -> bool:
        return not self.selection.candidates

    @property
    def failed(self) -> bool:
        return self.response is not None and self.response.error is not None and not self.persisted

    @property
    def statuses(self) -> Dict[str, StatusEntry]:
        return self.selection.statuses

    def count(self, outcome: SyncOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o is outcome)

    def __str__(self) -> str:
        totals = self.selection.totals
        stats = self.selection.candidate_stats
        lines = [
            "Sync summary:",
            f" 📄 Records in store: {totals.file_transactions} ({totals.with_order_id} with order id)",
            f" 📅 Valid dates: {totals.with_valid_date}",
            f" 🎯 Candidates: {stats.count} ({stats.refunds} refunds, {render_amount(stats.total_minor_units)})",
        ]
        for name, entry in self.selection.filters.items():
            if entry.count:
                lines.append(f" ⏭️ {name}: {entry.count} (e.g. {', '.join(entry.samples)})")

        if self.nothing_to_do:
            lines.append(" Nothing to do")
        elif self.dry_run:
            lines.append(f" (dry run, {len(self.payloads)} payloads built, nothing submitted)")
        else:
            lines.extend([
                f" ✅ Created: {self.count(SyncOutcome.CONFIRMED)}",
                f" 🔁 Duplicates: {self.count(SyncOutcome.DUPLICATE)}",
                f" ❓ Unconfirmed: {self.count(SyncOutcome.UNCONFIRMED)}",
            ])
        if self.response is not None and self.response.error:
            lines.append(f" ❌ Error: {self.response.error}")
        return "\n".join(lines)
