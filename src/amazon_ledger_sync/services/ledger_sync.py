from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from amazon_ledger_sync.clients.ynab import LedgerError, LedgerResponse, LedgerTimeoutError
from amazon_ledger_sync.config.settings import SyncConfig
from amazon_ledger_sync.domain.enums import SelectionStatus, SyncOutcome
from amazon_ledger_sync.domain.models import SyncState, TransactionRecord, is_known
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.repositories.base import TransactionRepository
from amazon_ledger_sync.selection import SyncSelector
from amazon_ledger_sync.services.import_ids import (
    Base36SuffixGenerator,
    SuffixGenerator,
    companion_import_id,
    derive_import_id,
)
from amazon_ledger_sync.services.models import LedgerResponseSummary, StatusEntry, SyncSummary
from amazon_ledger_sync.services.progress import NullStatusSink, ProgressEvent, ProgressStage, StatusSink

logger = get_logger(__name__)

MULTI_ORDER_LABEL_LENGTH = 40


class LedgerSyncError(Exception):
    """Raised when the ledger rejects a batch. Nothing was persisted."""

    def __init__(self, message: str, summary: SyncSummary):
        super().__init__(message)
        self.summary = summary


class LedgerClient(Protocol):
    def create_transactions(self, transactions: List[Dict[str, Any]]) -> LedgerResponse:
        ...


@dataclass
class PlannedSubmission:
    """One payload and the records whose sync state it decides"""
    record: TransactionRecord
    payload: Dict[str, Any]
    companion: Optional[TransactionRecord] = None

    @property
    def import_id(self) -> str:
        return self.payload["import_id"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerSyncService:
    """
    Submits eligible records to the ledger exactly once per transaction.

    Each record moves queued -> submitted -> confirmed | duplicate |
    unconfirmed. Confirmed and duplicate records are never submitted again;
    unconfirmed ones are retried on a later run under a new import id.

    The whole run holds the store lock: load, select, submit, persist.

    Usage:
        service = LedgerSyncService(repository, client, account_id="acc-1")
        summary = service.sync(selected_ids=["304-1111111-2222222"])
        print(summary)
    """

    def __init__(
        self,
        repository: TransactionRepository,
        client: Optional[LedgerClient] = None,
        account_id: Optional[str] = None,
        config: Optional[SyncConfig] = None,
        selector: Optional[SyncSelector] = None,
        sink: Optional[StatusSink] = None,
        suffix_generator: Optional[SuffixGenerator] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.repository = repository
        self.client = client
        self.account_id = account_id
        self.config = config or SyncConfig()
        self.selector = selector or SyncSelector(self.config)
        self.sink = sink or NullStatusSink()
        self.suffix_generator = suffix_generator or Base36SuffixGenerator()
        self.clock = clock

    def sync(
        self,
        selected_ids: Optional[Iterable[str]] = None,
        dry_run: bool = False,
    ) -> SyncSummary:
        """
        Run one sync pass.

        Args:
            selected_ids: Optional order ids to restrict the run to
            dry_run: Build payloads only, submit and persist nothing

        Returns:
            SyncSummary of the run. On a ledger timeout every submitted
            record is persisted as unconfirmed and `response.error` is set.

        Raises:
            LedgerSyncError: If the ledger rejected the batch (non-2xx)
            StoreLockedError: If another run holds the store
        """
        with self.repository.lock():
            records = self.repository.load()
            self._emit(ProgressStage.LOADED, f"Loaded {len(records)} records", count=len(records))

            selection = self.selector.select(records, selected_ids)
            summary = SyncSummary(selection=selection, dry_run=dry_run)
            self._emit(
                ProgressStage.SELECTED,
                f"{len(selection.candidates)} records eligible",
                count=len(selection.candidates),
            )

            if summary.nothing_to_do:
                self._emit(ProgressStage.FINISHED, "Nothing to do")
                return summary

            now = self.clock()
            submissions = self.plan(records, selection.candidates, now)
            summary.payloads = [s.payload for s in submissions]

            if dry_run:
                self._emit(ProgressStage.FINISHED, f"Dry run: {len(submissions)} payloads built")
                return summary

            if self.client is None:
                raise ValueError("A ledger client is required unless dry_run is set")

            summary.response = LedgerResponseSummary(requested=len(submissions))
            self._emit(ProgressStage.SUBMITTING, f"Submitting {len(submissions)} transactions")

            try:
                response = self.client.create_transactions(summary.payloads)
            except LedgerTimeoutError as e:
                # Unknown whether the ledger accepted anything; retry later
                logger.warning("Ledger timed out, marking %d records unconfirmed", len(submissions))
                summary.response.error = str(e)
                response = LedgerResponse()
            except LedgerError as e:
                summary.response.error = str(e)
                self._emit(ProgressStage.FINISHED, f"Ledger request failed: {e}")
                raise LedgerSyncError(str(e), summary) from e

            self.apply_response(submissions, response, now, summary)
            self._emit(
                ProgressStage.OUTCOME,
                f"{summary.response.created} created, "
                f"{len(summary.response.duplicate_import_ids)} duplicates, "
                f"{len(summary.response.missing_import_ids)} unconfirmed",
            )

            self.repository.save(records)
            summary.persisted = True
            self._emit(ProgressStage.PERSISTED, f"Saved {len(records)} records", count=len(records))
            self._emit(ProgressStage.FINISHED, "Sync finished")
            return summary

    def plan(
        self,
        records: Sequence[TransactionRecord],
        candidates: Sequence[TransactionRecord],
        now: datetime,
    ) -> List[PlannedSubmission]:
        """
        Build one payload per candidate, folding in loyalty companions.

        Import ids already held by stored records or planned earlier in the
        batch are never handed out again.
        """
        companions = self._companions_by_order(records)
        now_ms = int(now.timestamp() * 1000)
        taken = {r.sync_state.import_id for r in records if r.sync_state is not None}

        submissions = []
        for index, record in enumerate(candidates):
            import_id = derive_import_id(
                record,
                seed=now_ms + index,
                generator=self.suffix_generator,
                prefix=self.config.import_id_prefix,
                max_length=self.config.max_import_id_length,
                taken=taken,
            )
            companion = companions.get(record.order_id or "")
            payload = {
                "account_id": self.account_id,
                "date": record.iso_date,
                "amount": record.amount_minor_units,
                "payee_name": record.merchant or self.config.default_payee,
                "memo": self.build_memo(record, records, companion),
                "cleared": "cleared",
                "approved": False,
                "import_id": import_id,
            }
            taken.add(import_id)
            submissions.append(PlannedSubmission(record=record, payload=payload, companion=companion))
        return submissions

    def build_memo(
        self,
        record: TransactionRecord,
        records: Sequence[TransactionRecord],
        companion: Optional[TransactionRecord] = None,
    ) -> str:
        """
        Memo text for a record.

        A bundle memo lists every order of the bundle and replaces the AI
        summary. Otherwise the AI summary is used, else the start of the
        order description. A folded companion adds
        " [<instrument>: <amount>]", which is always kept in full.
        """
        siblings = self._bundle_members(record, records)
        if len(siblings) > 1:
            memo = self._multi_order_memo(siblings)
        elif is_known(record.ai_summary) and record.ai_summary:
            memo = record.ai_summary
        elif is_known(record.order_description) and record.order_description:
            memo = record.order_description[:self.config.description_excerpt_length]
        else:
            memo = ""

        limit = self.config.memo_max_length
        if companion is None:
            return memo[:limit]

        annotation = f" [{companion.payment_instrument}: {companion.amount_text}]"
        return memo[:max(limit - len(annotation), 0)] + annotation

    def apply_response(
        self,
        submissions: Sequence[PlannedSubmission],
        response: LedgerResponse,
        now: datetime,
        summary: SyncSummary,
    ) -> None:
        """Write the outcome of every submission into the records' sync state"""
        created = response.created_by_import_id
        duplicates = set(response.duplicate_import_ids)
        synced_at = now.isoformat()
        report = summary.response

        for submission in submissions:
            import_id = submission.import_id
            record = submission.record

            if import_id in created:
                outcome = SyncOutcome.CONFIRMED
                state = SyncState(synced_at, import_id, ledger_transaction_id=created[import_id])
                report.matched_import_ids.append(import_id)
            elif import_id in duplicates:
                outcome = SyncOutcome.DUPLICATE
                state = SyncState(synced_at, import_id, is_duplicate_import_id=True)
                report.duplicate_import_ids.append(import_id)
            else:
                outcome = SyncOutcome.UNCONFIRMED
                state = SyncState(synced_at, import_id)
                report.missing_import_ids.append(import_id)

            state.amount_minor_units = record.amount_minor_units
            record.sync_state = state
            summary.outcomes[import_id] = outcome
            logger.debug("%r -> %s", record, outcome.value)

            if submission.companion is not None:
                submission.companion.sync_state = SyncState(
                    synced_at=synced_at,
                    import_id=companion_import_id(import_id, self.config.max_import_id_length),
                    ledger_transaction_id=state.ledger_transaction_id,
                    is_duplicate_import_id=state.is_duplicate_import_id,
                    amount_minor_units=submission.companion.amount_minor_units,
                )

            if record.order_id and record.order_id in summary.statuses:
                summary.statuses[record.order_id] = self._status_for(outcome)

        report.created = len(report.matched_import_ids)

    @staticmethod
    def _status_for(outcome: SyncOutcome) -> StatusEntry:
        if outcome is SyncOutcome.CONFIRMED:
            return StatusEntry(SelectionStatus.SYNCED)
        if outcome is SyncOutcome.DUPLICATE:
            return StatusEntry(SelectionStatus.SYNCED, "duplicate-import-id")
        return StatusEntry(SelectionStatus.QUEUED, "missing-ledger-transaction-id")

    def _companions_by_order(self, records: Sequence[TransactionRecord]) -> Dict[str, TransactionRecord]:
        companions: Dict[str, TransactionRecord] = {}
        for record in records:
            if record.order_id and record.uses_instrument(self.config.loyalty_instruments):
                companions.setdefault(record.order_id, record)
        return companions

    @staticmethod
    def _bundle_members(
        record: TransactionRecord,
        records: Sequence[TransactionRecord],
    ) -> List[TransactionRecord]:
        """Records of the same bundle (same date and total), by order index"""
        group = record.multi_order_group
        if group is None or group.total_orders <= 1:
            return []
        members = [
            r for r in records
            if r.multi_order_group is not None
            and r.date == record.date
            and r.multi_order_group.total_amount_text == group.total_amount_text
        ]
        return sorted(members, key=lambda r: r.multi_order_group.order_index)

    @staticmethod
    def _multi_order_memo(members: Sequence[TransactionRecord]) -> str:
        parts = []
        for position, member in enumerate(members, start=1):
            label = member.first_item_title() or member.order_id or "?"
            if len(label) > MULTI_ORDER_LABEL_LENGTH:
                label = label[:MULTI_ORDER_LABEL_LENGTH] + "..."

            summary = member.order_summary
            total = summary.total if is_known(summary) and summary is not None and summary.total else None
            total_text = total.replace("€", "").strip() if total else "?"
            parts.append(f"[{position}] {label} ({total_text}€)")
        return "Multi-Order: " + " | ".join(parts)

    def _emit(self, stage: ProgressStage, message: str, **details: Any) -> None:
        self.sink.on_progress(ProgressEvent(stage=stage, message=message, details=details))
