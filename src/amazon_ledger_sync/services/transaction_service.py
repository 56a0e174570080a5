import json
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from amazon_ledger_sync.clients.ynab import YnabClient
from amazon_ledger_sync.config.settings import ConfigurationError, LedgerSettings, SyncConfig
from amazon_ledger_sync.domain.models import TransactionRecord
from amazon_ledger_sync.logging_setup import get_logger
from amazon_ledger_sync.parsers.amazon_de import headline_count
from amazon_ledger_sync.parsers.details import LoginArtifactScrubber, OrderDetail, enrich_records
from amazon_ledger_sync.parsers.factory import ParserRegistry
from amazon_ledger_sync.repositories.base import TransactionNotFoundError, TransactionRepository
from amazon_ledger_sync.selection import normalize_order_ids
from amazon_ledger_sync.services.ledger_sync import LedgerSyncService
from amazon_ledger_sync.services.models import ImportResult, SyncSummary
from amazon_ledger_sync.services.progress import LoggingStatusSink, StatusSink
from amazon_ledger_sync.services.reconciliation import Reconciler

logger = get_logger(__name__)


def _read_json_list(filepath: Path, key: str) -> List[Mapping[str, Any]]:
    """Read a JSON array, or the array under `key` of a JSON object"""
    with open(filepath, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValueError(f"{filepath} must contain a JSON array or an object with '{key}'")
    return data


class TransactionService:

    def __init__(
        self,
        repository: TransactionRepository,
        config: Optional[SyncConfig] = None,
        ledger_sync: Optional[LedgerSyncService] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        parsers: Optional[ParserRegistry] = None,
    ):
        self.repository = repository
        self.config = config or SyncConfig()
        self.parsers = parsers or ParserRegistry.from_config()
        self.reconciler = Reconciler(self.config)
        self.scrubber = LoginArtifactScrubber(self.config.login_sentinels)
        self._ledger_sync = ledger_sync
        self._ledger_settings = ledger_settings

    def import_blocks(
        self,
        blocks: Sequence[Mapping[str, Any]],
        details: Optional[Iterable[Mapping[str, Any]]] = None,
        retailer: Optional[str] = None,
        dry_run: bool = False,
        filepath: str = "",
    ) -> ImportResult:
        """
        Normalize scraped blocks and merge them into the store

        Args:
            blocks: Raw `{text, link}` entries of the payment history
            details: Optional order detail records used for enrichment
            retailer: Parser registry key, defaults to the configured retailer
            dry_run: Merge in memory without saving
            filepath: Source shown in the result

        Returns:
            An ImportResult.
        """
        parser = self.parsers.create(retailer or self.config.retailer, self.config)
        fresh = parser.parse(blocks)

        enriched = 0
        if details:
            order_details = [OrderDetail.from_mapping(d) for d in details]
            enriched = enrich_records(fresh, order_details, self.scrubber)

        with self.repository.lock():
            existing = self.repository.load()
            merge = self.reconciler.merge(existing, fresh)
            if not dry_run:
                self.repository.save(merge.records)

        return ImportResult(
            total_blocks=len(blocks),
            parsed=len(fresh),
            skipped_blocks=getattr(parser, "skipped_blocks", 0),
            enriched=enriched,
            headline_count=headline_count(fresh, self.config.loyalty_instruments),
            merge=merge,
            filepath=filepath,
            dry_run=dry_run,
        )

    def import_file(
        self,
        filepath: Path,
        details_path: Optional[Path] = None,
        retailer: Optional[str] = None,
        dry_run: bool = False,
    ) -> ImportResult:
        """
        Import a scraper export file

        Args:
            filepath: JSON array of `{text, link}` blocks (or `{"blocks": [...]}`)
            details_path: Optional JSON array of order details (or `{"orders": [...]}`)
            retailer: Parser registry key, defaults to the configured retailer
            dry_run: Preview without saving
        """
        blocks = _read_json_list(filepath, "blocks")
        details = _read_json_list(details_path, "orders") if details_path else None
        return self.import_blocks(
            blocks,
            details=details,
            retailer=retailer,
            dry_run=dry_run,
            filepath=str(filepath),
        )

    def sync(
        self,
        selected_ids: Optional[Iterable[str]] = None,
        dry_run: bool = False,
        sink: Optional[StatusSink] = None,
    ) -> SyncSummary:
        """
        Submit eligible records to the ledger.

        Ledger settings are only required for a live run; a dry run without
        them builds payloads without an account id.

        Raises:
            ConfigurationError: If a live run has no ledger settings
            LedgerSyncError: If the ledger rejected the batch
        """
        if self._ledger_sync is not None:
            return self._ledger_sync.sync(selected_ids=selected_ids, dry_run=dry_run)

        settings = self._resolve_ledger_settings(required=not dry_run)
        client = YnabClient(settings, self.config) if settings is not None and not dry_run else None
        service = LedgerSyncService(
            self.repository,
            client,
            account_id=settings.account_id if settings is not None else None,
            config=self.config,
            sink=sink or LoggingStatusSink(),
        )
        try:
            return service.sync(selected_ids=selected_ids, dry_run=dry_run)
        finally:
            if client is not None:
                client.close()

    def list_transactions(self) -> List[TransactionRecord]:
        """All persisted records in stored order"""
        return self.repository.load()

    def delete_transactions(self, order_ids: Iterable[str]) -> int:
        """
        Delete every record carrying one of `order_ids`.

        Returns:
            Number of records removed
        """
        wanted = set(normalize_order_ids(order_ids))
        if not wanted:
            return 0

        with self.repository.lock():
            records = self.repository.load()
            kept = [r for r in records if r.order_id not in wanted]
            removed = len(records) - len(kept)
            if removed:
                self.repository.save(kept)

        logger.info("Deleted %d records for %d order ids", removed, len(wanted))
        return removed

    def reset_sync_state(self, order_ids: Iterable[str]) -> int:
        """
        Forget the sync state of every record carrying one of `order_ids`,
        making them eligible again.

        Returns:
            Number of records reset
        """
        wanted = set(normalize_order_ids(order_ids))
        if not wanted:
            return 0

        with self.repository.lock():
            records = self.repository.load()
            touched = 0
            for record in records:
                if record.order_id in wanted and record.sync_state is not None:
                    record.sync_state = None
                    touched += 1
            if touched:
                self.repository.save(records)

        logger.info("Reset sync state of %d records", touched)
        return touched

    def update_ai_summary(self, order_id: str, text: Optional[str]) -> TransactionRecord:
        """
        Set the AI summary of the first record with `order_id`. Empty text
        clears it.

        Raises:
            TransactionNotFoundError: If no record has this order id
        """
        order_id = order_id.strip()
        summary = text.strip() if text else ""

        with self.repository.lock():
            records = self.repository.load()
            record = next((r for r in records if r.order_id == order_id), None)
            if record is None:
                raise TransactionNotFoundError(f"No transaction with order id {order_id}")
            record.ai_summary = summary or None
            self.repository.save(records)

        return record

    def _resolve_ledger_settings(self, required: bool) -> Optional[LedgerSettings]:
        if self._ledger_settings is not None:
            return self._ledger_settings
        try:
            self._ledger_settings = LedgerSettings.from_env()
        except ConfigurationError:
            if required:
                raise
            logger.debug("No ledger settings, building payloads without an account id")
            return None
        return self._ledger_settings
