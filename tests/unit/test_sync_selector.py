import pytest

from amazon_ledger_sync.domain.enums import SelectionStatus
from amazon_ledger_sync.domain.models import MultiOrderGroup, SyncState
from amazon_ledger_sync.selection import (
    ALREADY_SYNCED,
    INVALID_AMOUNT,
    INVALID_DATE,
    AlreadySyncedRule,
    InvalidDateRule,
    SyncSelector,
    normalize_order_ids,
    parse_order_ids,
)
from amazon_ledger_sync.selection.selector import SYNCED_WITHOUT_ID
from amazon_ledger_sync.services.models import StatusEntry

POINTS = "Santander-Punkte"


@pytest.fixture
def selector(sync_config) -> SyncSelector:
    return SyncSelector(sync_config)


def _confirmed(import_id="AMZ:-4990:2025-09-17") -> SyncState:
    return SyncState("2025-09-18T10:00:00+00:00", import_id, ledger_transaction_id="ynab-1")


def _bundle(index: int) -> MultiOrderGroup:
    return MultiOrderGroup("-€39,98", -39980, order_index=index, total_orders=2)


@pytest.mark.unit
class TestRuleChain:

    def test_chain_order(self, selector: SyncSelector):
        # Act
        rule = selector.build_chain(["304-1"])
        names = []
        while rule is not None:
            names.append(rule.name)
            rule = rule.next_rule

        # Assert
        assert names == [
            "invalid-date",
            "already-synced",
            "loyalty-companion",
            "multi-order-sibling",
            "invalid-amount",
            "not-selected",
        ]

    def test_chain_without_selection_has_no_selection_rule(self, selector: SyncSelector):
        rule = selector.build_chain()
        while rule.next_rule is not None:
            rule = rule.next_rule

        assert rule.name == "invalid-amount"

    def test_first_matching_rule_wins(self, make_record):
        # Arrange
        first = InvalidDateRule()
        first.set_next(AlreadySyncedRule())
        record = make_record(date="32. Januar 2025", sync_state=_confirmed())

        # Act
        exclusion = first.evaluate(record)

        # Assert
        assert exclusion.rule == "invalid-date"
        assert exclusion.bucket == INVALID_DATE
        assert exclusion.status is SelectionStatus.INVALID_DATE

    def test_eligible_record_passes_whole_chain(self, selector: SyncSelector, make_record):
        assert selector.build_chain().evaluate(make_record()) is None


@pytest.mark.unit
class TestSelection:

    def test_eligible_records_are_candidates(self, selector: SyncSelector, make_record):
        # Arrange
        records = [
            make_record(),
            make_record(order_id="028-1", amount_text="+€24,48", is_refund=True),
        ]

        # Act
        result = selector.select(records)

        # Assert
        assert result.candidates == records
        assert result.candidate_stats.count == 2
        assert result.candidate_stats.refunds == 1
        assert result.candidate_stats.total_minor_units == -4990 + 24480
        assert result.statuses["304-1234567-1234567"] == StatusEntry(SelectionStatus.QUEUED)
        assert result.totals.file_transactions == 2
        assert result.totals.with_order_id == 2
        assert result.totals.with_valid_date == 2
        assert result.totals.eligible_before_selection == 2

    def test_terminally_synced_records_are_excluded(self, selector: SyncSelector, make_record):
        # Arrange
        duplicate = SyncState("2025-09-18T10:00:00+00:00", "AMZ:-1000:2025-09-17", is_duplicate_import_id=True)
        records = [
            make_record(sync_state=_confirmed()),
            make_record(order_id="304-2", amount_text="-€1,00", sync_state=duplicate),
        ]

        # Act
        result = selector.select(records)

        # Assert
        assert result.candidates == []
        assert result.filters[ALREADY_SYNCED].count == 2
        assert result.filters[ALREADY_SYNCED].samples == ["304-1234567-1234567", "304-2"]
        assert result.statuses["304-1234567-1234567"] == StatusEntry(SelectionStatus.ALREADY_SYNCED)
        assert result.statuses["304-2"] == StatusEntry(SelectionStatus.ALREADY_SYNCED, "duplicate-import-id")

    def test_ambiguous_record_is_retried_and_flagged(self, selector: SyncSelector, make_record):
        # Arrange
        unconfirmed = SyncState("2025-09-18T10:00:00+00:00", "AMZ:-4990:2025-09-17")
        record = make_record(sync_state=unconfirmed)

        # Act
        result = selector.select([record])

        # Assert
        assert result.candidates == [record]
        assert result.flags[SYNCED_WITHOUT_ID].count == 1
        assert result.flags[SYNCED_WITHOUT_ID].samples == ["304-1234567-1234567"]

    def test_invalid_date_and_amount_buckets(self, selector: SyncSelector, make_record):
        # Arrange
        records = [
            make_record(order_id="304-1", date="Gestern"),
            make_record(order_id="304-2", amount_text="€ -"),
        ]

        # Act
        result = selector.select(records)

        # Assert
        assert result.candidates == []
        assert result.filters[INVALID_DATE].count == 1
        assert result.filters[INVALID_AMOUNT].count == 1
        assert result.statuses["304-1"] == StatusEntry(SelectionStatus.INVALID_DATE)
        assert result.statuses["304-2"] == StatusEntry(SelectionStatus.INVALID_DATE, "invalid-amount")
        assert result.totals.with_valid_date == 1

    def test_loyalty_companion_and_sibling_are_not_candidates(self, selector: SyncSelector, make_record):
        # Arrange
        records = [
            make_record(order_id="304-9", amount_text="-€5,00", payment_instrument=POINTS),
            make_record(order_id="302-1", amount_text="-€39,98", multi_order_group=_bundle(0)),
            make_record(order_id="302-2", amount_text="-€39,98", amount_minor_units=None, multi_order_group=_bundle(1)),
        ]

        # Act
        result = selector.select(records)

        # Assert
        assert [r.order_id for r in result.candidates] == ["302-1"]
        assert result.statuses["304-9"] == StatusEntry(SelectionStatus.ALREADY_SYNCED, "loyalty-companion")
        assert result.statuses["302-2"] == StatusEntry(SelectionStatus.ALREADY_SYNCED, "multi-order-sibling")
        assert all(entry.count == 0 for entry in result.filters.values())


@pytest.mark.unit
class TestSelectionWithOrderIds:

    def test_only_selected_ids_are_candidates(self, selector: SyncSelector, make_record):
        # Arrange
        records = [make_record(order_id="304-1"), make_record(order_id="304-2")]

        # Act
        result = selector.select(records, selected_ids=["304-2"])

        # Assert
        assert [r.order_id for r in result.candidates] == ["304-2"]
        assert set(result.statuses) == {"304-2"}
        assert result.totals.eligible_before_selection == 2
        assert result.requested_ids == ["304-2"]

    def test_unmatched_selection_is_not_found(self, selector: SyncSelector, make_record):
        result = selector.select([make_record()], selected_ids=["999-0000000-0000000"])

        assert result.candidates == []
        assert result.statuses == {"999-0000000-0000000": StatusEntry(SelectionStatus.NOT_FOUND)}

    @pytest.mark.parametrize("companion_first", [True, False])
    def test_companion_never_hides_queued_primary(self, selector: SyncSelector, make_record, companion_first):
        """Test that the status of an order is queued whatever the record order"""
        # Arrange
        companion = make_record(order_id="304-1", amount_text="-€5,00", payment_instrument=POINTS)
        primary = make_record(order_id="304-1", amount_text="-€20,00")
        records = [companion, primary] if companion_first else [primary, companion]

        # Act
        result = selector.select(records, selected_ids=["304-1"])

        # Assert
        assert result.candidates == [primary]
        assert result.statuses["304-1"] == StatusEntry(SelectionStatus.QUEUED)

    def test_companion_does_not_hide_synced_primary(self, selector: SyncSelector, make_record):
        # Arrange
        records = [
            make_record(order_id="304-1", amount_text="-€20,00", sync_state=_confirmed()),
            make_record(order_id="304-1", amount_text="-€5,00", payment_instrument=POINTS),
        ]

        # Act
        result = selector.select(records, selected_ids=["304-1"])

        # Assert
        assert result.statuses["304-1"] == StatusEntry(SelectionStatus.ALREADY_SYNCED)

    def test_selection_is_normalized(self, selector: SyncSelector, make_record):
        result = selector.select([make_record(order_id="304-1")], selected_ids=[" 304-1 ", "304-1", ""])

        assert result.requested_ids == ["304-1"]
        assert len(result.candidates) == 1


@pytest.mark.unit
class TestOrderIdParsing:

    def test_normalize_order_ids(self):
        assert normalize_order_ids(["b", " a ", "b", "  "]) == ["b", "a"]
        assert normalize_order_ids(None) == []

    @pytest.mark.parametrize("text,expected", [
        ('["302-1", "302-2"]', ["302-1", "302-2"]),
        ("302-1, 302-2,,302-1", ["302-1", "302-2"]),
        ("  ", []),
        (None, []),
    ])
    def test_parse_order_ids(self, text, expected):
        assert parse_order_ids(text) == expected

    @pytest.mark.parametrize("text", ['["302-1",', '[{"a": 1}'])
    def test_parse_order_ids_rejects_bad_json(self, text):
        with pytest.raises(ValueError, match="not valid JSON"):
            parse_order_ids(text)
