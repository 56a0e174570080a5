import pytest

from amazon_ledger_sync.domain.models import SyncState
from amazon_ledger_sync.services.import_ids import (
    MAX_SUFFIX_ATTEMPTS,
    Base36SuffixGenerator,
    base_import_id,
    companion_import_id,
    derive_import_id,
    to_base36,
)


class FixedSuffixes:
    """Hands out the given suffixes in order and remembers the seeds"""

    def __init__(self, *suffixes: str):
        self.suffixes = list(suffixes)
        self.seeds = []

    def next(self, seed: int) -> str:
        self.seeds.append(seed)
        return self.suffixes[min(len(self.seeds), len(self.suffixes)) - 1]


def _unconfirmed(import_id: str) -> SyncState:
    return SyncState("2025-09-18T10:00:00+00:00", import_id)


@pytest.mark.unit
class TestBase36:

    @pytest.mark.parametrize("value,expected", [
        (0, "0"),
        (35, "z"),
        (36, "10"),
        (36 ** 4 - 1, "zzzz"),
    ])
    def test_to_base36(self, value, expected):
        assert to_base36(value) == expected

    def test_to_base36_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)

    def test_suffix_is_padded_and_bounded(self):
        generator = Base36SuffixGenerator()

        assert generator.next(0) == "000"
        assert generator.next(36) == "010"
        assert generator.next(36 ** 4) == "000"
        assert len(generator.next(1758189600123)) <= 4


@pytest.mark.unit
class TestDeriveImportId:

    def test_first_attempt_is_deterministic(self, make_record):
        # Arrange
        record = make_record()
        generator = FixedSuffixes("abc")

        # Act
        first = derive_import_id(record, seed=1, generator=generator)
        second = derive_import_id(record, seed=2, generator=generator)

        # Assert
        assert first == second == "AMZ:-4990:2025-09-17"
        assert generator.seeds == []

    def test_terminal_state_keeps_base_id(self, make_record):
        state = SyncState("2025-09-18T10:00:00+00:00", "AMZ:-4990:2025-09-17", ledger_transaction_id="ynab-1")

        assert derive_import_id(make_record(sync_state=state), 1, FixedSuffixes("abc")) == "AMZ:-4990:2025-09-17"

    def test_retry_appends_suffix(self, make_record):
        # Arrange
        record = make_record(sync_state=_unconfirmed("AMZ:-4990:2025-09-17"))

        # Act
        import_id = derive_import_id(record, seed=42, generator=FixedSuffixes("k3x"))

        # Assert
        assert import_id == "AMZ:-4990:2025-09-17:rk3x"

    def test_retry_never_repeats_previous_id(self, make_record):
        # Arrange: the generator first produces the suffix used last time
        record = make_record(sync_state=_unconfirmed("AMZ:-4990:2025-09-17:rk3x"))
        generator = FixedSuffixes("k3x", "k3y")

        # Act
        import_id = derive_import_id(record, seed=100, generator=generator)

        # Assert
        assert import_id == "AMZ:-4990:2025-09-17:rk3y"
        assert generator.seeds == [100, 101]

    def test_retry_gives_up_after_bounded_attempts(self, make_record):
        record = make_record(sync_state=_unconfirmed("AMZ:-4990:2025-09-17:rk3x"))
        generator = FixedSuffixes("k3x")

        with pytest.raises(RuntimeError, match="keeps repeating"):
            derive_import_id(record, seed=0, generator=generator)

        assert len(generator.seeds) == MAX_SUFFIX_ATTEMPTS

    def test_taken_id_gets_occurrence_number(self, make_record):
        taken = {"AMZ:-4990:2025-09-17", "AMZ:-4990:2025-09-17:2"}

        assert derive_import_id(make_record(), 1, FixedSuffixes("abc"), taken=taken) == "AMZ:-4990:2025-09-17:3"

    def test_retry_skips_taken_suffix(self, make_record):
        # Arrange: the first suffix is already used by another record
        record = make_record(sync_state=_unconfirmed("AMZ:-4990:2025-09-17"))
        generator = FixedSuffixes("k3x", "k3y")

        # Act
        import_id = derive_import_id(record, 0, generator, taken={"AMZ:-4990:2025-09-17:rk3x"})

        # Assert
        assert import_id == "AMZ:-4990:2025-09-17:rk3y"

    def test_ids_are_cut_to_ledger_limit(self, make_record):
        # Arrange: a long prefix and amount make the retry id 38 characters
        record = make_record(amount_text="-€1.234.567,89", sync_state=_unconfirmed("AMZ:old"))

        # Act
        import_id = derive_import_id(record, seed=0, generator=FixedSuffixes("zzzz"), prefix="AMAZON-DE")

        # Assert
        assert import_id == "AMAZON-DE:-1234567890:2025-09-17:rzz"
        assert len(import_id) == 36

    def test_custom_prefix(self):
        assert base_import_id(24480, "2025-10-03", prefix="SHOP") == "SHOP:24480:2025-10-03"


@pytest.mark.unit
class TestCompanionImportId:

    def test_companion_id(self):
        assert companion_import_id("AMZ:-20000:2025-03-12") == "AMZ:-20000:2025-03-12:punkte"

    def test_companion_id_is_cut(self):
        primary = "AMZ:-1234567890:2025-09-17:rzzzz"

        assert companion_import_id(primary) == (primary + ":punkte")[:36]
