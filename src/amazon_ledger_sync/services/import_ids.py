"""
Import identifiers for the ledger.

The ledger de-duplicates on `import_id`. A first attempt always uses the
deterministic id `AMZ:<milliunits>:<iso date>`; a retry after an
unconfirmed attempt appends `:r<suffix>` so the ledger treats it as a new
submission.

Two purchases with the same amount on the same day share that id. The
second one in store order becomes `AMZ:<milliunits>:<iso date>:2`, the
third `:3` and so on, the occurrence convention of YNAB's own import ids.
"""
import string
from typing import AbstractSet, Optional, Protocol

from amazon_ledger_sync.domain.models import TransactionRecord

_BASE36_DIGITS = string.digits + string.ascii_lowercase
SUFFIX_MODULUS = 36 ** 4
MAX_SUFFIX_ATTEMPTS = 8
MAX_OCCURRENCES = 99
COMPANION_SUFFIX = ":punkte"


class SuffixGenerator(Protocol):
    """Produces the retry suffix for an import id"""

    def next(self, seed: int) -> str:
        ...


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must not be negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


class Base36SuffixGenerator:
    """
    Default suffix: the seed (epoch milliseconds plus record index) reduced
    modulo 36^4 and written in base 36, zero padded to three characters.
    """

    def next(self, seed: int) -> str:
        return to_base36(seed % SUFFIX_MODULUS).rjust(3, "0")


def base_import_id(amount_minor_units: int, iso_date: str, prefix: str = "AMZ") -> str:
    return f"{prefix}:{amount_minor_units}:{iso_date}"


def derive_import_id(
    record: TransactionRecord,
    seed: int,
    generator: SuffixGenerator,
    prefix: str = "AMZ",
    max_length: int = 36,
    taken: AbstractSet[str] = frozenset(),
) -> str:
    """
    Import id for submitting `record`.

    Args:
        record: An eligible record (parsed date and amount)
        seed: Seed for the retry suffix, current epoch ms plus record index
        generator: Retry suffix source
        prefix: Import id prefix
        max_length: Ledger limit; longer ids are cut from the right
        taken: Ids already held by other records or planned in this batch

    Returns:
        The deterministic id, with an occurrence number when that id is
        taken, or a suffixed one when the record carries an unconfirmed
        earlier attempt. A retry id never equals the id of that earlier
        attempt.
    """
    base = base_import_id(record.amount_minor_units, record.iso_date, prefix)
    state = record.sync_state
    if state is None or not state.is_ambiguous:
        for occurrence in range(1, MAX_OCCURRENCES + 1):
            candidate = (base if occurrence == 1 else f"{base}:{occurrence}")[:max_length]
            if candidate not in taken:
                return candidate
        raise RuntimeError(f"More than {MAX_OCCURRENCES} transactions share the import id {base}")

    previous: Optional[str] = state.import_id
    for attempt in range(MAX_SUFFIX_ATTEMPTS):
        candidate = f"{base}:r{generator.next(seed + attempt)}"[:max_length]
        if candidate != previous and candidate not in taken:
            return candidate
    raise RuntimeError(f"Suffix generator keeps repeating the previous import id {previous}")


def companion_import_id(primary_import_id: str, max_length: int = 36) -> str:
    """Import id recorded on a loyalty companion folded into its primary"""
    return f"{primary_import_id}{COMPANION_SUFFIX}"[:max_length]
