"""
German-locale parsing for scraped payment history text.

The retailer renders dates as "17. September 2025" and amounts as
"-€4,99", "+€24,48" or "€1.234,56". This module converts them to
`datetime.date` and to signed integer ledger milliunits (1 EUR = 1000).

Nothing here raises on malformed input: unparseable text yields None so
callers can report it instead of aborting a whole batch.
"""
import re
import unicodedata
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

MILLIUNITS_PER_UNIT = 1000

GERMAN_MONTHS = {
    "januar": 1,
    "februar": 2,
    "maerz": 3,
    "april": 4,
    "mai": 5,
    "juni": 6,
    "juli": 7,
    "august": 8,
    "september": 9,
    "oktober": 10,
    "november": 11,
    "dezember": 12,
}

_DATE_PATTERN = re.compile(r"^(\d{1,2})\.\s*([a-zäöüß]+)\s+(\d{4})$", re.IGNORECASE)
_NON_NUMERIC = re.compile(r"[^\d,.]")


def _month_key(name: str) -> str:
    """Fold a month name to its lookup key ("März" -> "maerz")"""
    decomposed = unicodedata.normalize("NFD", name.strip().lower())
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return folded.replace("marz", "maerz")


def parse_locale_date(text: Optional[str]) -> Optional[date]:
    """
    Parse a German "D. Monat YYYY" date.

    Args:
        text: Scraped date text, e.g. "01. Januar 2025"

    Returns:
        The date, or None if the text does not match the pattern, names an
        unknown month or describes an impossible day.
    """
    if not text:
        return None

    match = _DATE_PATTERN.match(text.strip())
    if not match:
        return None

    month = GERMAN_MONTHS.get(_month_key(match.group(2)))
    if month is None:
        return None

    try:
        return date(int(match.group(3)), month, int(match.group(1)))
    except ValueError:
        return None


def _normalize_separators(cleaned: str) -> str:
    """
    Turn a digits-and-separators string into a Python decimal literal.

    When both separators appear, the last one is the decimal point and the
    other one groups thousands. A single kind of separator is a decimal
    point at its last occurrence and grouping everywhere else.
    """
    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")

    if last_comma == -1 and last_dot == -1:
        return cleaned

    if last_comma != -1 and last_dot != -1:
        decimal_sep = "," if last_comma > last_dot else "."
    else:
        decimal_sep = "," if last_comma != -1 else "."

    position = cleaned.rfind(decimal_sep)
    integer_part = cleaned[:position].replace(",", "").replace(".", "")
    fraction_part = cleaned[position + 1:]
    return f"{integer_part or '0'}.{fraction_part or '0'}"


def parse_amount(text: Optional[str], is_refund_hint: bool = False) -> Optional[int]:
    """
    Parse a locale-formatted amount into signed milliunits.

    The sign is positive when the text contains an explicit "+" or the
    record is known to be a refund; otherwise the amount is a charge and
    negative. Rounding to the nearest milliunit uses ROUND_HALF_UP on the
    exact decimal value, so ties round away from zero.

    Args:
        text: Amount text such as "-€4,99", "+€24,48" or "€1.234,56"
        is_refund_hint: True if the record is a refund

    Returns:
        Signed milliunits, or None if the text contains no digits.
    """
    if not text:
        return None

    positive = "+" in text or is_refund_hint
    cleaned = _NON_NUMERIC.sub("", text)
    if not any(ch.isdigit() for ch in cleaned):
        return None

    try:
        value = Decimal(_normalize_separators(cleaned))
    except InvalidOperation:
        return None

    signed = value if positive else -value
    milliunits = (signed * MILLIUNITS_PER_UNIT).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(milliunits)


def format_decimal_de(value: Decimal) -> str:
    """Format a decimal with German separators: 1234.5 -> "1.234,50" """
    quantized = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    english = f"{quantized:,.2f}"
    return english.replace(",", "_").replace(".", ",").replace("_", ".")


def render_amount(milliunits: int) -> str:
    """
    Render milliunits the way the retailer prints them.

    Charges get a "-" prefix, credits a "+" prefix, so that
    `parse_amount(render_amount(x)) == x` for any whole-cent amount.
    """
    sign = "-" if milliunits < 0 else "+"
    value = Decimal(abs(milliunits)) / MILLIUNITS_PER_UNIT
    return f"{sign}€{format_decimal_de(value)}"
