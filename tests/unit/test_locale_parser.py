import pytest
from datetime import date
from decimal import Decimal

from amazon_ledger_sync.parsers.locale import (
    format_decimal_de,
    parse_amount,
    parse_locale_date,
    render_amount,
)


@pytest.mark.unit
class TestParseLocaleDate:

    @pytest.mark.parametrize("text,expected", [
        ("17. September 2025", date(2025, 9, 17)),
        ("01. Januar 2025", date(2025, 1, 1)),
        ("3. Oktober 2025", date(2025, 10, 3)),
        ("24.Dezember 2024", date(2024, 12, 24)),
        ("  5. mai 2025 ", date(2025, 5, 5)),
    ])
    def test_parse_valid_dates(self, text, expected):
        assert parse_locale_date(text) == expected

    @pytest.mark.parametrize("text", ["12. März 2025", "12. maerz 2025", "12. MÄRZ 2025", "12. Marz 2025"])
    def test_accented_month_names_share_one_key(self, text):
        """Test that every spelling of March resolves to the same month"""
        assert parse_locale_date(text) == date(2025, 3, 12)

    @pytest.mark.parametrize("text", [
        "",
        None,
        "2025-09-17",
        "17 September 2025",
        "17. Septober 2025",
        "17. September",
        "Bestellnummer 304-1234567-1234567",
    ])
    def test_non_matching_text_returns_none(self, text):
        assert parse_locale_date(text) is None

    def test_impossible_day_returns_none(self):
        """Test that a matching pattern with an invalid calendar day is a parse failure"""
        assert parse_locale_date("31. Februar 2025") is None


@pytest.mark.unit
class TestParseAmount:

    @pytest.mark.parametrize("text,is_refund,expected", [
        ("-€4,99", False, -4990),
        ("€4,99", False, -4990),
        ("+€24,48", False, 24480),
        ("€24,48", True, 24480),
        ("€1.234,56", False, -1234560),
        ("-€ 39,98", False, -39980),
        ("1,234.56", False, -1234560),
        ("€0,01", True, 10),
    ])
    def test_parse_amounts(self, text, is_refund, expected):
        assert parse_amount(text, is_refund) == expected

    def test_plus_sign_wins_without_refund_hint(self):
        """Test that an explicit + makes the amount a credit"""
        assert parse_amount("+€5,00", is_refund_hint=False) == 5000

    @pytest.mark.parametrize("text", [None, "", "€", "kostenlos", "-€,"])
    def test_text_without_digits_returns_none(self, text):
        assert parse_amount(text) is None

    def test_rounds_half_away_from_zero(self):
        """Test ROUND_HALF_UP on the exact decimal value"""
        # Arrange: both sit exactly on a milliunit tie
        credit = "+€0,0025"
        charge = "-€0,0005"

        # Act / Assert: ties-to-even would give 2 and 0
        assert parse_amount(credit) == 3
        assert parse_amount(charge) == -1

    def test_does_not_truncate(self):
        assert parse_amount("+€0,0019") == 2


@pytest.mark.unit
class TestRenderAmount:

    def test_render_charge_and_credit(self):
        assert render_amount(-4990) == "-€4,99"
        assert render_amount(24480) == "+€24,48"
        assert render_amount(-1234560) == "-€1.234,56"

    @pytest.mark.parametrize("text", ["-€4,99", "+€24,48", "€1.234,56"])
    def test_round_trip(self, text):
        """Test that rendering and parsing again keeps the amount"""
        # Arrange
        amount = parse_amount(text)

        # Act
        rendered = render_amount(amount)

        # Assert
        assert parse_amount(rendered) == amount

    def test_format_decimal_de(self):
        assert format_decimal_de(Decimal("1234.5")) == "1.234,50"
        assert format_decimal_de(Decimal("12.345")) == "12,35"
