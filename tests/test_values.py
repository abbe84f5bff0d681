from __future__ import annotations

from datetime import date
from decimal import Decimal

from reimburse_audit.core.values import (
    date_key,
    format_money,
    format_staff_name,
    is_date_like,
    is_pending_reference,
    is_valid_reference,
    money,
    name_key,
    normalize_money,
    parse_date,
    reference_key,
)


def test_normalize_money_strips_symbols_and_fixes_two_decimals():
    assert normalize_money("$1,234.5") == "1234.50"
    assert normalize_money(" 42 ") == "42.00"
    assert normalize_money("-3.456") == "-3.46"
    assert normalize_money(Decimal("7")) == "7.00"


def test_normalize_money_falls_back_on_unusable_input():
    assert normalize_money("") == "0.00"
    assert normalize_money(None) == "0.00"
    assert normalize_money("abc") == "0.00"
    assert normalize_money("abc", "1.00") == "1.00"
    assert normalize_money("-") == "0.00"
    assert normalize_money("1.2.3", "9.99") == "9.99"


def test_normalize_money_is_idempotent():
    for raw in ["$1,234.5", "12", "0", "abc", "-7.125", "AUD 99.999", ""]:
        once = normalize_money(raw)
        assert normalize_money(once) == once


def test_money_and_format_money():
    assert money("$10.5") == Decimal("10.50")
    assert money("junk", "3") == Decimal("3.00")
    assert format_money(Decimal("840")) == "$840.00"


def test_parse_date_accepts_iso_textual_and_day_first_forms():
    assert parse_date("2025-02-15") == date(2025, 2, 15)
    assert parse_date("2025-02-15 10:30") == date(2025, 2, 15)
    assert parse_date("15 February 2025") == date(2025, 2, 15)
    assert parse_date("15/02/2025") == date(2025, 2, 15)
    assert parse_date("15-02-25") == date(2025, 2, 15)
    assert parse_date("Coles 12/01/2025 10:00 AM") == date(2025, 1, 12)


def test_parse_date_returns_none_for_invalid_values():
    assert parse_date("") is None
    assert parse_date(None) is None
    assert parse_date("yesterday") is None
    assert parse_date("31/02/2025") is None


def test_date_key_uses_iso_or_lowercased_text():
    assert date_key("15/02/2025") == "2025-02-15"
    assert date_key("  Last Tuesday ") == "last tuesday"


def test_is_date_like():
    assert is_date_like("12/01/2025")
    assert is_date_like("2025-01-12")
    assert is_date_like("10:45 am")
    assert not is_date_like("Milk 2L")


def test_name_key_matches_name_orderings():
    assert name_key("Smith, John") == "john smith"
    assert name_key("John Smith") == "john smith"
    assert name_key("JOHN  SMITH") == "john smith"
    assert name_key("SA'U, TYRONE") == name_key("Tyrone Sa U")


def test_format_staff_name_reorders_last_first():
    assert format_staff_name("**RASITTI, DAN**") == "DAN RASITTI"
    assert format_staff_name("  Mia   Valvano ") == "Mia Valvano"
    assert format_staff_name("Solo,") == "Solo,"


def test_reference_validity():
    assert is_valid_reference("NAB123456")
    assert not is_valid_reference("Enter NAB Code")
    assert not is_valid_reference("[enter nab reference]")
    assert not is_valid_reference("N/A")
    assert not is_valid_reference("   ")
    assert not is_valid_reference(None)

    assert is_pending_reference("Nab code is pending")
    assert is_pending_reference("PENDING")
    assert not is_pending_reference("n/a")
    assert not is_pending_reference("NAB123456")

    assert reference_key(" NAB123456 ") == "nab123456"
    assert reference_key("pending") == ""


def test_normalize_money_falls_back_on_values_too_long_to_quantize():
    assert normalize_money("9" * 30) == "0.00"
    assert normalize_money("$" + "1" * 40 + ".5", "2.00") == "2.00"
    assert money("9" * 30) == Decimal("0.00")
