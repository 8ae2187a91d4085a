from datetime import date, datetime

import pytest

from utils import (
    format_date_ddmmyyyy, format_invoice_number, format_supply_datetime, invoice_number_sequence,
    parse_date_ddmmyyyy, resolve_transport_mode, split_transport_mode, validate_gstin,
)


@pytest.mark.parametrize("gstin", ["09ADJFS4409B1Z6", "27aapfu0939f1zv", " 09ABCDE1234F1Z5 ", "", None])
def test_valid_gstin(gstin):
    assert validate_gstin(gstin) == (True, None)


@pytest.mark.parametrize("gstin", ["09ADJFS4409B1X6", "9ADJFS4409B1Z6", "09ADJFS4409B0Z6", "GSTIN"])
def test_invalid_gstin(gstin):
    valid, message = validate_gstin(gstin)
    assert not valid
    assert message == f"Invalid GSTIN format: {gstin}"


def test_parse_date_query():
    assert parse_date_ddmmyyyy("1/4/2025") == date(2025, 4, 1)
    assert parse_date_ddmmyyyy(" 31/12/2024 ") == date(2024, 12, 31)
    assert parse_date_ddmmyyyy("31/02/2024") is None
    assert parse_date_ddmmyyyy("2024-12-31") is None
    assert parse_date_ddmmyyyy("SRPT001") is None


def test_format_dates():
    assert format_date_ddmmyyyy(date(2025, 4, 1)) == "01/04/2025"
    assert format_date_ddmmyyyy("2025-04-01") == "01/04/2025"
    assert format_date_ddmmyyyy(None) == "-"
    assert format_date_ddmmyyyy("not a date") == "-"
    assert format_supply_datetime(datetime(2025, 4, 1, 15, 5)) == "01/04/2025 03:05 PM"
    assert format_supply_datetime(datetime(2025, 4, 1, 0, 30)) == "01/04/2025 12:30 AM"
    assert format_supply_datetime(None) == "N/A"


def test_transport_mode():
    assert split_transport_mode("By Air") == ("By Air", "")
    assert split_transport_mode("Courier") == ("Other", "Courier")
    assert split_transport_mode(None) == ("By Road", "")
    assert resolve_transport_mode("Other", " Courier ") == "Courier"
    assert resolve_transport_mode("By Rail", "ignored") == "By Rail"


def test_invoice_numbers():
    assert format_invoice_number("SRPT", 7) == "SRPT007"
    assert format_invoice_number("SRPT", 1234) == "SRPT1234"
    assert format_invoice_number("INV", 12, 4) == "INV0012"
    assert invoice_number_sequence("SRPT042") == 42
    assert invoice_number_sequence("SRPT") is None
    assert invoice_number_sequence(None) is None
