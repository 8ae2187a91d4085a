import re
from datetime import date, datetime
from typing import Optional, Tuple

from loguru import logger

GSTIN_RE = re.compile(r"^\d{2}[A-Z]{5}\d{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$")
DATE_QUERY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

TRANSPORT_MODES = ["By Road", "By Air", "By Sea", "By Rail", "Other"]
DEFAULT_TRANSPORT_MODE = "By Road"


def validate_gstin(gstin: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Check a GSTIN's format. Blank is allowed for unregistered dealers."""
    if not gstin:
        return True, None
    cleaned = gstin.strip().upper()
    if not GSTIN_RE.match(cleaned):
        return False, f"Invalid GSTIN format: {gstin}"
    return True, None


def parse_date_ddmmyyyy(text: str) -> Optional[date]:
    """Parse a dd/mm/yyyy search query into a date, or None."""
    m = DATE_QUERY_RE.match(text.strip())
    if not m:
        return None
    day, month, year = (int(g) for g in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_date_ddmmyyyy(value) -> str:
    if not value:
        return "-"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Unparseable date {!r}", value)
            return "-"
    return value.strftime("%d/%m/%Y")


def format_supply_datetime(value) -> str:
    """dd/mm/yyyy hh:mm AM/PM, or N/A."""
    if not value:
        return "N/A"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return "N/A"
    return value.strftime("%d/%m/%Y %I:%M %p")


def split_transport_mode(value: Optional[str]) -> Tuple[str, str]:
    """Map a stored transport mode to (selected mode, custom text)."""
    if not value:
        return DEFAULT_TRANSPORT_MODE, ""
    if value in TRANSPORT_MODES:
        return value, ""
    return "Other", value


def resolve_transport_mode(selected: str, other: str = "") -> str:
    return other.strip() if selected == "Other" else selected


def format_invoice_number(prefix: str, number: int, width: int = 3) -> str:
    return f"{prefix}{str(number).zfill(width)}"


def invoice_number_sequence(invoice_number: Optional[str]) -> Optional[int]:
    """Numeric part of an invoice number (all digits in it), or None."""
    if not invoice_number:
        return None
    digits = re.sub(r"\D", "", invoice_number)
    return int(digits) if digits else None
