"""
Lookups deriving purchase-order metadata from sheet values.

All functions here are pure: no store access, no configuration beyond
what is passed in.
"""
import re
from datetime import datetime, timedelta
from typing import Optional

DEFAULT_FALLBACK_SUPPLIER = "General Supplier"
DEFAULT_PRIORITY = "medium"
DEFAULT_DELIVERY_LEAD_DAYS = 30

SUPPLIER_BY_DEPT = {
    "RETAIL":     "Retail Parts Supplier",
    "INDUSTRIAL": "Industrial Equipment Supplier",
    "TELECOM":    "Telecom Solutions Provider",
    "EV":         "Electric Vehicle Parts Supplier",
    "RET/TEL":    "Retail & Telecom Supplier",
}

PRIORITY_BY_DEPT = {
    "RETAIL":     "medium",
    "INDUSTRIAL": "high",
    "TELECOM":    "high",
    "EV":         "medium",
    "RET/TEL":    "medium",
}

_PERCENT_RE = re.compile(r"(\d+\.?\d*)%")


def supplier_from_dept(dept: Optional[str], fallback: str = DEFAULT_FALLBACK_SUPPLIER) -> str:
    """Supplier display name for a department code; unknown codes get *fallback*."""
    return SUPPLIER_BY_DEPT.get(dept or "", fallback)


def priority_from_dept(dept: Optional[str]) -> str:
    """Priority level for a department code; unknown codes are 'medium'."""
    return PRIORITY_BY_DEPT.get(dept or "", DEFAULT_PRIORITY)


def extract_gst_rate(tax: Optional[str]) -> float:
    """
    Pull the first percentage out of a free-text tax cell.

    "18% GST" -> 18.0, "IGST 12.5% extra" -> 12.5, "exempt" / "" -> 0.0
    """
    if not tax:
        return 0.0
    match = _PERCENT_RE.search(str(tax))
    return float(match.group(1)) if match else 0.0


def expected_delivery_date(
    now: datetime,
    month: Optional[str] = None,
    year: Optional[str] = None,
    lead_days: int = DEFAULT_DELIVERY_LEAD_DAYS,
) -> datetime:
    """
    Expected delivery for an imported order: always *now* + *lead_days*.

    month / year are accepted so call sites pass what the sheet has, but are
    ignored; a month-end date derived from them is frequently in the past and
    would be rejected downstream.
    """
    return now + timedelta(days=lead_days)


def order_notes(dept: Optional[str], year: Optional[str], month: Optional[str],
                prefix: str = "") -> str:
    """Free-text note recording the department / period an order came from."""
    return f"{prefix}Dept: {dept}, Year: {year}, Month: {month}"
