"""South African tax year labels ("2025/2026" runs 1 March 2025 to end February 2026)."""

from __future__ import annotations

import calendar
from datetime import date

TAX_YEAR_START_MONTH = 3


def tax_year_label(day: date) -> str:
    """Label of the tax year containing ``day``."""
    start_year = day.year if day.month >= TAX_YEAR_START_MONTH else day.year - 1
    return f"{start_year}/{start_year + 1}"


def tax_year_bounds(label: str) -> tuple[date, date]:
    """First and last day of a tax year label.

    Raises:
        ValueError: If the label is not of the form "YYYY/YYYY+1"
    """
    try:
        first, second = (int(part) for part in label.split("/"))
    except ValueError as e:
        raise ValueError(f"Invalid tax year label {label!r}") from e
    if second != first + 1:
        raise ValueError(f"Invalid tax year label {label!r}")
    last_feb_day = calendar.monthrange(second, 2)[1]
    return date(first, TAX_YEAR_START_MONTH, 1), date(second, 2, last_feb_day)
