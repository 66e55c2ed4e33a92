from datetime import datetime
from decimal import Decimal
from typing import Optional


def format_date_short(d: Optional[datetime]) -> str:
    """Calendar date as M/D/YYYY, empty string when missing"""
    if d is None:
        return ""
    return f"{d.month}/{d.day}/{d.year}"


def format_amount(amount: Optional[Decimal]):
    """Spreadsheet cell value for an amount (int when whole)"""
    if amount is None:
        return ""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)
