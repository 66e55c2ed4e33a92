import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

GST_NUMBER_PATTERN = re.compile(r'^[0-9A-Z]{15}$')
FINANCIAL_YEAR_PATTERN = re.compile(r'^(\d{4})-(\d{4})$')


def validate_gst_number(gst_no: str) -> bool:
    """15-character statutory GST number (upper-case alphanumerics)"""
    return bool(gst_no) and bool(GST_NUMBER_PATTERN.match(gst_no))


def validate_financial_year(value: str) -> bool:
    """'YYYY-YYYY' spanning two consecutive years, e.g. 2023-2024"""
    match = FINANCIAL_YEAR_PATTERN.match(value or '')
    return bool(match) and int(match.group(2)) == int(match.group(1)) + 1


def parse_bool(value: Any) -> Optional[bool]:
    """Accept real booleans or 'true'/'false' strings; anything else is None"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == 'true':
            return True
        if lowered == 'false':
            return False
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO date/datetime; aware values are converted to naive UTC"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Decimal from a number or numeric string; None when unparseable"""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result
