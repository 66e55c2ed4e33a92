"""
Deserialization of deduction entry lists and the record total.

Entry lists arrive either as JSON arrays (application/json bodies) or as
JSON text inside multipart form fields. Both are turned into the same
List[DeductionEntry].

Lenient mode (default): a missing or unparseable amount becomes 0 and
malformed JSON text yields an empty list. Strict mode rejects both with
ValidationError. Negative amounts are always rejected.
"""
import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from models.deduction import DeductionCategory, DeductionEntry
from models.errors import ValidationError
from utils.validators import parse_decimal

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def _to_amount(value: Any) -> Optional[Decimal]:
    amount = parse_decimal(value)
    if amount is None:
        return None
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_entry(item: Any, strict: bool = False) -> Optional[DeductionEntry]:
    if not isinstance(item, dict):
        if strict:
            raise ValidationError("Each deduction entry must be an object")
        return None

    amount = _to_amount(item.get('amount'))
    if amount is None:
        if strict:
            raise ValidationError(f"Invalid deduction amount: {item.get('amount')!r}")
        amount = Decimal('0.00')
    if amount < 0:
        raise ValidationError("Deduction amount cannot be negative")

    pan = _clean_text(item.get('pan'))
    return DeductionEntry(
        amount=amount,
        party_name=_clean_text(item.get('partyName')),
        pan=pan.upper() if pan else None,
    )


def parse_entries(raw: Any, strict: bool = False) -> List[DeductionEntry]:
    """Parse one category's entry list from structured data or JSON text"""
    if raw is None or raw == '':
        return []

    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            if strict:
                raise ValidationError("Deduction entries must be a JSON array", detail=str(e)) from e
            logger.warning("Ignoring unparseable entry list: %s", e)
            return []

    if not isinstance(raw, (list, tuple)):
        if strict:
            raise ValidationError("Deduction entries must be a list")
        return []

    entries = []
    for item in raw:
        entry = parse_entry(item, strict=strict)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_all_entries(payload: Dict[str, Any], strict: bool = False) -> Dict[DeductionCategory, List[DeductionEntry]]:
    return {
        category: parse_entries(payload.get(category.field_name), strict=strict)
        for category in DeductionCategory
    }


def calculate_total_amount(entries: Dict[DeductionCategory, List[DeductionEntry]]) -> Decimal:
    """Sum of every entry amount across all categories"""
    total = Decimal('0.00')
    for category_entries in entries.values():
        for entry in category_entries:
            total += entry.amount
    return total


def _is_supplied(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value.strip() != ''
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return True


def resolve_total_amount(raw_total: Any, entries: Dict[DeductionCategory, List[DeductionEntry]]) -> Decimal:
    """
    Record total, in order of precedence:
      1. list-shaped total  -> its first element
      2. scalar total       -> as given
      3. otherwise          -> sum of all entry amounts
    The client value is trusted as-is and may differ from the entry sum.
    """
    if isinstance(raw_total, (list, tuple)) and raw_total:
        candidate = raw_total[0]
    elif not isinstance(raw_total, (list, tuple)) and _is_supplied(raw_total):
        candidate = raw_total
    else:
        return calculate_total_amount(entries)

    total = _to_amount(candidate)
    if total is None:
        raise ValidationError(f"Invalid total amount: {candidate!r}")
    if total < 0:
        raise ValidationError("Total amount cannot be negative")
    return total
