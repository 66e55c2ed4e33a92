import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from database.repository import DeductionRepository
from models.deduction import DeductionFilter, PaymentMode
from models.errors import ValidationError
from processors.reconciliation import ReconciliationAggregator
from utils.validators import parse_bool, parse_datetime

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


@dataclass
class Pagination:
    total: int
    total_pages: int
    current_page: int
    limit: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> 'Pagination':
        total_pages = math.ceil(total / limit) if total else 0
        return cls(
            total=total,
            total_pages=total_pages,
            current_page=page,
            limit=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )

    def to_dict(self):
        return {
            'total': self.total,
            'totalPages': self.total_pages,
            'currentPage': self.current_page,
            'limit': self.limit,
            'hasNextPage': self.has_next_page,
            'hasPrevPage': self.has_prev_page,
        }


def _positive_int(value: Any, name: str, default: int) -> int:
    if value is None or value == '':
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} must be a positive integer")
    if number < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return number


def _date_arg(value: Any, name: str):
    if value is None or value == '':
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError(f"Invalid {name}: {value!r}")
    return parsed


def parse_filters(args: Mapping[str, Any], grampanchayat_id: Optional[int] = None) -> Tuple[DeductionFilter, int, int]:
    """Turn query-string arguments into (filters, page, limit)"""
    start_date = _date_arg(args.get('startDate'), 'startDate')
    end_date = _date_arg(args.get('endDate'), 'endDate')
    if end_date is not None:
        # Inclusive through the end of that calendar day
        end_date = end_date.replace(hour=23, minute=59, second=59, microsecond=999000)

    # Invalid payment modes / review flags are ignored rather than rejected
    payment_mode = args.get('paymentMode')
    mode = PaymentMode(payment_mode) if payment_mode in PaymentMode.values() else None

    seen_by_admin = args.get('seenByAdmin')
    seen = parse_bool(seen_by_admin) if seen_by_admin is not None else None

    sort_order = 'asc' if args.get('sortOrder') == 'asc' else 'desc'

    filters = DeductionFilter(
        grampanchayat_id=grampanchayat_id,
        start_date=start_date,
        end_date=end_date,
        gst_no=args.get('gstNo') or None,
        payment_mode=mode,
        seen_by_admin=seen,
        sort_by=args.get('sortBy') or 'date',
        sort_order=sort_order,
    )
    page = _positive_int(args.get('page'), 'page', DEFAULT_PAGE)
    limit = _positive_int(args.get('limit'), 'limit', DEFAULT_LIMIT)
    return filters, page, limit


class DeductionQueryService:
    """Filtered, paginated listing with the reconciliation summary"""

    def __init__(self, repository: DeductionRepository):
        self.repo = repository
        self.aggregator = ReconciliationAggregator(repository)

    def list_deductions(self, filters: DeductionFilter, page: int = DEFAULT_PAGE,
                        limit: int = DEFAULT_LIMIT) -> dict:
        total = self.repo.count_records(filters)
        records = self.repo.get_records(filters, offset=(page - 1) * limit, limit=limit)
        pagination = Pagination.build(total, page, limit)
        summary = self.aggregator.summarize(filters)

        return {
            'deductions': [r.to_dict() for r in records],
            'pagination': pagination.to_dict(),
            'summary': summary.to_dict(),
        }
