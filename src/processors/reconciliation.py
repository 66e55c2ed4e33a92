"""
Reconciliation totals over a set of deduction records.

Category subtotals are the sums of the embedded entry amounts. The grand
total is the sum of each record's stored totalAmount, which may have been
supplied by the client, so it is not necessarily equal to the sum of the
subtotals.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List

from database.models import DeductionRecordDB
from database.repository import DeductionRepository
from models.deduction import DeductionCategory, DeductionFilter
from models.errors import NotFoundError
from utils.formatters import format_amount

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


@dataclass
class ReconciliationSummary:
    category_totals: Dict[DeductionCategory, Decimal] = field(
        default_factory=lambda: {c: ZERO for c in DeductionCategory}
    )
    grand_total: Decimal = ZERO
    record_count: int = 0

    def total_for(self, category: DeductionCategory) -> Decimal:
        return self.category_totals[category]

    def to_dict(self):
        data = {c.summary_key: format_amount(self.category_totals[c]) for c in DeductionCategory}
        data['grandTotal'] = format_amount(self.grand_total)
        return data


def summarize_records(records: Iterable[DeductionRecordDB]) -> ReconciliationSummary:
    summary = ReconciliationSummary()
    for record in records:
        for category in DeductionCategory:
            summary.category_totals[category] += record.category_total(category)
        summary.grand_total += record.total_amount if record.total_amount is not None else ZERO
        summary.record_count += 1
    return summary


@dataclass
class CategoryDashboard:
    total_amount: Decimal = ZERO
    count: int = 0

    def to_dict(self):
        return {'totalAmount': format_amount(self.total_amount), 'count': self.count}


class ReconciliationAggregator:
    """Totals over the same filtered set the listing pages through"""

    def __init__(self, repository: DeductionRepository):
        self.repo = repository

    def summarize(self, filters: DeductionFilter) -> ReconciliationSummary:
        records = self.repo.get_records(filters)
        summary = summarize_records(records)
        logger.debug("Summarized %d records", summary.record_count)
        return summary

    def grampanchayat_dashboard(self, grampanchayat_id: int) -> dict:
        """Reviewed records (with an admin document) and per-category totals"""
        if self.repo.get_grampanchayat(grampanchayat_id) is None:
            raise NotFoundError("Grampanchayat not found")

        records: List[DeductionRecordDB] = self.repo.get_reviewed_records(grampanchayat_id)
        categories = {c: CategoryDashboard() for c in DeductionCategory}
        for record in records:
            for category in DeductionCategory:
                if record.entries_for(category):
                    categories[category].total_amount += record.category_total(category)
                    categories[category].count += 1

        grand_total = sum((c.total_amount for c in categories.values()), ZERO)
        data = {c.value: categories[c].to_dict() for c in DeductionCategory}
        data['records'] = [r.to_dict() for r in records]
        data['summary'] = {'totalRecords': len(records), 'grandTotal': format_amount(grand_total)}
        return data
