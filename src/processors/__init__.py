from .deduction_ingestor import DeductionIngestor
from .deduction_query import DeductionQueryService, Pagination, parse_filters
from .reconciliation import ReconciliationAggregator, ReconciliationSummary, summarize_records
from .admin_review import AdminReviewWorkflow
from .deduction_export_generator import DeductionExportGenerator, EXPORT_COLUMNS
from .grampanchayat_registry import GrampanchayatRegistry
from .agreement_status import AgreementStatusService


__all__ = [
    'DeductionIngestor',
    'DeductionQueryService',
    'Pagination',
    'parse_filters',
    'ReconciliationAggregator',
    'ReconciliationSummary',
    'summarize_records',
    'AdminReviewWorkflow',
    'DeductionExportGenerator',
    'EXPORT_COLUMNS',
    'GrampanchayatRegistry',
    'AgreementStatusService'
]
