import openpyxl
from io import BytesIO
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
from typing import Dict, List
from database.models import DeductionRecordDB
from database.repository import DeductionRepository
from models.deduction import DeductionCategory, DeductionFilter
from utils.formatters import format_amount, format_date_short

SHEET_TITLE = "All Deductions"

BASE_COLUMNS = [
    "Date",
    "Gramadhikari Name",
    "Payment Mode",
    "Total Amount",
    "Check Number",
    "PFMS Date",
]
CATEGORY_COLUMNS = [
    col
    for category in DeductionCategory
    for col in (f"{category.label} Entries Count", f"{category.label} Total Amount")
]
TRAILING_COLUMNS = [
    "Admin Reviewed",
    "Document URL",
    "Admin Document URL",
]
EXPORT_COLUMNS = BASE_COLUMNS + CATEGORY_COLUMNS + TRAILING_COLUMNS


def flatten_record(record: DeductionRecordDB) -> Dict[str, object]:
    """One export row, keyed by column name"""
    row = {
        "Date": format_date_short(record.date),
        "Gramadhikari Name": record.gramadhikari_name,
        "Payment Mode": record.payment_mode,
        "Total Amount": format_amount(record.total_amount),
        "Check Number": record.check_no or "",
        "PFMS Date": format_date_short(record.pfms_date),
    }
    for category in DeductionCategory:
        row[f"{category.label} Entries Count"] = len(record.entries_for(category))
        row[f"{category.label} Total Amount"] = format_amount(record.category_total(category))
    row["Admin Reviewed"] = "Yes" if record.seen_by_admin else "No"
    row["Document URL"] = record.document_url or ""
    row["Admin Document URL"] = record.admin_document_url or ""
    return row


class DeductionExportGenerator:
    """Generate the all-deductions spreadsheet for one grampanchayat"""

    def __init__(self, repository: DeductionRepository):
        self.repo = repository

    def build_rows(self, grampanchayat_id: int) -> List[Dict[str, object]]:
        filters = DeductionFilter(grampanchayat_id=grampanchayat_id, sort_by="date", sort_order="desc")
        return [flatten_record(r) for r in self.repo.get_records(filters)]

    def generate(self, grampanchayat_id: int) -> bytes:
        """Generate the workbook and return its bytes"""
        rows = self.build_rows(grampanchayat_id)

        # Create workbook
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE

        # Define styles
        bold_font = Font(bold=True)
        header_fill = PatternFill(start_color="B4C7E7", end_color="B4C7E7", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        # Header row
        for col_idx, header in enumerate(EXPORT_COLUMNS, start=1):
            cell = ws.cell(row=1, column=col_idx)
            cell.value = header
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
            ws.column_dimensions[get_column_letter(col_idx)].width = max(12, len(header) + 2)

        # Data rows
        for row_idx, row in enumerate(rows, start=2):
            for col_idx, header in enumerate(EXPORT_COLUMNS, start=1):
                ws.cell(row=row_idx, column=col_idx, value=row[header])

        ws.freeze_panes = 'A2'

        buffer = BytesIO()
        wb.save(buffer)
        return buffer.getvalue()
