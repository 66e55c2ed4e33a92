import json
import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from api.object_store import ObjectStore
from config.settings import DEDUCTION_DOCUMENTS
from database.models import DeductionRecordDB, GrampanchayatDB
from database.repository import DeductionRepository
from models.deduction import DeductionSubmission, PaymentMode, StoredDocument
from models.errors import NotFoundError, ValidationError
from processors.entry_parser import parse_all_entries, resolve_total_amount
from utils.uploads import remove_temp_file
from utils.validators import parse_datetime

logger = logging.getLogger(__name__)


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def parse_grampanchayat_ids(raw: Any) -> List[int]:
    """Grampanchayat reference(s) as a single id, a list, or JSON text"""
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith('['):
            try:
                raw = json.loads(text)
            except ValueError as e:
                raise ValidationError("Invalid grampanchayats value", detail=str(e)) from e
        else:
            raw = [text]
    elif not isinstance(raw, (list, tuple)):
        raw = [raw]

    ids = []
    for value in raw:
        try:
            gp_id = int(str(value).strip())
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid grampanchayat id: {value!r}")
        if gp_id not in ids:
            ids.append(gp_id)
    if not ids:
        raise ValidationError("At least one grampanchayat is required")
    return ids


class DeductionIngestor:
    """Validate a staff submission, upload its document and persist the record"""

    def __init__(self, repository: DeductionRepository, object_store: ObjectStore, strict_amounts: bool = False):
        self.repo = repository
        self.store = object_store
        self.strict_amounts = strict_amounts

    def add_deduction(self, payload: Mapping[str, Any],
                      document_path: Optional[Union[str, Path]] = None) -> DeductionRecordDB:
        """
        Create a deduction record.

        The staged document (if any) is removed on every exit path, and is
        uploaded only after the submission has been fully validated.
        """
        try:
            submission = self.build_submission(payload)
            grampanchayats = self._resolve_grampanchayats(submission.grampanchayat_ids)

            document = None
            if document_path:
                document = self.store.upload(document_path, DEDUCTION_DOCUMENTS)

            try:
                record = self.repo.save_deduction_record(submission, grampanchayats, document)
            except Exception:
                self.repo.db.rollback()
                if document is not None:
                    self._discard_document(document)
                raise

            logger.info(
                "Added deduction record id=%s grampanchayats=%s total=%s",
                record.id, submission.grampanchayat_ids, record.total_amount
            )
            return record
        finally:
            remove_temp_file(document_path)

    def build_submission(self, payload: Mapping[str, Any]) -> DeductionSubmission:
        """Validate the raw payload into a DeductionSubmission (no side effects)"""
        date = payload.get('date')
        gramadhikari_name = payload.get('gramadhikariName')
        payment_mode = payload.get('paymentMode')
        grampanchayats = payload.get('grampanchayats')

        if any(_blank(v) for v in (date, gramadhikari_name, payment_mode, grampanchayats)):
            raise ValidationError("Date, Gram Adhikari Name, payment mode, and Grampanchayats are required")

        if payment_mode not in PaymentMode.values():
            raise ValidationError("Payment mode must be either 'online' or 'cheque'")
        mode = PaymentMode(payment_mode)

        check_no = payload.get('checkNo')
        if mode == PaymentMode.CHEQUE and _blank(check_no):
            raise ValidationError("Check number is required for cheque payments")

        entries = parse_all_entries(payload, strict=self.strict_amounts)
        if not any(entries.values()):
            raise ValidationError("At least one deduction entry is required")

        parsed_date = parse_datetime(date)
        if parsed_date is None:
            raise ValidationError(f"Invalid date: {date!r}")

        pfms_date = None
        if not _blank(payload.get('pfmsDate')):
            pfms_date = parse_datetime(payload.get('pfmsDate'))
            if pfms_date is None:
                raise ValidationError(f"Invalid PFMS date: {payload.get('pfmsDate')!r}")

        return DeductionSubmission(
            date=parsed_date,
            gramadhikari_name=str(gramadhikari_name).strip(),
            payment_mode=mode,
            grampanchayat_ids=parse_grampanchayat_ids(grampanchayats),
            entries=entries,
            total_amount=resolve_total_amount(payload.get('totalAmount'), entries),
            check_no=str(check_no).strip() if mode == PaymentMode.CHEQUE else None,
            pfms_date=pfms_date,
        )

    def _resolve_grampanchayats(self, ids: List[int]) -> List[GrampanchayatDB]:
        found = self.repo.get_grampanchayats(ids)
        missing = sorted(set(ids) - {gp.id for gp in found})
        if missing:
            raise NotFoundError(f"Grampanchayat not found: {', '.join(str(i) for i in missing)}")
        return found

    def _discard_document(self, document: StoredDocument) -> None:
        try:
            self.store.delete(document.public_id, document.resource_type)
        except Exception as e:
            logger.error("Could not remove orphaned document %s: %s", document.public_id, e)
