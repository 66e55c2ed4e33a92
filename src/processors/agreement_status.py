"""
Yearly agreement status per grampanchayat.

One agreement per grampanchayat and financial year records whether the OC
copy and the payment have been received, optionally with the scanned OC
copy held in the object store under AGREEMENT_DOCUMENTS.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from api.object_store import ObjectStore
from config.settings import AGREEMENT_DOCUMENTS
from database.models import AgreementStatusDB
from database.repository import DeductionRepository
from models.deduction import StoredDocument
from models.errors import NotFoundError, UpstreamError, ValidationError
from processors.deduction_ingestor import parse_grampanchayat_ids
from utils.uploads import remove_temp_file
from utils.validators import parse_bool, parse_datetime, parse_decimal, validate_financial_year

logger = logging.getLogger(__name__)

# request field -> column
FLAG_FIELDS = {
    'oCCopyReceived': 'oc_copy_received',
    'paymentReceived': 'payment_received',
}


def _supplied(payload: Mapping[str, Any], key: str) -> bool:
    return key in payload and payload[key] is not None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


class AgreementStatusService:
    """Create, list, update and delete agreement statuses"""

    def __init__(self, repository: DeductionRepository, object_store: ObjectStore):
        self.repo = repository
        self.store = object_store

    def create_agreement_status(self, payload: Mapping[str, Any],
                                document_path: Optional[Union[str, Path]] = None) -> AgreementStatusDB:
        try:
            if any(_blank(payload.get(f)) for f in ('financialYear', 'date', 'grampanchayats')):
                raise ValidationError("Financial year, date, and Grampanchayat ID are required fields")

            changes = self._parse_fields(payload)
            gp_ids = parse_grampanchayat_ids(payload['grampanchayats'])
            if len(gp_ids) != 1:
                raise ValidationError("An agreement belongs to exactly one Grampanchayat")
            grampanchayat = self.repo.get_grampanchayat(gp_ids[0])
            if grampanchayat is None:
                raise NotFoundError("Grampanchayat not found")

            financial_year = changes['financial_year']
            if self.repo.get_agreement_for_year(grampanchayat.id, financial_year) is not None:
                raise ValidationError(
                    f"An agreement already exists for the financial year {financial_year} for this Grampanchayat"
                )

            agreement = AgreementStatusDB(
                grampanchayat=grampanchayat,
                oc_copy_received=False,
                payment_received=False,
            )
            for column, value in changes.items():
                setattr(agreement, column, value)

            document = None
            if document_path:
                document = self.store.upload(document_path, AGREEMENT_DOCUMENTS)
                self._set_oc_copy(agreement, document)

            try:
                agreement = self.repo.save_agreement_status(agreement)
            except Exception:
                self.repo.db.rollback()
                if document is not None:
                    self._discard_document(document)
                raise

            logger.info("Created agreement id=%s gp=%s fy=%s", agreement.id, grampanchayat.id, financial_year)
            return agreement
        finally:
            remove_temp_file(document_path)

    def list_agreements(self, grampanchayat_id: int) -> List[AgreementStatusDB]:
        return self.repo.get_agreements_for_grampanchayat(grampanchayat_id)

    def update_agreement_status(self, agreement_id: Any, payload: Mapping[str, Any],
                                document_path: Optional[Union[str, Path]] = None) -> AgreementStatusDB:
        """Apply the supplied fields; an uploaded OC copy replaces the previous one"""
        try:
            agreement = self._get_agreement(agreement_id)
            changes = self._parse_fields(payload)

            if not changes and not document_path:
                raise ValidationError("No update data provided")

            financial_year = changes.get('financial_year')
            if financial_year and financial_year != agreement.financial_year:
                existing = self.repo.get_agreement_for_year(agreement.grampanchayat_id, financial_year)
                if existing is not None:
                    raise ValidationError(
                        f"An agreement already exists for the financial year {financial_year} for this Grampanchayat"
                    )

            if document_path:
                self._replace_oc_copy(agreement, document_path)

            for column, value in changes.items():
                setattr(agreement, column, value)
            agreement = self.repo.save_agreement_status(agreement)
            logger.info("Updated agreement id=%s fields=%s document=%s",
                        agreement.id, sorted(changes), bool(document_path))
            return agreement
        finally:
            remove_temp_file(document_path)

    def delete_agreement_status(self, agreement_id: Any) -> None:
        """Delete the row; its OC copy is destroyed first and a store failure keeps the row"""
        agreement = self._get_agreement(agreement_id)
        if agreement.oc_copy_public_id:
            self.store.delete(agreement.oc_copy_public_id, agreement.oc_copy_resource_type)
        self.repo.delete_agreement_status(agreement)
        logger.info("Deleted agreement id=%s", agreement.id)

    def _parse_fields(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Validated column values for the fields present in the payload"""
        changes = {}

        if _supplied(payload, 'financialYear'):
            financial_year = str(payload['financialYear']).strip()
            if not validate_financial_year(financial_year):
                raise ValidationError("Financial year must be in format YYYY-YYYY")
            changes['financial_year'] = financial_year

        if _supplied(payload, 'date'):
            date = parse_datetime(payload['date'])
            if date is None:
                raise ValidationError(f"Invalid date: {payload['date']!r}")
            changes['date'] = date

        for field, column in FLAG_FIELDS.items():
            if _supplied(payload, field) and payload[field] != '':
                flag = parse_bool(payload[field])
                if flag is None:
                    raise ValidationError(f"{field} must be true or false")
                changes[column] = flag

        if _supplied(payload, 'paymentReceivedDate'):
            raw = payload['paymentReceivedDate']
            received = None
            if not _blank(raw):
                received = parse_datetime(raw)
                if received is None:
                    raise ValidationError(f"Invalid payment received date: {raw!r}")
            changes['payment_received_date'] = received

        if _supplied(payload, 'agreementAmount'):
            raw = payload['agreementAmount']
            amount = None
            if not _blank(raw):
                amount = parse_decimal(raw)
                if amount is None or amount < 0:
                    raise ValidationError("Agreement amount must be a non-negative number")
                amount = amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
            changes['agreement_amount'] = amount

        return changes

    def _get_agreement(self, agreement_id: Any) -> AgreementStatusDB:
        try:
            pk = int(str(agreement_id).strip())
        except (TypeError, ValueError):
            raise NotFoundError("Agreement status not found")
        agreement = self.repo.get_agreement_status(pk)
        if agreement is None:
            raise NotFoundError("Agreement status not found")
        return agreement

    def _replace_oc_copy(self, agreement: AgreementStatusDB, document_path) -> None:
        previous = agreement.oc_copy_public_id
        if previous:
            self.store.delete(previous, agreement.oc_copy_resource_type)

        try:
            document = self.store.upload(document_path, AGREEMENT_DOCUMENTS)
        except UpstreamError:
            if previous:
                # The old copy is gone; do not keep pointing at it
                self._set_oc_copy(agreement, None)
                self.repo.db.commit()
            raise
        self._set_oc_copy(agreement, document)

    @staticmethod
    def _set_oc_copy(agreement: AgreementStatusDB, document: Optional[StoredDocument]) -> None:
        agreement.oc_copy_public_id = document.public_id if document else None
        agreement.oc_copy_url = document.url if document else None
        agreement.oc_copy_resource_type = document.resource_type if document else None

    def _discard_document(self, document: StoredDocument) -> None:
        try:
            self.store.delete(document.public_id, document.resource_type)
        except UpstreamError as e:
            logger.error("Could not remove orphaned document %s: %s", document.public_id, e)
