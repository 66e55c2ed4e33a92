from sqlalchemy.orm import Session, Query, selectinload
from typing import List, Optional, Sequence
from .models import GrampanchayatDB, DeductionRecordDB, DeductionEntryDB, AgreementStatusDB
from models.deduction import DeductionCategory, DeductionFilter, DeductionSubmission, StoredDocument
from models.grampanchayat import Grampanchayat

# API field name -> column used for sorting
SORT_COLUMNS = {
    '_id': DeductionRecordDB.id,
    'date': DeductionRecordDB.date,
    'gramadhikariName': DeductionRecordDB.gramadhikari_name,
    'paymentMode': DeductionRecordDB.payment_mode,
    'checkNo': DeductionRecordDB.check_no,
    'pfmsDate': DeductionRecordDB.pfms_date,
    'totalAmount': DeductionRecordDB.total_amount,
    'seenByAdmin': DeductionRecordDB.seen_by_admin,
    'createdAt': DeductionRecordDB.created_at,
    'updatedAt': DeductionRecordDB.updated_at,
}


class DeductionRepository:
    """Repository for grampanchayat and deduction record operations"""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ========== Grampanchayat Operations ==========

    def save_grampanchayat(self, grampanchayat: Grampanchayat) -> GrampanchayatDB:
        db_gp = GrampanchayatDB(
            grampanchayat=grampanchayat.grampanchayat,
            district=grampanchayat.district,
            tahsil=grampanchayat.tahsil,
            state=grampanchayat.state,
            gst_no=grampanchayat.gst_no,
            gp_mobile_number=grampanchayat.gp_mobile_number,
            gram_adhikari_name=grampanchayat.gram_adhikari_name,
            gp_agreement_amount=grampanchayat.gp_agreement_amount,
        )
        self.db.add(db_gp)
        self.db.commit()
        self.db.refresh(db_gp)
        return db_gp

    def get_grampanchayat(self, grampanchayat_id: int) -> Optional[GrampanchayatDB]:
        return self.db.get(GrampanchayatDB, grampanchayat_id)

    def get_grampanchayat_by_gst_no(self, gst_no: str) -> Optional[GrampanchayatDB]:
        return self.db.query(GrampanchayatDB).filter_by(gst_no=gst_no).first()

    def get_grampanchayats(self, ids: Sequence[int]) -> List[GrampanchayatDB]:
        if not ids:
            return []
        return self.db.query(GrampanchayatDB).filter(GrampanchayatDB.id.in_(list(ids))).all()

    def get_all_grampanchayats(self) -> List[GrampanchayatDB]:
        return self.db.query(GrampanchayatDB).order_by(GrampanchayatDB.grampanchayat, GrampanchayatDB.id).all()

    # ========== Deduction Record Operations ==========

    def save_deduction_record(self, submission: DeductionSubmission,
                              grampanchayats: List[GrampanchayatDB],
                              document: Optional[StoredDocument] = None) -> DeductionRecordDB:
        """Persist a new record with all of its entries"""
        record = DeductionRecordDB(
            date=submission.date,
            gramadhikari_name=submission.gramadhikari_name,
            payment_mode=submission.payment_mode.value,
            check_no=submission.check_no,
            pfms_date=submission.pfms_date,
            total_amount=submission.total_amount,
            seen_by_admin=False,
        )
        if document is not None:
            record.document_public_id = document.public_id
            record.document_url = document.url
            record.document_resource_type = document.resource_type
        record.grampanchayats = list(grampanchayats)

        for category in DeductionCategory:
            for position, entry in enumerate(submission.entries_for(category)):
                record.entries.append(DeductionEntryDB(
                    category=category.value,
                    position=position,
                    amount=entry.amount,
                    party_name=entry.party_name,
                    pan=entry.pan,
                ))

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_deduction_record(self, record_id: int) -> Optional[DeductionRecordDB]:
        return self._with_relations(self.db.query(DeductionRecordDB)).filter(
            DeductionRecordDB.id == record_id
        ).first()

    def update_review(self, record: DeductionRecordDB, seen_by_admin: Optional[bool] = None,
                      admin_document: Optional[StoredDocument] = None) -> DeductionRecordDB:
        """Apply the admin-review fields that were supplied; leave the rest untouched"""
        if seen_by_admin is not None:
            record.seen_by_admin = seen_by_admin
        if admin_document is not None:
            record.admin_document_public_id = admin_document.public_id
            record.admin_document_url = admin_document.url
            record.admin_document_resource_type = admin_document.resource_type
        self.db.commit()
        self.db.refresh(record)
        return record

    # ========== Listing / Reporting ==========

    def filtered_query(self, filters: DeductionFilter) -> Query:
        """Records matching the filters, unordered and unpaginated"""
        query = self.db.query(DeductionRecordDB)

        if filters.grampanchayat_id is not None:
            query = query.filter(DeductionRecordDB.grampanchayats.any(GrampanchayatDB.id == filters.grampanchayat_id))
        if filters.gst_no:
            query = query.filter(DeductionRecordDB.grampanchayats.any(GrampanchayatDB.gst_no == filters.gst_no))
        if filters.start_date is not None:
            query = query.filter(DeductionRecordDB.date >= filters.start_date)
        if filters.end_date is not None:
            query = query.filter(DeductionRecordDB.date <= filters.end_date)
        if filters.payment_mode is not None:
            query = query.filter(DeductionRecordDB.payment_mode == filters.payment_mode.value)
        if filters.seen_by_admin is not None:
            query = query.filter(DeductionRecordDB.seen_by_admin == filters.seen_by_admin)
        return query

    def count_records(self, filters: DeductionFilter) -> int:
        return self.filtered_query(filters).count()

    def get_records(self, filters: DeductionFilter, offset: int = 0,
                    limit: Optional[int] = None) -> List[DeductionRecordDB]:
        """Sorted (and optionally paginated) records matching the filters"""
        column = SORT_COLUMNS.get(filters.sort_by, DeductionRecordDB.date)
        if filters.sort_order == 'asc':
            order = [column.asc(), DeductionRecordDB.id.asc()]
        else:
            order = [column.desc(), DeductionRecordDB.id.desc()]

        query = self._with_relations(self.filtered_query(filters)).order_by(*order)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_reviewed_records(self, grampanchayat_id: int) -> List[DeductionRecordDB]:
        """Reviewed records carrying an admin document, newest first"""
        filters = DeductionFilter(grampanchayat_id=grampanchayat_id, seen_by_admin=True)
        query = self.filtered_query(filters).filter(
            DeductionRecordDB.admin_document_url.isnot(None),
            DeductionRecordDB.admin_document_url != '',
        )
        return self._with_relations(query).order_by(
            DeductionRecordDB.date.desc(), DeductionRecordDB.id.desc()
        ).all()

    # ========== Agreement Status Operations ==========

    def save_agreement_status(self, agreement: AgreementStatusDB) -> AgreementStatusDB:
        """Insert or update an agreement status row"""
        self.db.add(agreement)
        self.db.commit()
        self.db.refresh(agreement)
        return agreement

    def get_agreement_status(self, agreement_id: int) -> Optional[AgreementStatusDB]:
        return self.db.get(AgreementStatusDB, agreement_id)

    def get_agreement_for_year(self, grampanchayat_id: int, financial_year: str) -> Optional[AgreementStatusDB]:
        return self.db.query(AgreementStatusDB).filter_by(
            grampanchayat_id=grampanchayat_id, financial_year=financial_year
        ).first()

    def get_agreements_for_grampanchayat(self, grampanchayat_id: int) -> List[AgreementStatusDB]:
        """All agreements of one grampanchayat, newest first"""
        return self.db.query(AgreementStatusDB).options(
            selectinload(AgreementStatusDB.grampanchayat)
        ).filter(
            AgreementStatusDB.grampanchayat_id == grampanchayat_id
        ).order_by(AgreementStatusDB.date.desc(), AgreementStatusDB.id.desc()).all()

    def delete_agreement_status(self, agreement: AgreementStatusDB) -> None:
        self.db.delete(agreement)
        self.db.commit()

    # ========== Helper Methods ==========

    def _with_relations(self, query: Query) -> Query:
        return query.options(
            selectinload(DeductionRecordDB.entries),
            selectinload(DeductionRecordDB.grampanchayats),
        )
