from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
from .db import Base
from models.deduction import DeductionCategory

# Records reference their owning grampanchayat(s) without owning them
deduction_grampanchayats = Table(
    "deduction_grampanchayats",
    Base.metadata,
    Column("deduction_id", Integer, ForeignKey("deduction_records.id", ondelete="CASCADE"), primary_key=True),
    Column("grampanchayat_id", Integer, ForeignKey("grampanchayats.id"), primary_key=True),
)


class GrampanchayatDB(Base):
    """Grampanchayat database model"""
    __tablename__ = "grampanchayats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    grampanchayat = Column(String(255), nullable=False)
    district = Column(String(100), nullable=False)
    tahsil = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    gst_no = Column(String(15), nullable=False, unique=True, index=True)
    gp_mobile_number = Column(String(20), nullable=False)
    gram_adhikari_name = Column(String(255), nullable=False)
    gp_agreement_amount = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            '_id': self.id,
            'grampanchayat': self.grampanchayat,
            'district': self.district,
            'tahsil': self.tahsil,
            'state': self.state,
            'gstNo': self.gst_no,
            'gpMobileNumber': self.gp_mobile_number,
            'gramAdhikariName': self.gram_adhikari_name,
            'gpAgreementAmount': float(self.gp_agreement_amount),
        }

    def to_reference(self):
        """Display fields embedded in a deduction record"""
        return {
            '_id': self.id,
            'grampanchayat': self.grampanchayat,
            'district': self.district,
            'tahsil': self.tahsil,
            'state': self.state,
        }

    def __repr__(self):
        return f"<Grampanchayat(id={self.id}, gst_no={self.gst_no})>"


class DeductionRecordDB(Base):
    """One collection visit with its deduction entries"""
    __tablename__ = "deduction_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    date = Column(DateTime, nullable=False, index=True)
    gramadhikari_name = Column(String(255), nullable=False)
    payment_mode = Column(String(10), nullable=False, index=True)
    check_no = Column(String(100))
    pfms_date = Column(DateTime)

    # Client-supplied or computed, see DeductionIngestor
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)

    document_public_id = Column(String(255))
    document_url = Column(String(1000))
    document_resource_type = Column(String(10))

    seen_by_admin = Column(Boolean, nullable=False, default=False, index=True)
    admin_document_public_id = Column(String(255))
    admin_document_url = Column(String(1000))
    admin_document_resource_type = Column(String(10))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    entries = relationship(
        "DeductionEntryDB",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="DeductionEntryDB.position",
    )
    grampanchayats = relationship("GrampanchayatDB", secondary=deduction_grampanchayats, order_by="GrampanchayatDB.id")

    def entries_for(self, category: DeductionCategory):
        return [e for e in self.entries if e.category == category.value]

    def category_total(self, category: DeductionCategory):
        return sum((e.amount for e in self.entries_for(category)), Decimal("0"))

    def to_dict(self):
        data = {
            '_id': self.id,
            'date': self.date.isoformat() if self.date else None,
            'gramadhikariName': self.gramadhikari_name,
            'paymentMode': self.payment_mode,
            'checkNo': self.check_no,
            'pfmsDate': self.pfms_date.isoformat() if self.pfms_date else None,
        }
        for category in DeductionCategory:
            data[category.field_name] = [e.to_dict() for e in self.entries_for(category)]
        data.update({
            'totalAmount': float(self.total_amount) if self.total_amount is not None else 0,
            'document': _document(self.document_public_id, self.document_url),
            'seenByAdmin': bool(self.seen_by_admin),
            'uploadDocumentbyAdmin': _document(self.admin_document_public_id, self.admin_document_url),
            'grampanchayats': [gp.to_reference() for gp in self.grampanchayats],
        })
        return data

    def __repr__(self):
        return f"<DeductionRecord(id={self.id}, date={self.date}, total={self.total_amount})>"


class DeductionEntryDB(Base):
    """Deduction line item, owned by exactly one record"""
    __tablename__ = "deduction_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(Integer, ForeignKey('deduction_records.id', ondelete="CASCADE"), nullable=False, index=True)

    category = Column(String(20), nullable=False)  # DeductionCategory value
    position = Column(Integer, nullable=False, default=0)

    amount = Column(Numeric(12, 2), nullable=False)
    party_name = Column(String(255))
    pan = Column(String(20))

    # Relationships
    record = relationship("DeductionRecordDB", back_populates="entries")

    def to_dict(self):
        data = {'amount': float(self.amount), 'partyName': self.party_name}
        if self.pan:
            data['pan'] = self.pan
        return data

    def __repr__(self):
        return f"<DeductionEntry(category={self.category}, amount={self.amount})>"


class AgreementStatusDB(Base):
    """Yearly agreement between a grampanchayat and the office: OC copy and payment status"""
    __tablename__ = "agreement_statuses"
    __table_args__ = (
        UniqueConstraint("grampanchayat_id", "financial_year", name="uq_agreement_gp_year"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    grampanchayat_id = Column(Integer, ForeignKey("grampanchayats.id"), nullable=False, index=True)

    financial_year = Column(String(9), nullable=False)  # e.g. 2023-2024
    date = Column(DateTime, nullable=False)
    oc_copy_received = Column(Boolean, nullable=False, default=False)
    payment_received = Column(Boolean, nullable=False, default=False)
    payment_received_date = Column(DateTime)
    agreement_amount = Column(Numeric(14, 2))

    oc_copy_public_id = Column(String(255))
    oc_copy_url = Column(String(1000))
    oc_copy_resource_type = Column(String(10))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    grampanchayat = relationship("GrampanchayatDB")

    def to_dict(self):
        return {
            '_id': self.id,
            'financialYear': self.financial_year,
            'date': self.date.isoformat() if self.date else None,
            'oCCopyReceived': bool(self.oc_copy_received),
            'paymentReceived': bool(self.payment_received),
            'paymentReceivedDate': self.payment_received_date.isoformat() if self.payment_received_date else None,
            'agreementAmount': float(self.agreement_amount) if self.agreement_amount is not None else None,
            'uploadedOCCopy': _document(self.oc_copy_public_id, self.oc_copy_url),
            'grampanchayats': [self.grampanchayat.to_reference()] if self.grampanchayat else [],
        }

    def __repr__(self):
        return f"<AgreementStatus(id={self.id}, gp={self.grampanchayat_id}, fy={self.financial_year})>"


def _document(public_id, url):
    if not public_id and not url:
        return None
    return {'public_id': public_id, 'url': url}
