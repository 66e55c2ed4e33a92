import logging
from typing import Any, List, Mapping

from database.models import GrampanchayatDB
from database.repository import DeductionRepository
from models.errors import NotFoundError, ValidationError
from models.grampanchayat import Grampanchayat
from utils.validators import parse_decimal, validate_gst_number

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = [
    'grampanchayat', 'district', 'tahsil', 'state',
    'gstNo', 'gpMobileNumber', 'gramAdhikariName', 'gpAgreementAmount',
]


class GrampanchayatRegistry:
    """Register and look up the grampanchayats deductions belong to"""

    def __init__(self, repository: DeductionRepository):
        self.repo = repository

    def add_grampanchayat(self, payload: Mapping[str, Any]) -> GrampanchayatDB:
        missing = [f for f in REQUIRED_FIELDS if payload.get(f) in (None, '')]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        gst_no = str(payload['gstNo']).strip().upper()
        if not validate_gst_number(gst_no):
            raise ValidationError("GST number must be exactly 15 alphanumeric characters")

        agreement_amount = parse_decimal(payload['gpAgreementAmount'])
        if agreement_amount is None or agreement_amount < 0:
            raise ValidationError("Agreement amount must be a non-negative number")

        if self.repo.get_grampanchayat_by_gst_no(gst_no) is not None:
            raise ValidationError("Grampanchayat with this GST number already exists")

        grampanchayat = Grampanchayat(
            grampanchayat=str(payload['grampanchayat']).strip(),
            district=str(payload['district']).strip(),
            tahsil=str(payload['tahsil']).strip(),
            state=str(payload['state']).strip(),
            gst_no=gst_no,
            gp_mobile_number=str(payload['gpMobileNumber']).strip(),
            gram_adhikari_name=str(payload['gramAdhikariName']).strip(),
            gp_agreement_amount=agreement_amount,
        )
        db_gp = self.repo.save_grampanchayat(grampanchayat)
        logger.info("Registered %s as id=%s", grampanchayat, db_gp.id)
        return db_gp

    def get_grampanchayat(self, grampanchayat_id: Any) -> GrampanchayatDB:
        try:
            gp_id = int(str(grampanchayat_id).strip())
        except (TypeError, ValueError):
            raise NotFoundError("Grampanchayat not found")
        db_gp = self.repo.get_grampanchayat(gp_id)
        if db_gp is None:
            raise NotFoundError("Grampanchayat not found")
        return db_gp

    def get_all_grampanchayats(self) -> List[GrampanchayatDB]:
        return self.repo.get_all_grampanchayats()
