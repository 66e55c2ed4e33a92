from .db import Base, create_db_engine, create_session_factory, init_db
from .models import (
    GrampanchayatDB,
    DeductionRecordDB,
    DeductionEntryDB,
    AgreementStatusDB,
    deduction_grampanchayats
)
from .repository import DeductionRepository

__all__ = [
    'Base',
    'create_db_engine',
    'create_session_factory',
    'init_db',
    'GrampanchayatDB',
    'DeductionRecordDB',
    'DeductionEntryDB',
    'AgreementStatusDB',
    'deduction_grampanchayats',
    'DeductionRepository'
]
