from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class PaymentMode(str, Enum):
    ONLINE = "online"
    CHEQUE = "cheque"

    @classmethod
    def values(cls) -> List[str]:
        return [m.value for m in cls]


class DeductionCategory(str, Enum):
    """The five statutory deduction categories a record can carry"""
    GST = "gst"
    ROYALTY = "royalty"
    IT = "it"
    KAMGAAR = "kamgaar"
    INSURANCE = "insurance"

    @property
    def field_name(self) -> str:
        """Request/response key holding this category's entry list"""
        return f"{self.value}Entries"

    @property
    def summary_key(self) -> str:
        return _SUMMARY_KEYS[self]

    @property
    def label(self) -> str:
        """Column label used in the spreadsheet export"""
        return _LABELS[self]


_SUMMARY_KEYS = {
    DeductionCategory.GST: "totalGST",
    DeductionCategory.ROYALTY: "totalRoyalty",
    DeductionCategory.IT: "totalIT",
    DeductionCategory.KAMGAAR: "totalKamgaar",
    DeductionCategory.INSURANCE: "totalInsurance",
}

_LABELS = {
    DeductionCategory.GST: "GST",
    DeductionCategory.ROYALTY: "Royalty",
    DeductionCategory.IT: "IT",
    DeductionCategory.KAMGAAR: "Kamgaar",
    DeductionCategory.INSURANCE: "Insurance",
}


@dataclass
class DeductionEntry:
    """Single deduction line item"""
    amount: Decimal
    party_name: Optional[str] = None
    pan: Optional[str] = None  # IT only


@dataclass
class StoredDocument:
    """Reference to a file held by the object store"""
    public_id: str
    url: str
    resource_type: Optional[str] = None  # image, raw or video; needed to destroy it

    def to_dict(self) -> Dict[str, str]:
        return {'public_id': self.public_id, 'url': self.url}


@dataclass
class DeductionSubmission:
    """Validated staff submission, ready to be persisted"""
    date: datetime
    gramadhikari_name: str
    payment_mode: PaymentMode
    grampanchayat_ids: List[int]
    entries: Dict[DeductionCategory, List[DeductionEntry]] = field(default_factory=dict)
    total_amount: Decimal = Decimal('0')
    check_no: Optional[str] = None
    pfms_date: Optional[datetime] = None

    def entries_for(self, category: DeductionCategory) -> List[DeductionEntry]:
        return self.entries.get(category, [])

    def has_entries(self) -> bool:
        return any(self.entries_for(c) for c in DeductionCategory)


@dataclass
class DeductionFilter:
    """Parsed listing filters; None means 'not filtered'"""
    grampanchayat_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    gst_no: Optional[str] = None
    payment_mode: Optional[PaymentMode] = None
    seen_by_admin: Optional[bool] = None
    sort_by: str = "date"
    sort_order: str = "desc"
