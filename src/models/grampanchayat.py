from dataclasses import dataclass
from decimal import Decimal


@dataclass
class Grampanchayat:
    """Grampanchayat (owning entity) data model"""
    grampanchayat: str
    district: str
    tahsil: str
    state: str
    gst_no: str
    gp_mobile_number: str
    gram_adhikari_name: str
    gp_agreement_amount: Decimal

    def __str__(self):
        return f"Grampanchayat({self.gst_no}, {self.grampanchayat})"
