from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PurchaseOrderRecord:
    vendor_name: str
    amount: float
    date: date
    row_index: int
    id: Optional[str] = None
    operating_unit: Optional[str] = None
    business_unit: Optional[str] = None
    account: Optional[str] = None
    po_type: Optional[str] = None
    month: Optional[str] = None
    year: Optional[int] = None

    @property
    def effective_year(self) -> int:
        """Explicit YEAR column when set, otherwise the calendar year of the PO date."""
        return self.year if self.year else self.date.year

    @property
    def vendor_key(self) -> str:
        return self.vendor_name.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "operatingUnit": self.operating_unit,
            "businessUnit": self.business_unit,
            "vendorName": self.vendor_name,
            "account": self.account,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "poType": self.po_type,
            "month": self.month,
            "year": self.year,
            "_rowIndex": self.row_index,
        }

