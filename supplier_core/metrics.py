"""Summary metrics, groupings and rankings over purchase-order records.

Every function here is a pure function of the record sequence, so cached
values can always be checked against a fresh recomputation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from supplier_core.records import PurchaseOrderRecord


MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
FRAME_COLUMNS = ["vendor", "operating_unit", "amount", "year", "month"]


@dataclass(frozen=True)
class MetricsSummary:
    total_vendors: int = 0
    total_operating_units: int = 0
    total_procurement: float = 0.0
    active_pos: int = 0
    avg_spend_per_vendor: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalVendors": self.total_vendors,
            "totalOperatingUnits": self.total_operating_units,
            "totalProcurement": self.total_procurement,
            "activePOs": self.active_pos,
            "avgSpendPerVendor": self.avg_spend_per_vendor,
        }


@dataclass(frozen=True)
class VendorSpend:
    vendor: str
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {"vendor": self.vendor, "amount": self.amount}


def records_frame(records: Sequence[PurchaseOrderRecord]) -> pd.DataFrame:
    rows = [
        {
            "vendor": r.vendor_key,
            "operating_unit": r.operating_unit,
            "amount": r.amount,
            "year": r.date.year,
            "month": r.date.month,
        }
        for r in records
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0).astype(float)
    return df


def _unit_key(value: object) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    return str(value)


# ---------------- Frame helpers ----------------
def _named_vendors(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["vendor"] != ""]


def _vendor_totals(df: pd.DataFrame) -> pd.Series:
    """Summed amount per vendor, first-seen order."""
    named = _named_vendors(df)
    if named.empty:
        return pd.Series(dtype=float)
    return named.groupby("vendor", sort=False)["amount"].sum()


def _unit_counts(df: pd.DataFrame) -> pd.Series:
    if df.empty:
        return pd.Series(dtype="int64")
    return df.groupby("operating_unit", sort=False, dropna=False).size()


# ---------------- Public metrics ----------------
def distinct_vendor_count(records: Sequence[PurchaseOrderRecord]) -> int:
    return int(_named_vendors(records_frame(records))["vendor"].nunique())


def distinct_operating_unit_count(records: Sequence[PurchaseOrderRecord]) -> int:
    """Distinct unit codes; a missing code counts as one bucket when it occurs."""
    return int(records_frame(records)["operating_unit"].nunique(dropna=False))


def total_amount(records: Sequence[PurchaseOrderRecord]) -> float:
    return float(records_frame(records)["amount"].sum())


def active_order_count(records: Sequence[PurchaseOrderRecord]) -> int:
    return len(records)


def average_spend_per_vendor(records: Sequence[PurchaseOrderRecord]) -> float:
    return _average(total_amount(records), distinct_vendor_count(records))


def _average(total: float, vendors: int) -> float:
    return total / vendors if vendors > 0 else 0.0


def top_vendors_by_spend(records: Sequence[PurchaseOrderRecord], n: int = 10) -> List[VendorSpend]:
    """Vendors ranked by summed amount, ties kept in first-seen order."""
    return _top_vendors(records_frame(records), n)


def _top_vendors(df: pd.DataFrame, n: int) -> List[VendorSpend]:
    if n <= 0:
        return []
    totals = _vendor_totals(df)
    if totals.empty:
        return []
    ranked = totals.sort_values(ascending=False, kind="stable").head(n)
    return [VendorSpend(vendor=str(v), amount=float(a)) for v, a in ranked.items()]


def procurement_by_operating_unit(
    records: Sequence[PurchaseOrderRecord], limit: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Record count per operating unit (not spend), largest first."""
    df = records_frame(records)
    counts = _unit_counts(df)
    if counts.empty:
        return []
    total = int(counts.sum())
    ranked = counts.sort_values(ascending=False, kind="stable")
    out = [
        {
            "operatingUnit": _unit_key(unit),
            "count": int(count),
            "percentage": (int(count) / total) * 100 if total else 0.0,
        }
        for unit, count in ranked.items()
    ]
    return out[:limit] if limit else out


def time_series_by_month(records: Sequence[PurchaseOrderRecord], year: int) -> List[Dict[str, Any]]:
    """Dense Jan..Dec record counts for ``year``; empty months report 0."""
    df = records_frame(records)
    in_year = df[df["year"] == year]
    counts = in_year.groupby("month").size().reindex(range(1, 13), fill_value=0)
    return [
        {"period": MONTH_LABELS[month - 1], "value": int(counts.loc[month]), "year": int(year), "month": month}
        for month in range(1, 13)
    ]


def latest_year(records: Sequence[PurchaseOrderRecord]) -> Optional[int]:
    if not records:
        return None
    return max(r.date.year for r in records)


def operating_units(records: Sequence[PurchaseOrderRecord]) -> List[Optional[str]]:
    """Distinct unit codes in first-seen order."""
    seen: Dict[Optional[str], None] = {}
    for r in records:
        seen.setdefault(r.operating_unit, None)
    return list(seen)


def recent_orders(records: Sequence[PurchaseOrderRecord], limit: Optional[int] = None) -> List[PurchaseOrderRecord]:
    ordered = sorted(records, key=lambda r: r.date, reverse=True)
    return ordered[:limit] if limit else ordered


def summarize_metrics(records: Sequence[PurchaseOrderRecord]) -> MetricsSummary:
    df = records_frame(records)
    vendors = int(_named_vendors(df)["vendor"].nunique())
    total = float(df["amount"].sum())
    return MetricsSummary(
        total_vendors=vendors,
        total_operating_units=int(df["operating_unit"].nunique(dropna=False)),
        total_procurement=total,
        active_pos=len(df),
        avg_spend_per_vendor=_average(total, vendors),
    )
