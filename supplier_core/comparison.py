"""Year-over-year vendor presence and per-unit record counts."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from supplier_core.records import PurchaseOrderRecord


@dataclass(frozen=True)
class ComparisonResult:
    years: Tuple[int, ...]
    vendor_presence: Dict[str, Dict[int, bool]] = field(default_factory=dict)
    unit_counts_by_year: Dict[str, Dict[int, int]] = field(default_factory=dict)

    def vendors_in(self, year: int) -> set:
        return {v for v, years in self.vendor_presence.items() if years.get(year)}

    def to_dict(self, vendor_limit: Optional[int] = None, unit_limit: Optional[int] = None) -> Dict[str, Any]:
        vendors = islice(self.vendor_presence.items(), vendor_limit)
        units = islice(self.unit_counts_by_year.items(), unit_limit)
        payload: Dict[str, Any] = {
            "years": list(self.years),
            "vendorPresence": {name: {str(y): flag for y, flag in years.items()} for name, years in vendors},
            "unitCountsByYear": {unit: {str(y): n for y, n in years.items()} for unit, years in units},
        }
        if len(self.years) == 2:
            payload["summary"] = presence_summary(self, self.years[0], self.years[1])
        return payload


def normalize_years(years: Iterable[object]) -> Tuple[int, ...]:
    out = set()
    for y in years:
        try:
            out.add(int(y))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            continue
    return tuple(sorted(out))


def compare_years(records: Sequence[PurchaseOrderRecord], years: Iterable[object]) -> ComparisonResult:
    """Presence per vendor and record count per unit for each requested year.

    Every distinct vendor and unit gets an entry for every requested year
    (``False``/``0`` when absent). Records outside the requested years only
    contribute their vendor/unit name.
    """
    wanted = normalize_years(years)
    wanted_set = set(wanted)
    presence: Dict[str, Dict[int, bool]] = {}
    unit_counts: Dict[str, Dict[int, int]] = {}

    for r in records:
        year = r.effective_year
        vendor = r.vendor_key
        if vendor:
            flags = presence.setdefault(vendor, {y: False for y in wanted})
            if year in wanted_set:
                flags[year] = True

        unit = r.operating_unit or ""
        counts = unit_counts.setdefault(unit, {y: 0 for y in wanted})
        if year in wanted_set:
            counts[year] += 1

    return ComparisonResult(years=wanted, vendor_presence=presence, unit_counts_by_year=unit_counts)


def presence_summary(result: ComparisonResult, base_year: int, compare_year: int) -> Dict[str, int]:
    """Vendor retention between two years (lost = only in base, new = only in compare)."""
    base = result.vendors_in(base_year)
    other = result.vendors_in(compare_year)
    return {
        "baseYear": base_year,
        "compareYear": compare_year,
        "baseYearVendors": len(base),
        "compareYearVendors": len(other),
        "totalVendors": max(len(base), len(other)),
        "sameVendors": len(base & other),
        "vendorsLost": len(base - other),
        "vendorsNew": len(other - base),
    }


def vendor_rows(result: ComparisonResult) -> List[Dict[str, Any]]:
    """Flat ``{name, <year>: bool}`` rows for table rendering and CSV export."""
    return [{"name": name, **{str(y): flag for y, flag in years.items()}} for name, years in result.vendor_presence.items()]
