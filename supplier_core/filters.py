from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from supplier_core.records import PurchaseOrderRecord


ALL_UNITS = "all"
MAX_LIMIT = 500


@dataclass(frozen=True)
class RecordFilters:
    operating_unit: Optional[str] = None
    year: Optional[int] = None
    limit: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.operating_unit is None and self.year is None


def _as_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def normalize_filters(raw: dict) -> RecordFilters:
    unit = raw.get("operating_unit")
    unit = str(unit).strip() if unit is not None else ""
    if not unit or unit.lower() == ALL_UNITS:
        unit = None

    limit = _as_int(raw.get("limit"))
    if limit is not None:
        limit = max(1, min(MAX_LIMIT, limit))

    return RecordFilters(operating_unit=unit, year=_as_int(raw.get("year")), limit=limit)


def apply_filters(records: Sequence[PurchaseOrderRecord], filters: RecordFilters) -> List[PurchaseOrderRecord]:
    """Unit and year filters only; ``limit`` is applied by the caller after ranking."""
    out: Iterable[PurchaseOrderRecord] = records
    if filters.operating_unit is not None:
        out = (r for r in out if r.operating_unit == filters.operating_unit)
    if filters.year is not None:
        out = (r for r in out if r.date.year == filters.year)
    return list(out)
