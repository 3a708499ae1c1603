"""Placeholder dataset served while no real extraction is available.

Built through the same aggregation as real data so its metrics always agree
with its records.
"""

from __future__ import annotations

from datetime import date
from functools import lru_cache

from supplier_core.pipeline import AggregateResult, build_aggregate
from supplier_core.records import PurchaseOrderRecord


FALLBACK_NOTE = "Using fallback sample data"

_SAMPLE_ROWS = [
    ("PO-2023-001", "MOF-001", "ក្រុមហ៊ុន សាន់ដា (ខេមបូឌា) ឯ.ក", "60110", 42000.0, date(2023, 2, 14)),
    ("PO-2023-002", "MOF-002", "ជី ប្រូវីសិន ឯ.ក", "60120", 18750.0, date(2023, 5, 3)),
    ("PO-2023-003", "MOF-001", "KAMPUCHEA TELA LIMITED", "60210", 9600.0, date(2023, 8, 22)),
    ("PO-2023-004", "MOF-003", "M.R.H LIMITED CO.,LTD", "60110", 27300.0, date(2023, 11, 9)),
    ("PO-2024-001", "MOF-001", "ក្រុមហ៊ុន សាន់ដា (ខេមបូឌា) ឯ.ក", "60110", 125000.0, date(2024, 3, 15)),
    ("PO-2024-002", "MOF-002", "ជី ប្រូវីសិន ឯ.ក", "60120", 89500.0, date(2024, 3, 16)),
    ("PO-2024-003", "MOF-002", "Strategy Object FZ LLC", "60310", 15400.0, date(2024, 6, 1)),
    ("PO-2024-004", "MOF-003", "KAMPUCHEA TELA LIMITED", "60210", 11250.0, date(2024, 9, 27)),
]


@lru_cache(maxsize=1)
def fallback_aggregate(top_n: int = 10) -> AggregateResult:
    records = [
        PurchaseOrderRecord(
            id=po_id,
            operating_unit=unit,
            business_unit="10000",
            vendor_name=vendor,
            account=account,
            amount=amount,
            date=po_date,
            po_type="P2P",
            row_index=idx + 2,
        )
        for idx, (po_id, unit, vendor, account, amount, po_date) in enumerate(_SAMPLE_ROWS)
    ]
    return build_aggregate(records, top_n)
