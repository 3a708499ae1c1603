from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest

from supplier_core.config import Settings
from supplier_core.extract import ExtractionReport
from supplier_core.pipeline import PipelineRun, build_aggregate
from supplier_core.records import PurchaseOrderRecord


HEADERS = [
    "VENDOR ID",
    "OPERATING UNIT",
    "BUSINESS UNIT",
    "VENDOR DESCR",
    "ACCOUNT",
    "AMOUNT",
    "PO DATE",
    "PO TYPE",
    "MONTH",
    "YEAR",
]


def make_record(vendor="A", amount=100.0, po_date=date(2023, 1, 10), unit="U1", row_index=2, **kwargs):
    return PurchaseOrderRecord(
        vendor_name=vendor,
        amount=amount,
        date=po_date,
        row_index=row_index,
        operating_unit=unit,
        **kwargs,
    )


def sheet_row(vendor_id, unit, bu, vendor, account, amount, po_date, po_type, month=None, year=None):
    return [vendor_id, unit, bu, vendor, account, amount, po_date, po_type, month, year]


class FakePipeline:
    """Scripted pipeline: each call pops the next outcome (an exception or a record list)."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self, settings):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return PipelineRun(result=build_aggregate(outcome), report=ExtractionReport(accepted=len(outcome)), source=None)


@pytest.fixture
def sample_rows():
    """Header plus a mix of strict, lenient, rejected and blank rows."""
    return [
        HEADERS,
        sheet_row("V001", "1001", "10000", "Alpha Trading", "6011", 1200.0, datetime(2023, 1, 10), "P2P"),
        sheet_row("V002", "1002", "20000", "Beta Supplies", "6012", 800.0, datetime(2023, 2, 15), "P2P"),
        [None] * len(HEADERS),
        sheet_row("V003", "1001", None, "Gamma Co", "6013", 450.0, datetime(2024, 3, 1), None),
        sheet_row("V004", "1003", "10000", "Alpha Trading", "6011", 300.0, datetime(2024, 7, 4), "P2P"),
        sheet_row("V005", "1002", None, "Delta Ltd", "6014", None, datetime(2024, 8, 9), None),
    ]


@pytest.fixture
def write_workbook():
    def _write(path: Path, rows):
        path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(rows[1:], columns=rows[0]).to_excel(path, index=False)
        return path

    return _write


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        source_candidates=(tmp_path / "Supplier_Info.xlsx",),
        cache_path=tmp_path / "public" / "data" / "cached_data.json",
        fallback_path=tmp_path / "static" / "dashboard_cache.json",
        rebuild_retries=3,
        rebuild_backoff_seconds=0.5,
    )
