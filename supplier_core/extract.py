"""Worksheet rows -> ordered purchase-order records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple, Union

import pandas as pd

from supplier_core.cells import Cell, coerce, read_cell
from supplier_core.columns import COLUMN_MAPPINGS, ColumnMapping, HeaderMap, map_headers
from supplier_core.config import Settings
from supplier_core.errors import ExtractionError, SourceUnavailable
from supplier_core.records import PurchaseOrderRecord


logger = logging.getLogger(__name__)

PROGRESS_EVERY = 5000
CORE_FIELDS = ("vendorName", "amount", "date")
CLASSIFIER_FIELDS = ("businessUnit", "poType")

PolicySelection = Literal["row", "batch"]


# ---------------- Inclusion policies ----------------
@dataclass(frozen=True)
class StrictPolicy:
    """Both classifiers must equal their sentinel values."""

    business_unit: str = "10000"
    po_type: str = "P2P"
    name: str = field(default="strict", init=False)

    # Amounts are not clamped here; negative strict rows are kept as-is.
    def accepts(self, row: Dict[str, object]) -> bool:
        return row.get("businessUnit") == self.business_unit and row.get("poType") == self.po_type


@dataclass(frozen=True)
class LenientPolicy:
    """Fallback used when classifiers are absent: any row with a positive amount."""

    min_amount: float = 0.0
    name: str = field(default="lenient", init=False)

    def accepts(self, row: Dict[str, object]) -> bool:
        amount = row.get("amount")
        return isinstance(amount, float) and amount > self.min_amount


InclusionPolicy = Union[StrictPolicy, LenientPolicy]


@dataclass(frozen=True)
class PolicyConfig:
    strict: StrictPolicy = field(default_factory=StrictPolicy)
    lenient: LenientPolicy = field(default_factory=LenientPolicy)
    selection: PolicySelection = "row"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyConfig":
        return cls(
            strict=StrictPolicy(settings.strict_business_unit, settings.strict_po_type),
            lenient=LenientPolicy(settings.lenient_min_amount),
            selection=settings.policy_selection,  # type: ignore[arg-type]
        )

    def for_batch(self, header_map: HeaderMap) -> Optional[InclusionPolicy]:
        """Policy fixed for the whole sheet, or ``None`` when it is chosen row by row."""
        if self.selection != "batch":
            return None
        if all(header_map.has(f) for f in CLASSIFIER_FIELDS):
            return self.strict
        return self.lenient

    def for_row(self, row: Dict[str, object]) -> InclusionPolicy:
        if all(row.get(f) for f in CLASSIFIER_FIELDS):
            return self.strict
        return self.lenient


# ---------------- Extraction ----------------
@dataclass(frozen=True)
class ExtractionReport:
    data_rows: int = 0
    blank_rows: int = 0
    accepted: int = 0
    rejected_required: int = 0
    rejected_core: int = 0
    rejected_policy: int = 0
    strict_rows: int = 0
    lenient_rows: int = 0
    policy_selection: str = "row"
    missing_required: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.missing_required)


@dataclass(frozen=True)
class ExtractionResult:
    records: Tuple[PurchaseOrderRecord, ...]
    report: ExtractionReport


def is_blank_row(cells: Sequence[Cell]) -> bool:
    return all(c.is_empty for c in cells)


def map_row(cells: Sequence[Cell], header_map: HeaderMap) -> Dict[str, object]:
    mapped: Dict[str, object] = {}
    for mapping, idx in header_map.mapped():
        cell = cells[idx] if idx < len(cells) else Cell("empty")
        mapped[mapping.field_name] = coerce(cell, mapping.value_type)
    return mapped


def _missing(value: object) -> bool:
    return value is None or value == ""


def _to_record(row: Dict[str, object], row_index: int) -> PurchaseOrderRecord:
    year = row.get("year")
    return PurchaseOrderRecord(
        vendor_name=row["vendorName"],  # type: ignore[arg-type]
        amount=row["amount"],  # type: ignore[arg-type]
        date=row["date"],  # type: ignore[arg-type]
        row_index=row_index,
        id=row.get("id"),  # type: ignore[arg-type]
        operating_unit=row.get("operatingUnit"),  # type: ignore[arg-type]
        business_unit=row.get("businessUnit"),  # type: ignore[arg-type]
        account=row.get("account"),  # type: ignore[arg-type]
        po_type=row.get("poType"),  # type: ignore[arg-type]
        month=row.get("month"),  # type: ignore[arg-type]
        year=int(year) if isinstance(year, float) and year.is_integer() and year else None,
    )


def extract_records(
    rows: Iterable[Sequence[object]],
    *,
    mappings: Sequence[ColumnMapping] = COLUMN_MAPPINGS,
    policy: Optional[PolicyConfig] = None,
) -> ExtractionResult:
    """Turn raw worksheet rows (first row = headers) into accepted records, source order kept.

    Inclusion, in order: every required field present; vendor/amount/date
    present; then the strict classifier check when both classifiers are set,
    otherwise the lenient positive-amount check.
    """
    policy = policy or PolicyConfig()
    row_iter = iter(rows)
    try:
        headers = list(next(row_iter))
    except StopIteration:
        raise ExtractionError("worksheet is empty") from None

    header_map = map_headers(headers, mappings)
    required_fields = [m.field_name for m in mappings if m.required]
    batch_policy = policy.for_batch(header_map)
    if batch_policy is not None:
        logger.info("Inclusion policy for this sheet: %s", batch_policy.name)

    records: List[PurchaseOrderRecord] = []
    counts = {"blank": 0, "required": 0, "core": 0, "policy": 0, "strict": 0, "lenient": 0}
    data_idx = 0

    for raw in row_iter:
        cells = [read_cell(v) for v in raw]
        if is_blank_row(cells):
            counts["blank"] += 1
            continue
        if data_idx % PROGRESS_EVERY == 0:
            logger.info("Processing row %d", data_idx + 1)
        row_index = data_idx + 2
        data_idx += 1

        row = map_row(cells, header_map)
        if any(_missing(row.get(f)) for f in required_fields):
            counts["required"] += 1
            continue
        if any(_missing(row.get(f)) for f in CORE_FIELDS):
            counts["core"] += 1
            continue

        chosen = batch_policy or policy.for_row(row)
        counts[chosen.name] += 1
        if not chosen.accepts(row):
            counts["policy"] += 1
            continue
        records.append(_to_record(row, row_index))

    report = ExtractionReport(
        data_rows=data_idx,
        blank_rows=counts["blank"],
        accepted=len(records),
        rejected_required=counts["required"],
        rejected_core=counts["core"],
        rejected_policy=counts["policy"],
        strict_rows=counts["strict"],
        lenient_rows=counts["lenient"],
        policy_selection=policy.selection,
        missing_required=header_map.missing_required,
    )
    logger.info(
        "Processed %d valid records from %d data rows (strict=%d, lenient=%d)",
        report.accepted,
        report.data_rows,
        report.strict_rows,
        report.lenient_rows,
    )
    if not records:
        logger.warning("No records match the filter criteria")
    return ExtractionResult(records=tuple(records), report=report)


# ---------------- Source files ----------------
def locate_source(candidates: Iterable[Path]) -> Path:
    tried = []
    for path in candidates:
        tried.append(str(path))
        if path.exists():
            return path
    raise SourceUnavailable(f"source spreadsheet not found (tried: {', '.join(tried)})")


def read_worksheet(path: Path, sheet_name: Union[int, str] = 0) -> List[List[object]]:
    """Read one sheet as raw rows (no header inference, no dtype guessing)."""
    try:
        if path.suffix.lower() == ".csv":
            df = pd.read_csv(path, header=None, dtype=object, keep_default_na=False)
        else:
            df = pd.read_excel(path, sheet_name=sheet_name, header=None, dtype=object)
    except Exception as exc:
        raise SourceUnavailable(f"could not read {path}: {exc}") from exc
    logger.info("Read %d rows from %s", len(df), path)
    return df.values.tolist()


def extract_from_file(path: Path, policy: Optional[PolicyConfig] = None) -> ExtractionResult:
    return extract_records(read_worksheet(path), policy=policy)
