from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional

import numpy as np
import pandas as pd
from openpyxl.utils.datetime import from_excel

from supplier_core.columns import ColumnType


CellKind = Literal["empty", "number", "text", "date"]

_NUMBER_NOISE = re.compile(r"[,\s]")


@dataclass(frozen=True)
class Cell:
    """A worksheet cell resolved once at read time.

    ``kind`` decides which decoding strategy applies; nothing downstream
    inspects the raw Python type again.
    """

    kind: CellKind
    value: object = None

    @property
    def is_empty(self) -> bool:
        return self.kind == "empty"


EMPTY = Cell("empty")


def read_cell(raw: object) -> Cell:
    if raw is None or raw is pd.NA or raw is pd.NaT:
        return EMPTY
    if isinstance(raw, (bool, np.bool_)):
        return Cell("text", str(bool(raw)).lower())
    if isinstance(raw, (datetime, date)):
        return Cell("date", raw)
    if isinstance(raw, np.datetime64):
        ts = pd.Timestamp(raw)
        return EMPTY if pd.isna(ts) else Cell("date", ts.to_pydatetime())
    if isinstance(raw, (int, float, np.integer, np.floating)):
        num = float(raw)
        if math.isnan(num):
            return EMPTY
        return Cell("number", num)
    text = str(raw)
    if text == "":
        return EMPTY
    return Cell("text", text)


def _format_number(num: float) -> str:
    if math.isfinite(num) and num.is_integer():
        return str(int(num))
    return repr(num)


def to_string(cell: Cell) -> Optional[str]:
    if cell.kind == "empty":
        return None
    if cell.kind == "number":
        # 10000.0 read from a numeric cell must compare equal to "10000"
        s = _format_number(cell.value)
    elif cell.kind == "date":
        s = _as_date(cell.value).isoformat()
    else:
        s = str(cell.value).strip()
    return s or None


def to_number(cell: Cell) -> Optional[float]:
    """Numeric coercion; anything present but unparsable becomes ``0.0``."""
    if cell.kind == "empty":
        return None
    if cell.kind == "number":
        num = cell.value
    elif cell.kind == "text":
        cleaned = _NUMBER_NOISE.sub("", str(cell.value))
        try:
            num = float(cleaned)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return float(num) if math.isfinite(num) else 0.0


def _as_date(value: object) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value  # type: ignore[return-value]


def excel_serial_to_date(serial: float) -> Optional[date]:
    """Decode a spreadsheet date serial using the 1900 epoch (time of day dropped)."""
    if not math.isfinite(serial) or serial < 1:
        return None
    try:
        decoded = from_excel(math.floor(serial))
    except (ValueError, OverflowError):
        return None
    if isinstance(decoded, datetime):
        return decoded.date()
    if isinstance(decoded, date):
        return decoded
    return None


def parse_date_text(text: str) -> Optional[date]:
    text = text.strip()
    if not text:
        return None
    ts = pd.to_datetime(text, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.date()


def to_date(cell: Cell) -> Optional[date]:
    if cell.kind == "empty":
        return None
    if cell.kind == "date":
        return _as_date(cell.value)
    if cell.kind == "number":
        return excel_serial_to_date(cell.value)
    return parse_date_text(str(cell.value))


def coerce(cell: Cell, value_type: ColumnType) -> object:
    if value_type == "string":
        return to_string(cell)
    if value_type == "number":
        return to_number(cell)
    if value_type == "date":
        return to_date(cell)
    raise ValueError(f"Unknown column type: {value_type}")
