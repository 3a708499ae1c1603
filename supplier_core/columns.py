"""Spreadsheet header -> record field mapping.

The mapping list is part of the persisted artifact contract: renaming a field
or flipping ``required`` changes which rows survive extraction, so bump
``COLUMN_MAPPING_VERSION`` whenever it changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple

import pandas as pd


logger = logging.getLogger(__name__)

ColumnType = Literal["string", "number", "date"]

COLUMN_MAPPING_VERSION = 1


@dataclass(frozen=True)
class ColumnMapping:
    source_header: str
    field_name: str
    value_type: ColumnType
    required: bool = False

    @property
    def match_key(self) -> str:
        return normalize_header(self.source_header)


COLUMN_MAPPINGS: Tuple[ColumnMapping, ...] = (
    ColumnMapping("VENDOR ID", "id", "string", required=True),
    ColumnMapping("OPERATING UNIT", "operatingUnit", "string", required=True),
    ColumnMapping("BUSINESS UNIT", "businessUnit", "string"),
    ColumnMapping("VENDOR DESCR", "vendorName", "string", required=True),
    ColumnMapping("ACCOUNT", "account", "string", required=True),
    ColumnMapping("AMOUNT", "amount", "number", required=True),
    ColumnMapping("PO DATE", "date", "date", required=True),
    ColumnMapping("PO TYPE", "poType", "string"),
    ColumnMapping("MONTH", "month", "string"),
    ColumnMapping("YEAR", "year", "number"),
)


def normalize_header(value: object) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    s = str(value).strip().lower()
    return s or None


@dataclass(frozen=True)
class HeaderMap:
    """Resolved ``field -> column index`` lookup for one header row."""

    indices: Dict[str, int] = field(default_factory=dict)
    mappings: Tuple[ColumnMapping, ...] = COLUMN_MAPPINGS
    missing_required: Tuple[str, ...] = ()
    missing_optional: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.missing_required)

    def has(self, field_name: str) -> bool:
        return field_name in self.indices

    def mapped(self) -> List[Tuple[ColumnMapping, int]]:
        return [(m, self.indices[m.field_name]) for m in self.mappings if m.field_name in self.indices]


def map_headers(headers: Sequence[object], mappings: Sequence[ColumnMapping] = COLUMN_MAPPINGS) -> HeaderMap:
    """Match each mapping to the first unclaimed header with the same trimmed, lower-cased text.

    A column satisfies at most one mapping. Duplicate headers are left alone:
    the first one wins and later copies are simply unused.
    """
    keys = [normalize_header(h) for h in headers]
    claimed: set = set()
    indices: Dict[str, int] = {}
    missing_required: List[str] = []
    missing_optional: List[str] = []

    for mapping in mappings:
        found = None
        for idx, key in enumerate(keys):
            if idx in claimed or key is None:
                continue
            if key == mapping.match_key:
                found = idx
                break
        if found is None:
            (missing_required if mapping.required else missing_optional).append(mapping.source_header)
            continue
        claimed.add(found)
        indices[mapping.field_name] = found

    for header in missing_required:
        logger.warning('Required column "%s" not found', header)

    return HeaderMap(
        indices=indices,
        mappings=tuple(mappings),
        missing_required=tuple(missing_required),
        missing_optional=tuple(missing_optional),
    )
