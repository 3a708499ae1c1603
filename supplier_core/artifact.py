"""The persisted aggregate document.

Other processes read this file directly, so its field names and nesting are a
stable contract: ``{schemaVersion, purchaseOrders, vendors, operatingUnits,
topVendorsBySpend, metrics}``. Documents with any other ``schemaVersion`` are
rejected rather than guessed at, and so are documents extracted under a
different ``columnMappingVersion``.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, ValidationError
from pydantic.alias_generators import to_camel

from supplier_core.columns import COLUMN_MAPPING_VERSION
from supplier_core.errors import ArtifactSchemaError, SourceUnavailable
from supplier_core.metrics import MetricsSummary, VendorSpend
from supplier_core.pipeline import AggregateResult
from supplier_core.records import PurchaseOrderRecord


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class _ArtifactModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


class PurchaseOrderModel(_ArtifactModel):
    id: Optional[str] = None
    operating_unit: Optional[str] = None
    business_unit: Optional[str] = None
    vendor_name: str = Field(min_length=1)
    account: Optional[str] = None
    amount: FiniteFloat
    date: dt.date
    po_type: Optional[str] = None
    month: Optional[str] = None
    year: Optional[int] = None
    row_index: int = Field(default=0, alias="_rowIndex")

    def to_record(self) -> PurchaseOrderRecord:
        return PurchaseOrderRecord(
            vendor_name=self.vendor_name,
            amount=float(self.amount),
            date=self.date,
            row_index=self.row_index,
            id=self.id,
            operating_unit=self.operating_unit,
            business_unit=self.business_unit,
            account=self.account,
            po_type=self.po_type,
            month=self.month,
            year=self.year,
        )


class OperatingUnitModel(_ArtifactModel):
    id: Optional[str] = None
    name: str
    code: Optional[str] = None


class VendorSpendModel(_ArtifactModel):
    vendor: str
    amount: FiniteFloat


class MetricsModel(_ArtifactModel):
    total_vendors: int = Field(ge=0)
    total_operating_units: int = Field(ge=0)
    total_procurement: FiniteFloat
    active_pos: int = Field(ge=0, alias="activePOs")
    avg_spend_per_vendor: FiniteFloat = 0.0


class AggregateArtifact(_ArtifactModel):
    schema_version: Literal[1]
    column_mapping_version: int
    purchase_orders: List[PurchaseOrderModel]
    vendors: List[Any] = Field(default_factory=list)
    operating_units: List[OperatingUnitModel]
    top_vendors_by_spend: List[VendorSpendModel]
    metrics: MetricsModel


def operating_unit_entry(code: Optional[str]) -> Dict[str, Any]:
    return {"id": code, "name": f"Operating Unit {code}", "code": code}


def to_document(result: AggregateResult) -> Dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "columnMappingVersion": COLUMN_MAPPING_VERSION,
        "purchaseOrders": [r.to_dict() for r in result.purchase_orders],
        "vendors": [],
        "operatingUnits": [operating_unit_entry(code) for code in result.operating_units],
        "topVendorsBySpend": [v.to_dict() for v in result.top_vendors_by_spend],
        "metrics": result.metrics.to_dict(),
    }


def from_document(document: Any) -> AggregateResult:
    """Validate a loaded document and rebuild the aggregate from it.

    Stored metrics are kept only when they match a recomputation from the
    stored records.
    """
    try:
        artifact = AggregateArtifact.model_validate(document)
    except ValidationError as exc:
        version = document.get("schemaVersion") if isinstance(document, dict) else None
        raise ArtifactSchemaError(f"artifact (schemaVersion={version!r}) failed validation: {exc}") from exc
    if artifact.column_mapping_version != COLUMN_MAPPING_VERSION:
        raise ArtifactSchemaError(
            f"artifact was extracted with column mapping v{artifact.column_mapping_version}, "
            f"current is v{COLUMN_MAPPING_VERSION}"
        )

    stored = artifact.metrics
    result = AggregateResult(
        purchase_orders=tuple(po.to_record() for po in artifact.purchase_orders),
        operating_units=tuple(u.code for u in artifact.operating_units),
        top_vendors_by_spend=tuple(VendorSpend(v.vendor, float(v.amount)) for v in artifact.top_vendors_by_spend),
        metrics=MetricsSummary(
            total_vendors=stored.total_vendors,
            total_operating_units=stored.total_operating_units,
            total_procurement=float(stored.total_procurement),
            active_pos=stored.active_pos,
            avg_spend_per_vendor=float(stored.avg_spend_per_vendor),
        ),
    )
    recomputed = result.recomputed_metrics()
    if recomputed != result.metrics:
        logger.warning("Stored metrics disagree with records; using recomputed metrics %s", recomputed.to_dict())
        result = AggregateResult(
            purchase_orders=result.purchase_orders,
            operating_units=result.operating_units,
            top_vendors_by_spend=result.top_vendors_by_spend,
            metrics=recomputed,
        )
    return result


def read_artifact(path: Path) -> AggregateResult:
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError:
        raise SourceUnavailable(f"no artifact at {path}") from None
    except OSError as exc:
        raise SourceUnavailable(f"could not read artifact {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ArtifactSchemaError(f"artifact {path} is not valid JSON: {exc}") from exc
    return from_document(document)


def _target_mode(path: Path) -> int:
    """Mode for the replacement file: the existing target's, else ``0o666`` minus the umask."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_artifact(path: Path, result: AggregateResult) -> None:
    """Write to a temp file in the same directory, fsync, then ``os.replace`` over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_name = tempfile.mkstemp(prefix=f"{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as temp_file:
            json.dump(to_document(result), temp_file, ensure_ascii=False, indent=2)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.chmod(temp_name, _target_mode(path))
        os.replace(temp_name, path)
    finally:
        Path(temp_name).unlink(missing_ok=True)
