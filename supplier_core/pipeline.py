from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from supplier_core.config import Settings
from supplier_core.extract import ExtractionReport, PolicyConfig, extract_from_file, locate_source
from supplier_core.metrics import (
    MetricsSummary,
    VendorSpend,
    operating_units,
    summarize_metrics,
    top_vendors_by_spend,
)
from supplier_core.records import PurchaseOrderRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregateResult:
    """One extraction pass: the records plus metrics derived from them."""

    purchase_orders: Tuple[PurchaseOrderRecord, ...]
    operating_units: Tuple[Optional[str], ...]
    top_vendors_by_spend: Tuple[VendorSpend, ...]
    metrics: MetricsSummary

    def recomputed_metrics(self) -> MetricsSummary:
        return summarize_metrics(self.purchase_orders)


def build_aggregate(records: Sequence[PurchaseOrderRecord], top_n: int = 10) -> AggregateResult:
    records = tuple(records)
    return AggregateResult(
        purchase_orders=records,
        operating_units=tuple(operating_units(records)),
        top_vendors_by_spend=tuple(top_vendors_by_spend(records, top_n)),
        metrics=summarize_metrics(records),
    )


@dataclass(frozen=True)
class PipelineRun:
    result: AggregateResult
    report: ExtractionReport
    source: Path


def run_pipeline(settings: Settings, source: Optional[Path] = None) -> PipelineRun:
    """Locate the spreadsheet, extract records and aggregate them."""
    path = source or locate_source(settings.source_candidates)
    logger.info("Reading source spreadsheet %s", path)
    extraction = extract_from_file(path, PolicyConfig.from_settings(settings))
    result = build_aggregate(extraction.records, settings.top_vendor_limit)
    logger.info("Metrics: %s", result.metrics.to_dict())
    return PipelineRun(result=result, report=extraction.report, source=path)
