from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
import logging
import math
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from supplier_api.schemas import DashboardEnvelope, Envelope, HealthResponse, RebuildResponse
from supplier_core.artifact import operating_unit_entry, to_document
from supplier_core.cache import CacheManager, CacheSnapshot
from supplier_core.comparison import compare_years, normalize_years, vendor_rows
from supplier_core.config import Settings, load_settings
from supplier_core.errors import CacheNotReady
from supplier_core.fallback import FALLBACK_NOTE, fallback_aggregate
from supplier_core.filters import apply_filters, normalize_filters
from supplier_core.metrics import (
    latest_year,
    procurement_by_operating_unit,
    recent_orders,
    summarize_metrics,
    time_series_by_month,
)


logger = logging.getLogger(__name__)

STILL_LOADING = "Data is still loading, please try again in a moment"

router = APIRouter()


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception) -> JSONResponse:
    return _json({"success": False, "error": str(exc), "type": type(exc).__name__}, status_code=500)


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _ok(snap: CacheSnapshot, data: Any) -> JSONResponse:
    fields: Dict[str, Any] = {"success": True, "data": data}
    if snap.is_fallback:
        fields["note"] = FALLBACK_NOTE
    return _json(Envelope(**fields).model_dump(exclude_unset=True))


def _split_years(years: Optional[List[str]]) -> tuple:
    if not years:
        return ()
    return normalize_years(part for y in years for part in y.split(","))


# ---------------- Contract endpoints ----------------
@router.get("/health")
def health():
    return _json(HealthResponse(timestamp=datetime.now(timezone.utc).isoformat()).model_dump())


@router.get("/dashboard-data")
def dashboard_data(cache: CacheManager = Depends(get_cache), settings: Settings = Depends(get_settings)):
    try:
        snap = cache.get()
        fields: Dict[str, Any] = {"success": True, "data": to_document(snap.result), "state": snap.state.value}
        if snap.is_fallback:
            fields["note"] = FALLBACK_NOTE
    except Exception as exc:
        logger.exception("dashboard_data failed")
        fields = {
            "success": False,
            "data": to_document(fallback_aggregate(settings.top_vendor_limit)),
            "error": STILL_LOADING if isinstance(exc, CacheNotReady) else str(exc),
            "note": FALLBACK_NOTE,
        }
    return _json(DashboardEnvelope(**fields).model_dump(exclude_unset=True))


@router.get("/comparison-data")
def comparison_data(
    years: Optional[List[str]] = Query(default=None),
    vendor_limit: Optional[int] = Query(default=None, alias="vendorLimit", ge=1),
    unit_limit: Optional[int] = Query(default=None, alias="unitLimit", ge=1),
    cache: CacheManager = Depends(get_cache),
    settings: Settings = Depends(get_settings),
):
    try:
        snap = cache.get()
    except CacheNotReady:
        return _json(Envelope(success=False, data=None, error=STILL_LOADING).model_dump(exclude_unset=True))
    try:
        wanted = _split_years(years) or settings.comparison_years
        result = compare_years(snap.result.purchase_orders, wanted)
        return _ok(snap, result.to_dict(vendor_limit=vendor_limit, unit_limit=unit_limit))
    except Exception as exc:
        logger.exception("comparison_data failed")
        return _json(Envelope(success=False, data=None, error=str(exc)).model_dump(exclude_unset=True), status_code=500)


# ---------------- Breakdown endpoints ----------------
@router.get("/dashboard-metrics")
def dashboard_metrics(
    operating_unit: Optional[str] = Query(default=None, alias="operatingUnit"),
    year: Optional[int] = Query(default=None),
    cache: CacheManager = Depends(get_cache),
):
    try:
        snap = cache.get()
        f = normalize_filters({"operating_unit": operating_unit, "year": year})
        if f.is_empty:
            metrics = snap.result.metrics
        else:
            metrics = summarize_metrics(apply_filters(snap.result.purchase_orders, f))
        return _ok(snap, {"filters": asdict(f), "metrics": metrics.to_dict()})
    except Exception as exc:
        logger.exception("dashboard_metrics failed")
        return _error(exc)


@router.get("/procurement-by-unit")
def procurement_by_unit(
    year: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    cache: CacheManager = Depends(get_cache),
):
    try:
        snap = cache.get()
        f = normalize_filters({"year": year, "limit": limit})
        records = apply_filters(snap.result.purchase_orders, f)
        return _ok(snap, procurement_by_operating_unit(records, limit=f.limit))
    except Exception as exc:
        logger.exception("procurement_by_unit failed")
        return _error(exc)


@router.get("/timeseries")
def timeseries(
    year: Optional[int] = Query(default=None),
    operating_unit: Optional[str] = Query(default=None, alias="operatingUnit"),
    cache: CacheManager = Depends(get_cache),
):
    try:
        snap = cache.get()
        f = normalize_filters({"operating_unit": operating_unit})
        records = apply_filters(snap.result.purchase_orders, f)
        target = year if year is not None else latest_year(snap.result.purchase_orders)
        if target is None:
            target = datetime.now(timezone.utc).year
        return _ok(snap, time_series_by_month(records, target))
    except Exception as exc:
        logger.exception("timeseries failed")
        return _error(exc)


@router.get("/recent-orders")
def recent(
    operating_unit: Optional[str] = Query(default=None, alias="operatingUnit"),
    year: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=10),
    cache: CacheManager = Depends(get_cache),
):
    try:
        snap = cache.get()
        f = normalize_filters({"operating_unit": operating_unit, "year": year, "limit": limit})
        records = apply_filters(snap.result.purchase_orders, f)
        return _ok(snap, [r.to_dict() for r in recent_orders(records, f.limit)])
    except Exception as exc:
        logger.exception("recent_orders failed")
        return _error(exc)


@router.get("/top-vendors")
def top_vendors(limit: int = Query(default=10, ge=1), cache: CacheManager = Depends(get_cache)):
    try:
        snap = cache.get()
        return _ok(snap, [v.to_dict() for v in snap.result.top_vendors_by_spend[:limit]])
    except Exception as exc:
        logger.exception("top_vendors failed")
        return _error(exc)


@router.get("/operating-units")
def list_operating_units(cache: CacheManager = Depends(get_cache)):
    try:
        snap = cache.get()
        return _ok(snap, [operating_unit_entry(code) for code in snap.result.operating_units])
    except Exception as exc:
        logger.exception("operating_units failed")
        return _error(exc)


@router.get("/export/{page}")
def export_page(page: str, cache: CacheManager = Depends(get_cache), settings: Settings = Depends(get_settings)):
    try:
        result = cache.get().result
    except CacheNotReady as exc:
        return _error(exc)

    filename = f"{page}.csv"
    if page == "purchase-orders":
        export_df = pd.DataFrame([r.to_dict() for r in result.purchase_orders])
    elif page == "comparison":
        export_df = pd.DataFrame(vendor_rows(compare_years(result.purchase_orders, settings.comparison_years)))
    elif page == "top-vendors":
        export_df = pd.DataFrame([v.to_dict() for v in result.top_vendors_by_spend])
    elif page == "procurement-by-unit":
        export_df = pd.DataFrame(procurement_by_operating_unit(result.purchase_orders))
    else:
        export_df = pd.DataFrame()

    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})


@router.post("/cache/rebuild")
def rebuild_cache(cache: CacheManager = Depends(get_cache)):
    before = cache.snapshot
    after = cache.rebuild()
    rebuilt = after is not before and after.origin == "source"
    error = None
    if not rebuilt:
        error = after.error or "rebuild failed; previous data kept"
    payload = RebuildResponse(
        success=rebuilt,
        state=after.state.value,
        origin=after.origin,
        metrics=after.result.metrics.to_dict() if after.result else {},
        report=asdict(after.report) if after.report and rebuilt else None,
        error=error,
    )
    return _json(payload.model_dump())


# ---------------- App factory ----------------
def create_app(settings: Optional[Settings] = None, cache: Optional[CacheManager] = None) -> FastAPI:
    settings = settings or load_settings()
    cache = cache or CacheManager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Extraction finishes (or falls back) before the first request is accepted.
        cache.load()
        yield

    app = FastAPI(title="Supplier Dashboard API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = cache

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.options("/{full_path:path}")
    def preflight(full_path: str):
        return Response(status_code=200)

    app.include_router(router)
    app.include_router(router, prefix="/api")
    return app


app = create_app()
