"""Startup load, persistence and rebuild of the aggregate snapshot.

States: EMPTY (nothing loaded yet), LOADED (real data from the artifact or the
spreadsheet), STALE_FALLBACK (extraction failed; the placeholder dataset is
served). Readers always get a whole ``CacheSnapshot``; a rebuild publishes a
new snapshot by swapping one reference.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from supplier_core.artifact import read_artifact, write_artifact
from supplier_core.config import Settings
from supplier_core.errors import ArtifactSchemaError, CacheNotReady, SourceUnavailable
from supplier_core.extract import ExtractionReport
from supplier_core.fallback import fallback_aggregate
from supplier_core.pipeline import AggregateResult, PipelineRun, run_pipeline


logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    EMPTY = "EMPTY"
    LOADED = "LOADED"
    STALE_FALLBACK = "STALE_FALLBACK"


@dataclass(frozen=True)
class CacheSnapshot:
    state: CacheState
    result: Optional[AggregateResult] = None
    origin: str = "none"
    loaded_at: Optional[datetime] = None
    error: Optional[str] = None
    report: Optional[ExtractionReport] = None

    @property
    def is_fallback(self) -> bool:
        return self.state is CacheState.STALE_FALLBACK


class CacheManager:
    def __init__(
        self,
        settings: Settings,
        *,
        pipeline: Callable[[Settings], PipelineRun] = run_pipeline,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._pipeline = pipeline
        self._sleep = sleep
        self._snapshot = CacheSnapshot(CacheState.EMPTY)
        self._rebuild_lock = threading.Lock()

    @property
    def state(self) -> CacheState:
        return self._snapshot.state

    @property
    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    def get(self) -> CacheSnapshot:
        snap = self._snapshot
        if snap.state is CacheState.EMPTY:
            raise CacheNotReady("cache has not been loaded; call load() before serving")
        return snap

    def load(self) -> CacheSnapshot:
        """One-shot startup load: persisted artifact first, then the spreadsheet, then fallback."""
        with self._rebuild_lock:
            if self._snapshot.state is not CacheState.EMPTY:
                return self._snapshot

            path = self._settings.cache_path
            try:
                result = read_artifact(path)
            except SourceUnavailable:
                logger.info("No cached artifact at %s; extracting from source", path)
            except ArtifactSchemaError as exc:
                logger.warning("Ignoring unreadable cache artifact %s: %s", path, exc)
            else:
                logger.info(
                    "Loaded %d purchase orders (%d vendors) from cache %s",
                    result.metrics.active_pos,
                    result.metrics.total_vendors,
                    path,
                )
                self._publish(CacheState.LOADED, result, origin="artifact")
                return self._snapshot

            self._attempt_extract()
            return self._snapshot

    def rebuild(self) -> CacheSnapshot:
        """Explicit re-extraction from the source; a failure keeps real data already loaded."""
        with self._rebuild_lock:
            self._attempt_extract()
            return self._snapshot

    def rebuild_with_retries(self, attempts: Optional[int] = None, backoff: Optional[float] = None) -> CacheSnapshot:
        attempts = max(1, attempts if attempts is not None else self._settings.rebuild_retries)
        backoff = self._settings.rebuild_backoff_seconds if backoff is None else backoff
        with self._rebuild_lock:
            for attempt in range(1, attempts + 1):
                if self._attempt_extract() is None:
                    break
                if attempt < attempts:
                    delay = backoff * 2 ** (attempt - 1)
                    logger.info("Rebuild attempt %d/%d failed; retrying in %.1fs", attempt, attempts, delay)
                    self._sleep(delay)
            return self._snapshot

    # ---------------- internals ----------------
    def _attempt_extract(self) -> Optional[Exception]:
        try:
            run = self._pipeline(self._settings)
        except Exception as exc:
            self._on_extract_failure(exc)
            return exc

        try:
            write_artifact(self._settings.cache_path, run.result)
            logger.info("Cached aggregate to %s", self._settings.cache_path)
        except OSError as exc:
            logger.warning("Could not save cache artifact %s: %s", self._settings.cache_path, exc)

        self._publish(CacheState.LOADED, run.result, origin="source", report=run.report)
        return None

    def _on_extract_failure(self, exc: Exception) -> None:
        if isinstance(exc, SourceUnavailable):
            logger.warning("Source unavailable: %s", exc)
        else:
            logger.exception("Extraction failed")

        if self._snapshot.state is CacheState.LOADED:
            logger.warning("Keeping previously loaded data after failed rebuild")
            return
        self._publish(
            CacheState.STALE_FALLBACK,
            fallback_aggregate(self._settings.top_vendor_limit),
            origin="fallback",
            error=str(exc),
        )

    def _publish(
        self,
        state: CacheState,
        result: AggregateResult,
        *,
        origin: str,
        error: Optional[str] = None,
        report: Optional[ExtractionReport] = None,
    ) -> None:
        self._snapshot = CacheSnapshot(
            state=state,
            result=result,
            origin=origin,
            loaded_at=datetime.now(timezone.utc),
            error=error,
            report=report,
        )
        logger.info("Cache state -> %s (%s)", state.value, origin)
