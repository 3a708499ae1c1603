"""Client for the dashboard API with offline fallback.

A timeout, refused connection or error status is treated as transient: the
client serves the static copy of the last known-good artifact, and only when
that is missing too, the built-in sample dataset.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import requests

from supplier_core.artifact import from_document, read_artifact
from supplier_core.comparison import compare_years
from supplier_core.config import Settings
from supplier_core.errors import ArtifactSchemaError, SourceUnavailable
from supplier_core.fallback import FALLBACK_NOTE, fallback_aggregate
from supplier_core.pipeline import AggregateResult


logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (requests.RequestException, ValueError)


@dataclass(frozen=True)
class ClientResult:
    result: AggregateResult
    source: str
    note: Optional[str] = None
    error: Optional[str] = None

    @property
    def from_api(self) -> bool:
        return self.source == "api"


class DashboardApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        *,
        timeout: float = 30.0,
        fallback_path: Optional[Path] = None,
        retries: int = 6,
        retry_delay: float = 5.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.fallback_path = fallback_path
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self._session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "DashboardApiClient":
        return cls(
            settings.api_base_url,
            timeout=settings.client_timeout_seconds,
            fallback_path=settings.fallback_path,
            retries=settings.client_retries,
            retry_delay=settings.client_retry_delay_seconds,
            **kwargs,
        )

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._session.get(
            f"{self.base_url}{path}",
            params=params,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    # ---------------- dashboard data ----------------
    def fetch_dashboard_data(self) -> ClientResult:
        try:
            body = self._get("/api/dashboard-data")
        except TRANSIENT_ERRORS as exc:
            logger.warning("Dashboard API unavailable (%s): %s", type(exc).__name__, exc)
            return self.offline_data(str(exc))
        return self._from_body(body)

    def load_with_retries(self) -> ClientResult:
        """Poll a cold server a bounded number of times before falling back."""
        last_error = ""
        for attempt in range(1, self.retries + 1):
            try:
                body = self._get("/api/dashboard-data")
            except TRANSIENT_ERRORS as exc:
                last_error = str(exc)
                logger.info("Attempt %d/%d failed: %s", attempt, self.retries, exc)
            else:
                outcome = self._from_body(body)
                if outcome.from_api and outcome.result.purchase_orders:
                    return outcome
                last_error = outcome.error or "API returned no purchase orders"
            if attempt < self.retries:
                self._sleep(self.retry_delay)
        return self.offline_data(last_error)

    def _from_body(self, body: Any) -> ClientResult:
        if not isinstance(body, dict):
            logger.error("API returned a %s body instead of an object", type(body).__name__)
            return self.offline_data("API returned a non-object body")
        if not body.get("success") or not body.get("data"):
            logger.error("API returned error: %s", body.get("error"))
            return self.offline_data(body.get("error") or "API returned no data")
        try:
            result = from_document(body["data"])
        except ArtifactSchemaError as exc:
            logger.error("API payload failed validation: %s", exc)
            return self.offline_data(str(exc))
        return ClientResult(result=result, source="api", note=body.get("note"))

    def offline_data(self, reason: str) -> ClientResult:
        if self.fallback_path is not None:
            try:
                result = read_artifact(self.fallback_path)
            except (SourceUnavailable, ArtifactSchemaError) as exc:
                logger.warning("Static fallback copy unusable: %s", exc)
            else:
                logger.info("Serving static copy %s", self.fallback_path)
                return ClientResult(result=result, source="static", note="Using last known-good copy", error=reason)
        return ClientResult(result=fallback_aggregate(), source="synthetic", note=FALLBACK_NOTE, error=reason)

    # ---------------- comparison data ----------------
    def fetch_comparison_data(self, years: Iterable[int]) -> Dict[str, Any]:
        years = list(years)
        try:
            body = self._get("/api/comparison-data", params={"years": years})
        except TRANSIENT_ERRORS as exc:
            logger.warning("Comparison API unavailable: %s", exc)
            body = {"success": False, "error": str(exc)}
        if not isinstance(body, dict):
            body = {"success": False, "error": "API returned a non-object body"}
        if body.get("success") and body.get("data"):
            return body

        offline = self.offline_data(body.get("error") or "API returned no data")
        return {
            "success": True,
            "data": compare_years(offline.result.purchase_orders, years).to_dict(),
            "note": offline.note,
            "error": offline.error,
        }
