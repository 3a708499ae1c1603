"""Runtime settings for the pipeline, cache and serving surface."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple


PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = PROJECT_ROOT
SOURCE_FILENAME = "Supplier_Info_2023to2025.xlsx"
CACHE_FILENAME = "cached_data.json"
FALLBACK_FILENAME = "dashboard_cache.json"

ENV_PREFIX = "SUPPLIER_"
DEFAULT_COMPARISON_YEARS = (2021, 2022, 2023, 2024, 2025)
POLICY_SELECTIONS = ("row", "batch")


def default_source_candidates(data_dir: Path, filename: str = SOURCE_FILENAME) -> Tuple[Path, ...]:
    return (
        data_dir / "public" / "data" / filename,
        data_dir / "data" / filename,
        data_dir / filename,
    )


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DATA_DIR
    source_candidates: Tuple[Path, ...] = field(default_factory=lambda: default_source_candidates(DATA_DIR))
    cache_path: Path = DATA_DIR / "public" / "data" / CACHE_FILENAME
    fallback_path: Path = DATA_DIR / "public" / "data" / FALLBACK_FILENAME

    top_vendor_limit: int = 10
    strict_business_unit: str = "10000"
    strict_po_type: str = "P2P"
    lenient_min_amount: float = 0.0
    policy_selection: str = "row"
    comparison_years: Tuple[int, ...] = DEFAULT_COMPARISON_YEARS

    rebuild_retries: int = 3
    rebuild_backoff_seconds: float = 2.0

    cors_origins: Tuple[str, ...] = ("*",)
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    api_base_url: str = "http://localhost:3001"
    client_timeout_seconds: float = 30.0
    client_retries: int = 6
    client_retry_delay_seconds: float = 5.0


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None


def _years(env: Mapping[str, str], name: str, default: Tuple[int, ...]) -> Tuple[int, ...]:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a comma-separated list of years, got {raw!r}") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from ``SUPPLIER_*`` environment variables on top of the defaults."""
    env = os.environ if env is None else env

    data_dir = Path(_get(env, "DATA_DIR") or DATA_DIR)
    source_file = _get(env, "SOURCE_FILE")
    if source_file:
        source_candidates: Tuple[Path, ...] = (Path(source_file),)
    else:
        source_candidates = default_source_candidates(data_dir)

    cache_path = Path(_get(env, "CACHE_PATH") or data_dir / "public" / "data" / CACHE_FILENAME)
    fallback_path = Path(_get(env, "FALLBACK_PATH") or data_dir / "public" / "data" / FALLBACK_FILENAME)

    policy_selection = (_get(env, "POLICY_SELECTION") or "row").lower()
    if policy_selection not in POLICY_SELECTIONS:
        raise ValueError(f"{ENV_PREFIX}POLICY_SELECTION must be one of {POLICY_SELECTIONS}, got {policy_selection!r}")

    origins = _get(env, "CORS_ORIGINS")
    cors_origins = tuple(o.strip() for o in origins.split(",") if o.strip()) if origins else ("*",)

    return Settings(
        data_dir=data_dir,
        source_candidates=source_candidates,
        cache_path=cache_path,
        fallback_path=fallback_path,
        top_vendor_limit=_int(env, "TOP_VENDOR_LIMIT", 10),
        strict_business_unit=_get(env, "STRICT_BUSINESS_UNIT") or "10000",
        strict_po_type=_get(env, "STRICT_PO_TYPE") or "P2P",
        lenient_min_amount=_float(env, "LENIENT_MIN_AMOUNT", 0.0),
        policy_selection=policy_selection,
        comparison_years=_years(env, "COMPARISON_YEARS", DEFAULT_COMPARISON_YEARS),
        rebuild_retries=_int(env, "REBUILD_RETRIES", 3),
        rebuild_backoff_seconds=_float(env, "REBUILD_BACKOFF_SECONDS", 2.0),
        cors_origins=cors_origins,
        host=_get(env, "HOST") or "0.0.0.0",
        port=_int(env, "PORT", 3001),
        log_level=(_get(env, "LOG_LEVEL") or "INFO").upper(),
        api_base_url=_get(env, "API_BASE_URL") or "http://localhost:3001",
        client_timeout_seconds=_float(env, "CLIENT_TIMEOUT_SECONDS", 30.0),
        client_retries=_int(env, "CLIENT_RETRIES", 6),
        client_retry_delay_seconds=_float(env, "CLIENT_RETRY_DELAY_SECONDS", 5.0),
    )
