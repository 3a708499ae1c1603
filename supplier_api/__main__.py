"""Command line entry point: ``python -m supplier_api {serve,rebuild,fetch}``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import uvicorn

from supplier_core.cache import CacheManager, CacheState
from supplier_core.config import load_settings


logger = logging.getLogger("supplier_api")


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def serve(args: argparse.Namespace) -> int:
    from supplier_api.main import create_app

    settings = load_settings()
    _configure_logging(settings.log_level)
    host = args.host or settings.host
    port = args.port or settings.port

    cache = CacheManager(settings)
    cache.load()
    logger.info("Starting Supplier Dashboard API on %s:%s (cache %s)", host, port, cache.state.value)
    uvicorn.run(create_app(settings, cache), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def rebuild(args: argparse.Namespace) -> int:
    settings = load_settings()
    _configure_logging(settings.log_level)

    cache = CacheManager(settings)
    snap = cache.rebuild_with_retries(attempts=args.attempts)
    if snap.state is not CacheState.LOADED:
        logger.error("Rebuild failed: %s", snap.error)
        return 1

    _print_metrics(snap.result.metrics.to_dict())
    if snap.report and snap.report.degraded:
        print(f"missing required columns: {', '.join(snap.report.missing_required)}")
    return 0


def fetch(args: argparse.Namespace) -> int:
    from supplier_api.client import DashboardApiClient

    settings = load_settings()
    _configure_logging(settings.log_level)
    client = DashboardApiClient.from_settings(settings)
    if args.base_url:
        client.base_url = args.base_url.rstrip("/")

    outcome = client.load_with_retries() if args.wait else client.fetch_dashboard_data()
    print(f"source: {outcome.source}")
    if outcome.note:
        print(f"note: {outcome.note}")
    _print_metrics(outcome.result.metrics.to_dict())
    return 0 if outcome.from_api else 1


def _print_metrics(metrics: dict) -> None:
    width = max(len(k) for k in metrics)
    for key, value in metrics.items():
        print(f"{key.ljust(width)}  {value}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="supplier_api", description="Procurement dashboard API")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Load the cache, then serve the HTTP API")
    p_serve.add_argument("--host", type=str, default=None)
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.set_defaults(func=serve)

    p_rebuild = sub.add_parser("rebuild", help="Re-extract the spreadsheet and rewrite the cache artifact")
    p_rebuild.add_argument("--attempts", type=int, default=None, help="Retry count (default from settings)")
    p_rebuild.set_defaults(func=rebuild)

    p_fetch = sub.add_parser("fetch", help="Query a running API and print its metrics (falls back offline)")
    p_fetch.add_argument("--base-url", type=str, default=None)
    p_fetch.add_argument("--wait", action="store_true", help="Poll a cold server before falling back")
    p_fetch.set_defaults(func=fetch)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
