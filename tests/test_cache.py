from datetime import date

import pytest

from supplier_core.artifact import read_artifact, write_artifact
from supplier_core.cache import CacheManager, CacheState
from supplier_core.errors import CacheNotReady, SourceUnavailable
from supplier_core.fallback import fallback_aggregate
from supplier_core.pipeline import build_aggregate

from conftest import FakePipeline, make_record


@pytest.fixture
def sleeps():
    return []


def _manager(settings, pipeline, sleeps):
    return CacheManager(settings, pipeline=pipeline, sleep=sleeps.append)


def test_starts_empty_and_refuses_reads(settings, sleeps):
    cache = _manager(settings, FakePipeline(), sleeps)
    assert cache.state is CacheState.EMPTY
    with pytest.raises(CacheNotReady):
        cache.get()


def test_cold_start_extracts_and_persists(settings, sleeps):
    pipeline = FakePipeline([make_record("A"), make_record("B")])
    cache = _manager(settings, pipeline, sleeps)

    snap = cache.load()
    assert snap.state is CacheState.LOADED
    assert snap.origin == "source"
    assert snap.report.accepted == 2
    assert settings.cache_path.exists()
    assert read_artifact(settings.cache_path).metrics.active_pos == 2


def test_warm_start_reads_artifact_without_extracting(settings, sleeps):
    write_artifact(settings.cache_path, build_aggregate([make_record("Cached")]))
    pipeline = FakePipeline()
    cache = _manager(settings, pipeline, sleeps)

    snap = cache.load()
    assert snap.state is CacheState.LOADED
    assert snap.origin == "artifact"
    assert pipeline.calls == 0
    assert snap.result.purchase_orders[0].vendor_name == "Cached"


def test_load_is_one_shot(settings, sleeps):
    pipeline = FakePipeline([make_record("A")])
    cache = _manager(settings, pipeline, sleeps)
    first = cache.load()
    assert cache.load() is first
    assert pipeline.calls == 1


def test_unreadable_artifact_falls_through_to_extraction(settings, sleeps):
    settings.cache_path.parent.mkdir(parents=True)
    settings.cache_path.write_text('{"schemaVersion": 0}', encoding="utf-8")
    cache = _manager(settings, FakePipeline([make_record("Fresh")]), sleeps)

    snap = cache.load()
    assert snap.origin == "source"
    assert read_artifact(settings.cache_path).purchase_orders[0].vendor_name == "Fresh"


def test_failed_cold_start_serves_fallback(settings, sleeps):
    cache = _manager(settings, FakePipeline(SourceUnavailable("no spreadsheet")), sleeps)

    snap = cache.load()
    assert snap.state is CacheState.STALE_FALLBACK
    assert snap.is_fallback
    assert snap.error == "no spreadsheet"
    assert snap.result == fallback_aggregate(settings.top_vendor_limit)
    assert not settings.cache_path.exists()


def test_fallback_dataset_is_consistent():
    result = fallback_aggregate()
    assert result.metrics == result.recomputed_metrics()
    assert result.metrics.active_pos > 0
    assert {r.date.year for r in result.purchase_orders} >= {2023, 2024}


def test_rebuild_recovers_from_fallback(settings, sleeps):
    cache = _manager(settings, FakePipeline(RuntimeError("corrupt sheet"), [make_record("A")]), sleeps)
    assert cache.load().state is CacheState.STALE_FALLBACK

    snap = cache.rebuild()
    assert snap.state is CacheState.LOADED
    assert snap.error is None


def test_failed_rebuild_keeps_loaded_data(settings, sleeps):
    cache = _manager(settings, FakePipeline([make_record("A")], SourceUnavailable("gone")), sleeps)
    loaded = cache.load()

    snap = cache.rebuild()
    assert snap is loaded
    assert snap.state is CacheState.LOADED


def test_rebuild_replaces_snapshot_wholesale(settings, sleeps):
    cache = _manager(settings, FakePipeline([make_record("A")], [make_record("B", po_date=date(2024, 1, 1))]), sleeps)
    before = cache.load()
    after = cache.rebuild()
    assert after is not before
    assert before.result.purchase_orders[0].vendor_name == "A"
    assert after.result.purchase_orders[0].vendor_name == "B"
    assert cache.get() is after


class TestRetries:
    def test_backs_off_exponentially_until_success(self, settings, sleeps):
        pipeline = FakePipeline(SourceUnavailable("locked"), SourceUnavailable("locked"), [make_record("A")])
        cache = _manager(settings, pipeline, sleeps)

        snap = cache.rebuild_with_retries()
        assert snap.state is CacheState.LOADED
        assert pipeline.calls == 3
        assert sleeps == [0.5, 1.0]

    def test_gives_up_after_attempts(self, settings, sleeps):
        pipeline = FakePipeline(*[SourceUnavailable("locked")] * 2)
        cache = _manager(settings, pipeline, sleeps)

        snap = cache.rebuild_with_retries(attempts=2, backoff=3.0)
        assert snap.state is CacheState.STALE_FALLBACK
        assert pipeline.calls == 2
        assert sleeps == [3.0]

    def test_no_sleep_after_first_success(self, settings, sleeps):
        cache = _manager(settings, FakePipeline([make_record("A")]), sleeps)
        cache.rebuild_with_retries(attempts=5)
        assert sleeps == []


def test_artifact_write_failure_still_publishes(settings, sleeps, monkeypatch):
    def refuse(path, result):
        raise PermissionError("read-only volume")

    monkeypatch.setattr("supplier_core.cache.write_artifact", refuse)
    cache = _manager(settings, FakePipeline([make_record("A")]), sleeps)
    assert cache.load().state is CacheState.LOADED


def test_real_pipeline_from_workbook(settings, sample_rows, write_workbook):
    write_workbook(settings.source_candidates[0], sample_rows)
    cache = CacheManager(settings)

    snap = cache.load()
    assert snap.state is CacheState.LOADED
    assert snap.result.metrics.to_dict() == {
        "totalVendors": 2,
        "totalOperatingUnits": 2,
        "totalProcurement": 1950.0,
        "activePOs": 3,
        "avgSpendPerVendor": 975.0,
    }
    assert [v.vendor for v in snap.result.top_vendors_by_spend] == ["Alpha Trading", "Gamma Co"]
