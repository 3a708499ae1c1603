from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from supplier_api.client import DashboardApiClient
from supplier_core.artifact import to_document, write_artifact
from supplier_core.fallback import FALLBACK_NOTE
from supplier_core.pipeline import build_aggregate

from conftest import make_record


def _response(body, status=200):
    response = MagicMock()
    response.json.return_value = body
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Server Error")
    return response


@pytest.fixture
def live_document():
    return to_document(build_aggregate([make_record("Live", 500.0), make_record("Other", 100.0, po_date=date(2024, 2, 2))]))


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def sleeps():
    return []


def _client(session, sleeps, fallback_path=None, retries=3):
    return DashboardApiClient(
        "http://api.local/",
        timeout=30,
        fallback_path=fallback_path,
        retries=retries,
        retry_delay=5,
        session=session,
        sleep=sleeps.append,
    )


def test_success_uses_api_payload(session, sleeps, live_document):
    session.get.return_value = _response({"success": True, "data": live_document})
    outcome = _client(session, sleeps).fetch_dashboard_data()

    assert outcome.from_api
    assert outcome.note is None
    assert outcome.result.metrics.total_procurement == 600.0
    session.get.assert_called_once()
    args, kwargs = session.get.call_args
    assert args[0] == "http://api.local/api/dashboard-data"
    assert kwargs["timeout"] == 30


def test_server_fallback_note_is_passed_through(session, sleeps, live_document):
    session.get.return_value = _response({"success": True, "data": live_document, "note": FALLBACK_NOTE})
    outcome = _client(session, sleeps).fetch_dashboard_data()
    assert outcome.from_api
    assert outcome.note == FALLBACK_NOTE


def test_timeout_falls_back_to_static_copy(session, sleeps, tmp_path):
    static = tmp_path / "dashboard_cache.json"
    write_artifact(static, build_aggregate([make_record("Static")]))
    session.get.side_effect = requests.Timeout("read timed out")

    outcome = _client(session, sleeps, fallback_path=static).fetch_dashboard_data()
    assert outcome.source == "static"
    assert outcome.error == "read timed out"
    assert outcome.result.purchase_orders[0].vendor_name == "Static"


def test_missing_static_copy_falls_back_to_sample_data(session, sleeps, tmp_path):
    session.get.side_effect = requests.ConnectionError("connection refused")
    outcome = _client(session, sleeps, fallback_path=tmp_path / "absent.json").fetch_dashboard_data()
    assert outcome.source == "synthetic"
    assert outcome.note == FALLBACK_NOTE
    assert outcome.result.purchase_orders


def test_error_status_is_transient(session, sleeps):
    session.get.return_value = _response({}, status=503)
    assert _client(session, sleeps).fetch_dashboard_data().source == "synthetic"


def test_unsuccessful_body_falls_back(session, sleeps):
    session.get.return_value = _response({"success": False, "data": None, "error": "Data is still loading"})
    outcome = _client(session, sleeps).fetch_dashboard_data()
    assert outcome.source == "synthetic"
    assert outcome.error == "Data is still loading"


def test_invalid_payload_falls_back(session, sleeps):
    session.get.return_value = _response({"success": True, "data": {"purchaseOrders": "nope"}})
    assert _client(session, sleeps).fetch_dashboard_data().source == "synthetic"


@pytest.mark.parametrize("body", [[{"success": True}], "ok", None])
def test_non_object_body_falls_back(session, sleeps, body):
    session.get.return_value = _response(body)
    outcome = _client(session, sleeps).fetch_dashboard_data()
    assert outcome.source == "synthetic"
    assert outcome.error == "API returned a non-object body"


class TestLoadWithRetries:
    def test_polls_until_data_arrives(self, session, sleeps, live_document):
        session.get.side_effect = [
            requests.ConnectionError("refused"),
            _response({"success": False, "error": "Data is still loading"}),
            _response({"success": True, "data": live_document}),
        ]
        outcome = _client(session, sleeps).load_with_retries()
        assert outcome.from_api
        assert session.get.call_count == 3
        assert sleeps == [5, 5]

    def test_gives_up_after_retries(self, session, sleeps):
        session.get.side_effect = requests.Timeout("timed out")
        outcome = _client(session, sleeps, retries=4).load_with_retries()
        assert outcome.source == "synthetic"
        assert session.get.call_count == 4
        assert len(sleeps) == 3


class TestComparison:
    def test_api_body_returned_as_is(self, session, sleeps):
        body = {"success": True, "data": {"years": [2023, 2024], "vendorPresence": {}, "unitCountsByYear": {}}}
        session.get.return_value = _response(body)
        assert _client(session, sleeps).fetch_comparison_data([2023, 2024]) == body
        assert session.get.call_args.kwargs["params"] == {"years": [2023, 2024]}

    def test_non_object_comparison_body_is_computed_locally(self, session, sleeps):
        session.get.return_value = _response([1, 2, 3])
        body = _client(session, sleeps).fetch_comparison_data([2023, 2024])
        assert body["success"] is True
        assert body["error"] == "API returned a non-object body"
        assert body["data"]["years"] == [2023, 2024]

    def test_offline_comparison_is_computed_locally(self, session, sleeps):
        session.get.side_effect = requests.ConnectionError("refused")
        body = _client(session, sleeps).fetch_comparison_data([2023, 2024])
        assert body["success"] is True
        assert body["note"] == FALLBACK_NOTE
        assert body["data"]["years"] == [2023, 2024]
        assert body["data"]["vendorPresence"]
        assert set(body["data"]["summary"]) >= {"sameVendors", "vendorsLost", "vendorsNew"}


def test_from_settings(settings, session):
    client = DashboardApiClient.from_settings(settings, session=session)
    assert client.timeout == settings.client_timeout_seconds
    assert client.retries == settings.client_retries
    assert client.fallback_path == settings.fallback_path
