"""
Tests for the IO layer: retrying HTTP helper, intervals.icu mapping,
oracle client, JSON serialization and JSONL stores.

Network calls go through a fake session; no request leaves the process.
"""

import json

import pytest
import requests

from interval_coach.core.advisory import OracleUnavailable
from interval_coach.core.coach import AthleteData, Coach
from interval_coach.core.config import OracleConfig, RetryConfig
from interval_coach.core.models import GoalEvent, LoadSample
from interval_coach.io.http import ProviderError, is_retryable, request_with_retry
from interval_coach.io.history_store import ProgressionStore, RecommendationLog
from interval_coach.io.oracle import HttpOracle
from interval_coach.io.provider import (
    IntervalsProvider,
    activity_from_icu,
    curve_from_icu,
    event_from_icu,
    gather,
    profile_from_icu,
    wellness_from_icu,
)
from interval_coach.io.serializers import (
    ValidationError,
    athlete_data_to_dict,
    dict_to_athlete_data,
    load_athlete_data,
    report_to_dict,
    save_athlete_data,
)


class FakeResponse:
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        if raw is not None:
            self.content = raw.encode()
        elif body is not None:
            self.content = json.dumps(body).encode()
        else:
            self.content = b""

    def json(self):
        return json.loads(self.content)


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.headers = {}
        self.auth = None

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RoutedSession(FakeSession):
    """Answers GETs by the last path segment of the URL."""

    def __init__(self, routes):
        super().__init__()
        self.routes = routes

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        key = url.rsplit("/", 1)[-1]
        outcome = self.routes.get(key, FakeResponse(404))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


RETRY = RetryConfig(attempts=3, base_delay=1.0, timeout=30.0)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep user catalog/config overrides out of the tests."""
    monkeypatch.setenv("HOME", str(tmp_path))


# =============================================================================
# Retry policy
# =============================================================================


class TestRequestWithRetry:
    def test_retryable_statuses(self):
        assert is_retryable(500)
        assert is_retryable(503)
        assert is_retryable(429)
        assert is_retryable(408)
        assert not is_retryable(404)
        assert not is_retryable(401)

    def test_server_error_then_success(self):
        sleeps = []
        session = FakeSession(FakeResponse(500), FakeResponse(200, {"ok": True}))
        response = request_with_retry(session, "GET", "https://x/y", retry=RETRY, sleep=sleeps.append)
        assert response.json() == {"ok": True}
        assert sleeps == [1.0]
        assert session.calls[0][2]["timeout"] == 30.0

    def test_client_error_fails_immediately(self):
        sleeps = []
        session = FakeSession(FakeResponse(404), FakeResponse(200))
        with pytest.raises(ProviderError) as exc_info:
            request_with_retry(session, "GET", "https://x/y", retry=RETRY, sleep=sleeps.append)
        assert exc_info.value.status_code == 404
        assert len(session.calls) == 1
        assert sleeps == []

    def test_rate_limit_is_retried(self):
        sleeps = []
        session = FakeSession(FakeResponse(429), FakeResponse(200))
        request_with_retry(session, "GET", "https://x/y", retry=RETRY, sleep=sleeps.append)
        assert len(session.calls) == 2

    def test_network_errors_exhaust_budget(self):
        sleeps = []
        session = FakeSession(*[requests.exceptions.ConnectionError("refused")] * 3)
        with pytest.raises(ProviderError) as exc_info:
            request_with_retry(session, "GET", "https://x/y", retry=RETRY, sleep=sleeps.append)
        assert exc_info.value.status_code is None
        assert sleeps == [1.0, 2.0]
        assert len(session.calls) == 3

    def test_explicit_timeout_kept(self):
        session = FakeSession(FakeResponse(200))
        request_with_retry(session, "GET", "https://x/y", retry=RETRY, sleep=lambda s: None, timeout=5)
        assert session.calls[0][2]["timeout"] == 5


# =============================================================================
# intervals.icu mapping
# =============================================================================


ACTIVITY = {
    "id": "i9001",
    "start_date_local": "2026-02-20T07:30:00",
    "icu_training_load": 85,
    "moving_time": 5400,
    "icu_zone_times": [
        {"id": "Z1", "secs": 600},
        {"id": "Z2", "secs": 3000},
        {"id": "Z4", "secs": 1200},
        {"id": "SS", "secs": 900},
        {"id": "Z7", "secs": 0},
    ],
}


class TestProviderMapping:
    def test_activity(self):
        sample, activity = activity_from_icu(ACTIVITY)
        assert sample == LoadSample("2026-02-20", 85.0)
        assert activity.session_id == "i9001"
        assert activity.moving_seconds == 5400
        assert activity.zone_seconds == {"z1": 600, "z2": 3000, "z4": 1200, "ss": 900}

    def test_activity_without_zones_still_counts_load(self):
        sample, activity = activity_from_icu({"start_date_local": "2026-02-21T08:00:00", "icu_training_load": 40})
        assert sample.load == 40.0
        assert activity is None

    def test_activity_without_date_skipped(self):
        assert activity_from_icu({"icu_training_load": 40}) == (None, None)

    def test_wellness(self):
        record = wellness_from_icu({"id": "2026-02-21", "sleepSecs": 27000, "hrv": 62.0, "restingHR": 48})
        assert record.sleep_hours == 7.5
        assert record.hrv == 62.0
        assert record.resting_hr == 48
        assert record.recovery_score is None

    def test_events(self):
        race = event_from_icu({"category": "RACE_A", "start_date_local": "2026-05-01T00:00:00", "name": "Classic"})
        assert race == GoalEvent("2026-05-01", "A", "Classic")
        assert event_from_icu({"category": "WORKOUT", "start_date_local": "2026-05-01T00:00:00"}) is None

    def test_profile(self):
        raw = {
            "icu_weight": 72.5,
            "sportSettings": [
                {"types": ["Run"], "ftp": 300},
                {"types": ["Ride", "VirtualRide"], "ftp": 265},
            ],
        }
        profile = profile_from_icu(raw)
        assert profile.weight_kg == 72.5
        assert profile.manual_threshold == 265.0

    def test_curve(self):
        raw = {"list": [{"secs": [5, 60, 300], "watts": [900, 450, None]}]}
        assert curve_from_icu(raw) == {5: 900.0, 60: 450.0}
        assert curve_from_icu({"list": []}) == {}


class TestIntervalsProvider:
    def _provider(self, routes):
        session = RoutedSession(routes)
        provider = IntervalsProvider("i42", "secret", base_url="https://icu.test/api/v1/", session=session)
        return provider, session

    def test_auth_and_urls(self):
        provider, session = self._provider({"i42": FakeResponse(200, {"icu_weight": 70})})
        assert session.auth == ("API_KEY", "secret")
        assert provider.get_profile().weight_kg == 70.0
        assert session.calls[0][1] == "https://icu.test/api/v1/athlete/i42"

    def test_activities_split(self):
        provider, _ = self._provider({"activities": FakeResponse(200, [ACTIVITY, {"icu_training_load": 1}])})
        loads, activities = provider.get_activities("2026-01-01", "2026-02-28")
        assert len(loads) == 1
        assert len(activities) == 1

    def test_bad_activity_skipped_individually(self):
        bad_date = {**ACTIVITY, "id": "i1", "start_date_local": "2024-02-30T08:00:00"}
        bad_load = {**ACTIVITY, "id": "i2", "icu_training_load": "heavy"}
        good = {**ACTIVITY, "start_date_local": "2024-05-30T08:00:00"}
        provider, _ = self._provider({"activities": FakeResponse(200, [bad_date, good, bad_load])})
        data = gather(provider, "2024-06-01")
        assert data.loads == [LoadSample("2024-05-30", 85.0)]
        assert [a.session_id for a in data.activities] == ["i9001"]

    def test_bad_wellness_and_events_skipped_individually(self):
        provider, _ = self._provider(
            {
                "wellness": FakeResponse(200, [{"id": "2024-02-30"}, {"id": "2024-05-31", "readiness": 60}, "junk"]),
                "events": FakeResponse(
                    200,
                    [
                        {"category": "RACE_A", "start_date_local": "2024-13-01T00:00:00"},
                        {"category": "RACE_C", "start_date_local": "2024-07-01T00:00:00"},
                    ],
                ),
            }
        )
        data = gather(provider, "2024-06-01")
        assert [w.date for w in data.wellness] == ["2024-05-31"]
        assert data.events == [GoalEvent("2024-07-01", "C")]

    def test_invalid_json(self):
        provider, _ = self._provider({"wellness": FakeResponse(200, raw="<html>")})
        with pytest.raises(ProviderError):
            provider.get_wellness("2026-01-01", "2026-02-28")

    def test_from_env_requires_credentials(self, monkeypatch):
        monkeypatch.delenv("INTERVALS_ATHLETE_ID", raising=False)
        monkeypatch.setenv("INTERVALS_API_KEY", "k")
        with pytest.raises(ProviderError):
            IntervalsProvider.from_env()

    def test_gather_degrades_per_part(self):
        provider, _ = self._provider(
            {
                "i42": FakeResponse(401),
                "activities": FakeResponse(200, [ACTIVITY]),
                "wellness": FakeResponse(200, [{"id": "2026-02-27", "readiness": 80}]),
                "events": FakeResponse(200, [{"category": "RACE_B", "start_date_local": "2026-04-01T00:00:00"}]),
                "power-curves": FakeResponse(404),
            }
        )
        data = gather(provider, "2026-02-28", lookback_days=30)
        assert data.profile.manual_threshold is None
        assert len(data.loads) == 1
        assert data.wellness[0].recovery_score == 80
        assert data.events[0].priority == "B"
        assert data.curve == {}

    def test_gather_with_everything_down_still_coaches(self):
        provider, _ = self._provider({})
        data = gather(provider, "2026-02-28")
        assert data.loads == [] and data.events == []
        report = Coach().run(data, "2026-02-28")
        assert report.recommendation.type_id


# =============================================================================
# Oracle client
# =============================================================================


class TestHttpOracle:
    def _oracle(self, *outcomes):
        session = FakeSession(*outcomes)
        oracle = HttpOracle("https://oracle.test/advise", api_key="tok", retry=RETRY, session=session, sleep=lambda s: None)
        return oracle, session

    def test_object_response(self):
        oracle, session = self._oracle(FakeResponse(200, {"phase": "Build"}))
        assert oracle.request("phase", {"today": "2026-02-28"}) == {"phase": "Build"}
        method, url, kwargs = session.calls[0]
        assert method == "POST"
        assert json.loads(kwargs["data"]) == {"kind": "phase", "context": {"today": "2026-02-28"}}
        assert session.headers["Authorization"] == "Bearer tok"

    def test_no_content(self):
        oracle, _ = self._oracle(FakeResponse(204))
        assert oracle.request("load", {}) is None

    @pytest.mark.parametrize(
        "response",
        [FakeResponse(200, ["not", "an", "object"]), FakeResponse(200, raw="{broken")],
    )
    def test_unusable_body(self, response):
        oracle, _ = self._oracle(response)
        with pytest.raises(OracleUnavailable):
            oracle.request("workout", {})

    def test_server_errors_become_unavailable(self):
        oracle, session = self._oracle(FakeResponse(502), FakeResponse(502), FakeResponse(502))
        with pytest.raises(OracleUnavailable):
            oracle.request("workout", {})
        assert len(session.calls) == 3

    def test_from_config(self):
        assert HttpOracle.from_config(OracleConfig(enabled=True, url=None)) is None
        assert HttpOracle.from_config(OracleConfig(enabled=False, url="https://o")) is None
        assert HttpOracle.from_config(OracleConfig(enabled=True, url="https://o")).url == "https://o"


# =============================================================================
# Serialization
# =============================================================================


DOCUMENT = {
    "profile": {"weight_kg": 70, "manual_threshold": 250},
    "loads": [{"date": "2026-02-26", "load": 55}, {"date": "2026-02-27", "load": 70}],
    "activities": [
        {"session_id": "a", "date": "2026-02-27", "moving_seconds": 3600, "zone_seconds": {"Z2": 2400, "Z4": 900}}
    ],
    "wellness": [{"date": "2026-02-28", "sleep_hours": 7.0, "recovery_score": 55}],
    "curve": {"secs": [300, 600, 1200], "watts": [320, 290, 270]},
    "events": [{"date": "2026-05-01", "priority": "A", "name": "Classic"}],
    "duration_window": [45, 90],
}


class TestSerializers:
    def test_document_parses(self):
        data = dict_to_athlete_data(DOCUMENT)
        assert data.profile.manual_threshold == 250
        assert data.activities[0].zone_seconds == {"z2": 2400, "z4": 900}
        assert data.curve == {300: 320.0, 600: 290.0, 1200: 270.0}
        assert data.duration_window == (45, 90)

    @pytest.mark.parametrize(
        "patch",
        [
            {"loads": [{"date": "2026-02-30", "load": 10}]},
            {"loads": [{"date": "2026-02-20", "load": -1}]},
            {"events": [{"date": "2026-05-01", "priority": "D"}]},
            {"profile": {"height_cm": 180}},
            {"duration_window": [45]},
            {"curve": {"sixty": 400}},
        ],
    )
    def test_invalid_documents(self, patch):
        with pytest.raises(ValidationError):
            dict_to_athlete_data({**DOCUMENT, **patch})

    def test_save_and_load_file(self, tmp_path):
        path = tmp_path / "nested" / "athlete.json"
        save_athlete_data(dict_to_athlete_data(DOCUMENT), path)
        again = load_athlete_data(path)
        assert again.events == [GoalEvent("2026-05-01", "A", "Classic")]
        assert athlete_data_to_dict(again)["curve"] == {"300": 320.0, "600": 290.0, "1200": 270.0}

    def test_missing_and_broken_files(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_athlete_data(tmp_path / "absent.json")
        broken = tmp_path / "broken.json"
        broken.write_text("{not json")
        with pytest.raises(ValidationError):
            load_athlete_data(broken)

    def test_report_is_json_serializable(self):
        report = Coach().run(dict_to_athlete_data(DOCUMENT), "2026-02-28")
        doc = json.loads(json.dumps(report_to_dict(report)))
        assert doc["date"] == "2026-02-28"
        assert doc["recommendation"]["type_id"]
        assert doc["threshold"]["source"] == "critical_power"
        assert len(doc["preview"]["form_delta"]) == 14
        assert "preview" not in report_to_dict(report, include_preview=False)


# =============================================================================
# JSONL stores
# =============================================================================


class TestProgressionStore:
    def test_previous_is_strictly_earlier(self, tmp_path):
        store = ProgressionStore(tmp_path / "progression.jsonl")
        assert store.previous_levels("2026-02-01") is None
        store.record("2026-02-01", {"threshold": 3.0})
        store.record("2026-02-02", {"threshold": 3.5})
        assert store.previous_levels("2026-02-02") == {"threshold": 3.0}
        assert store.previous_levels("2026-02-03") == {"threshold": 3.5}

    def test_same_date_replaced(self, tmp_path):
        store = ProgressionStore(tmp_path / "progression.jsonl")
        store.record("2026-02-01", {"threshold": 3.0})
        store.record("2026-02-01", {"threshold": 4.0})
        assert store.load() == [{"date": "2026-02-01", "levels": {"threshold": 4.0}}]

    def test_retention(self, tmp_path):
        store = ProgressionStore(tmp_path / "progression.jsonl", retention=3)
        for day in range(1, 7):
            store.record(f"2026-02-{day:02d}", {"tempo": float(day)})
        assert [s["date"] for s in store.load()] == ["2026-02-04", "2026-02-05", "2026-02-06"]

    def test_bad_lines_skipped(self, tmp_path):
        path = tmp_path / "progression.jsonl"
        path.write_text(
            '{"date": "2026-02-01", "levels": {"tempo": 2.0}}\n'
            "garbage\n"
            '{"date": "yesterday", "levels": {}}\n'
            '{"date": "2026-02-02"}\n'
        )
        assert len(ProgressionStore(path).load()) == 1

    def test_invalid_record_date(self, tmp_path):
        with pytest.raises(ValidationError):
            ProgressionStore(tmp_path / "p.jsonl").record("02/01/2026", {})


class TestRecommendationLog:
    def test_append_and_limit(self, tmp_path):
        log = RecommendationLog(tmp_path / "log" / "recommendations.jsonl")
        assert log.load() == []
        for day in range(1, 4):
            log.append({"date": f"2026-02-0{day}", "type_id": "endurance_z2"})
        assert len(log.load()) == 3
        assert [e["date"] for e in log.load(limit=2)] == ["2026-02-02", "2026-02-03"]


def test_empty_athlete_data_round_trips_to_defaults():
    data = dict_to_athlete_data({})
    assert data == AthleteData()
