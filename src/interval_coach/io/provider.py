"""
intervals.icu data provider.

Fetches athlete settings, activities (load and time-in-zone), wellness,
goal events and the season power curve, and maps them onto the core
dataclasses.  Authentication is HTTP Basic with the literal user name
"API_KEY" and the athlete's API key as password.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import requests

from ..core.coach import AthleteData
from ..core.config import DEFAULT_CONFIG, LOOKBACK_DAYS, PROVIDER_BASE_URL, RetryConfig
from ..core.models import ActivityZones, AthleteProfile, GoalEvent, LoadSample, WellnessRecord
from .http import ProviderError, request_with_retry

logger = logging.getLogger(__name__)

_FMT = "%Y-%m-%d"
_EVENT_CATEGORIES = {"RACE_A": "A", "RACE_B": "B", "RACE_C": "C"}
EVENT_HORIZON_DAYS = 365


def _day(value: Any) -> str | None:
    """First ten characters of an ISO timestamp, if present."""
    if not isinstance(value, str) or len(value) < 10:
        return None
    return value[:10]


def activity_from_icu(raw: dict[str, Any]) -> tuple[LoadSample | None, ActivityZones | None]:
    """
    Map one intervals.icu activity to a load sample and a zone summary.

    ``icu_zone_times`` is a list of ``{"id": "Z1".."Z7"|"SS", "secs": n}``.
    Activities without a date are skipped.
    """
    date = _day(raw.get("start_date_local"))
    if date is None:
        return None, None

    load = float(raw.get("icu_training_load") or 0.0)
    sample = LoadSample(date=date, load=max(load, 0.0))

    zone_seconds: dict[str, int] = {}
    for zone in raw.get("icu_zone_times") or []:
        if not isinstance(zone, dict):
            continue
        zid = str(zone.get("id", "")).lower()
        secs = int(zone.get("secs") or 0)
        if zid and secs > 0:
            zone_seconds[zid] = zone_seconds.get(zid, 0) + secs

    if not zone_seconds:
        return sample, None

    activity = ActivityZones(
        session_id=str(raw.get("id", "")),
        date=date,
        moving_seconds=int(raw.get("moving_time") or 0),
        zone_seconds=zone_seconds,
        load=sample.load,
    )
    return sample, activity


def wellness_from_icu(raw: dict[str, Any]) -> WellnessRecord | None:
    date = _day(raw.get("id"))
    if date is None:
        return None
    sleep_secs = raw.get("sleepSecs")
    return WellnessRecord(
        date=date,
        sleep_hours=round(sleep_secs / 3600, 2) if sleep_secs else None,
        hrv=raw.get("hrv"),
        resting_hr=raw.get("restingHR"),
        recovery_score=raw.get("readiness"),
    )


def event_from_icu(raw: dict[str, Any]) -> GoalEvent | None:
    priority = _EVENT_CATEGORIES.get(raw.get("category", ""))
    date = _day(raw.get("start_date_local"))
    if priority is None or date is None:
        return None
    return GoalEvent(date=date, priority=priority, name=raw.get("name") or "")  # type: ignore[arg-type]


def profile_from_icu(raw: dict[str, Any]) -> AthleteProfile:
    """Weight and manual (user-set) FTP from the athlete record."""
    ftp = None
    for sport in raw.get("sportSettings") or []:
        if "Ride" in (sport.get("types") or []) and sport.get("ftp"):
            ftp = float(sport["ftp"])
            break
    weight = raw.get("icu_weight") or raw.get("weight")
    return AthleteProfile(
        weight_kg=float(weight) if weight else None,
        manual_threshold=ftp,
    )


def curve_from_icu(raw: Any) -> dict[int, float]:
    """Extract ``{seconds: watts}`` from a power-curves response."""
    curves = raw.get("list") if isinstance(raw, dict) else raw
    if not curves:
        return {}
    first = curves[0]
    return {
        int(s): float(w)
        for s, w in zip(first.get("secs") or [], first.get("watts") or [])
        if s is not None and w is not None
    }


def _skip(what: str, raw: Any, error: Exception) -> None:
    record_id = raw.get("id") if isinstance(raw, dict) else None
    logger.warning("skipping %s %s: %s", what, record_id or "(no id)", error)


def _map_each(mapper: Callable[[Any], Any], raws: list[Any], what: str) -> list[Any]:
    """Apply a record mapper, dropping records that fail validation."""
    mapped = []
    for raw in raws:
        try:
            record = mapper(raw)
        except (ValueError, TypeError, AttributeError) as e:
            _skip(what, raw, e)
            continue
        if record is not None:
            mapped.append(record)
    return mapped


class IntervalsProvider:
    """
    Thin intervals.icu client.

    Args:
        athlete_id: intervals.icu athlete id (e.g. "i12345")
        api_key: Personal API key
        base_url: API root
        retry: Retry policy for every call
        session: Optional requests.Session (injectable for tests)
        sleep: Backoff delay function
    """

    def __init__(
        self,
        athlete_id: str,
        api_key: str,
        base_url: str = PROVIDER_BASE_URL,
        retry: RetryConfig = DEFAULT_CONFIG.retry,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.athlete_id = athlete_id
        self.base_url = base_url.rstrip("/")
        self.retry = retry
        self.session = session or requests.Session()
        self.session.auth = ("API_KEY", api_key)
        self.session.headers.update({"Accept": "application/json"})
        self._sleep = sleep

    @classmethod
    def from_env(cls, base_url: str = PROVIDER_BASE_URL, retry: RetryConfig = DEFAULT_CONFIG.retry) -> "IntervalsProvider":
        """
        Build from INTERVALS_ATHLETE_ID and INTERVALS_API_KEY.

        Raises:
            ProviderError: If either variable is missing
        """
        athlete_id = os.environ.get("INTERVALS_ATHLETE_ID")
        api_key = os.environ.get("INTERVALS_API_KEY")
        if not athlete_id or not api_key:
            raise ProviderError("INTERVALS_ATHLETE_ID and INTERVALS_API_KEY must be set")
        return cls(athlete_id, api_key, base_url=base_url, retry=retry)

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}/athlete/{self.athlete_id}"
        if endpoint:
            url = f"{url}/{endpoint}"
        kwargs: dict[str, Any] = {"retry": self.retry, "params": params}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        response = request_with_retry(self.session, "GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"invalid JSON from {url}") from e

    def get_profile(self) -> AthleteProfile:
        return profile_from_icu(self._get("") or {})

    def get_activities(self, oldest: str, newest: str) -> tuple[list[LoadSample], list[ActivityZones]]:
        """Load samples and zone summaries for activities in [oldest, newest]."""
        loads: list[LoadSample] = []
        activities: list[ActivityZones] = []
        for raw in self._get("activities", {"oldest": oldest, "newest": newest}) or []:
            try:
                sample, activity = activity_from_icu(raw)
            except (ValueError, TypeError, AttributeError) as e:
                _skip("activity", raw, e)
                continue
            if sample is not None:
                loads.append(sample)
            if activity is not None:
                activities.append(activity)
        return loads, activities

    def get_wellness(self, oldest: str, newest: str) -> list[WellnessRecord]:
        raw_records = self._get("wellness", {"oldest": oldest, "newest": newest}) or []
        records = _map_each(wellness_from_icu, raw_records, "wellness record")
        return sorted(records, key=lambda r: r.date)

    def get_events(self, oldest: str, newest: str) -> list[GoalEvent]:
        params = {"oldest": oldest, "newest": newest, "category": ",".join(_EVENT_CATEGORIES)}
        events = _map_each(event_from_icu, self._get("events", params) or [], "event")
        return sorted(events, key=lambda e: e.date)

    def get_power_curve(self, days: int = LOOKBACK_DAYS) -> dict[int, float]:
        return curve_from_icu(self._get("power-curves", {"type": "Ride", "curves": f"{days}d"}))


def gather(
    provider: IntervalsProvider,
    today: str | None = None,
    lookback_days: int = LOOKBACK_DAYS,
) -> AthleteData:
    """
    Fetch everything one run needs.

    Each part is fetched independently; a ProviderError degrades that part
    to empty data and is logged, so the engine can still recommend.
    Individual records that fail validation are skipped with a warning.
    """
    today = today or datetime.now().strftime(_FMT)
    day = datetime.strptime(today, _FMT)
    oldest = (day - timedelta(days=lookback_days)).strftime(_FMT)
    horizon = (day + timedelta(days=EVENT_HORIZON_DAYS)).strftime(_FMT)

    data = AthleteData()

    try:
        data.profile = provider.get_profile()
    except (ProviderError, ValueError, TypeError, AttributeError) as e:
        logger.warning("athlete profile unavailable: %s", e)
    try:
        data.loads, data.activities = provider.get_activities(oldest, today)
    except ProviderError as e:
        logger.warning("activities unavailable: %s", e)
    try:
        data.wellness = provider.get_wellness(oldest, today)
    except ProviderError as e:
        logger.warning("wellness unavailable: %s", e)
    try:
        data.events = provider.get_events(
            (day - timedelta(days=1)).strftime(_FMT), horizon
        )
    except ProviderError as e:
        logger.warning("events unavailable: %s", e)
    try:
        data.curve = provider.get_power_curve(lookback_days)
    except (ProviderError, ValueError, TypeError, AttributeError) as e:
        logger.warning("power curve unavailable: %s", e)

    logger.info(
        "fetched %d loads, %d zone summaries, %d wellness days, %d events, %d curve points",
        len(data.loads), len(data.activities), len(data.wellness), len(data.events), len(data.curve),
    )
    return data
