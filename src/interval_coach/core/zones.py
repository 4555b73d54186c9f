"""
Zone exposure classification and progression scoring.

Classifies each session's time-in-zone distribution into a dominant zone
and an inferred stimulus, then scores accumulated exposure per
physiological category over a rolling window into a bounded 1-10 level.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from .config import (
    CATEGORIES,
    DEFAULT_CONFIG,
    FREQUENCY_BONUS_MAX,
    LEVEL_MAX,
    LEVEL_MIN,
    RECENCY_BONUSES,
    SWEETSPOT_KEY,
    VOLUME_CAP,
    VOLUME_POINTS,
    ZONE_KEYS,
    ZoneConfig,
)
from .models import ActivityZones, ZoneExposure, ZoneProgression

logger = logging.getLogger(__name__)

_FMT = "%Y-%m-%d"


def _days_between(earlier: str, later: str) -> int:
    return (datetime.strptime(later, _FMT) - datetime.strptime(earlier, _FMT)).days


def infer_stimulus(zone_seconds: Mapping[str, int], config: ZoneConfig = DEFAULT_CONFIG.zones) -> str:
    """
    Infer the training stimulus from a zone distribution.

    Priority order (first match wins):
    - z5+z6+z7 > 300 s        → vo2max
    - z4 + ss > 600 s         → threshold
    - ss > 300 s              → sweetspot
    - z3 > z2 / 2             → tempo
    - z2 + z3 > total / 2     → endurance
    - z1 > total / 2          → recovery
    - otherwise               → endurance
    """
    z = {k: zone_seconds.get(k, 0) for k in ZONE_KEYS}
    ss = zone_seconds.get(SWEETSPOT_KEY, 0)
    total = sum(z.values())

    if z["z5"] + z["z6"] + z["z7"] > config.vo2max_seconds:
        return "vo2max"
    if z["z4"] + ss > config.threshold_seconds:
        return "threshold"
    if ss > config.sweetspot_seconds:
        return "sweetspot"
    if z["z3"] > z["z2"] / 2:
        return "tempo"
    if z["z2"] + z["z3"] > total / 2:
        return "endurance"
    if z["z1"] > total / 2:
        return "recovery"
    return "endurance"


def classify(
    session: ActivityZones,
    config: ZoneConfig = DEFAULT_CONFIG.zones,
) -> ZoneExposure | None:
    """
    Classify one session.

    Sessions with less than 10 minutes of moving time are ignored.  The
    sweet-spot band overlaps z3/z4 and is not added to the total.  The
    dominant zone is the one with the most seconds; ties go to the easier
    zone.

    Returns:
        ZoneExposure, or None if the session does not qualify
    """
    if session.moving_seconds < config.min_moving_seconds:
        return None

    zone_seconds = {k: int(session.zone_seconds.get(k, 0)) for k in ZONE_KEYS}
    zone_seconds[SWEETSPOT_KEY] = int(session.zone_seconds.get(SWEETSPOT_KEY, 0))
    total = sum(zone_seconds[k] for k in ZONE_KEYS)

    dominant = ZONE_KEYS[0]
    for key in ZONE_KEYS:
        if zone_seconds[key] > zone_seconds[dominant]:
            dominant = key

    return ZoneExposure(
        session_id=session.session_id,
        date=session.date,
        zone_seconds=zone_seconds,
        total_seconds=total,
        dominant_zone=dominant,
        stimulus=infer_stimulus(zone_seconds, config),  # type: ignore[arg-type]
        load=session.load,
    )


def classify_all(
    sessions: Sequence[ActivityZones],
    config: ZoneConfig = DEFAULT_CONFIG.zones,
) -> list[ZoneExposure]:
    """Classify sessions, dropping non-qualifying ones, ordered by date."""
    exposures = [e for e in (classify(s, config) for s in sessions) if e is not None]
    return sorted(exposures, key=lambda e: e.date)


def stimulus_counts(
    exposures: Sequence[ZoneExposure],
    as_of: str,
    days: int = DEFAULT_CONFIG.zones.stimulus_window_days,
) -> dict[str, int]:
    """Count sessions per stimulus in the ``days`` days up to ``as_of``."""
    counts: dict[str, int] = {}
    for e in exposures:
        age = _days_between(e.date, as_of)
        if 0 <= age < days:
            counts[e.stimulus] = counts.get(e.stimulus, 0) + 1
    return counts


class ProgressionScorer:
    """
    Scores per-category progression levels over a rolling window.

    level = clamp(1, 10, min(7, 5·minutes/baseline)
                         + min(2, sessions/week)
                         + recency bonus (1.0 / 0.5 / 0.25 for ≤7 / ≤14 / ≤21 days))

    Args:
        config: ZoneConfig with baselines, window and trend parameters
    """

    def __init__(self, config: ZoneConfig = DEFAULT_CONFIG.zones):
        self.config = config

    def _category_minutes(self, exposure: ZoneExposure) -> dict[str, float]:
        minutes: dict[str, float] = {}
        for zone, category in self.config.zone_category.items():
            secs = exposure.zone_seconds.get(zone, 0)
            if secs:
                minutes[category] = minutes.get(category, 0.0) + secs / 60.0
        return minutes

    def _recency_bonus(self, days_since: int | None) -> float:
        if days_since is None:
            return 0.0
        for limit, bonus in RECENCY_BONUSES:
            if days_since <= limit:
                return bonus
        return 0.0

    def score(
        self,
        exposures: Sequence[ZoneExposure],
        window_days: int | None = None,
        *,
        as_of: str | None = None,
        previous_levels: Mapping[str, float] | None = None,
    ) -> dict[str, ZoneProgression]:
        """
        Score all five categories.

        Args:
            exposures: Classified sessions (any order)
            window_days: Rolling window length (default from config)
            as_of: Reference date (default today)
            previous_levels: Levels from the preceding scoring run, used for
                plateau detection

        Returns:
            {category: ZoneProgression}; an empty window yields level 1.0,
            trend "stable" for every category
        """
        window = window_days if window_days is not None else self.config.window_days
        as_of = as_of or datetime.now().strftime(_FMT)
        in_window = [e for e in exposures if 0 <= _days_between(e.date, as_of) < window]

        if not in_window:
            return {c: ZoneProgression(category=c) for c in CATEGORIES}

        minutes = {c: 0.0 for c in CATEGORIES}
        sessions: dict[str, list[ZoneExposure]] = {c: [] for c in CATEGORIES}
        for e in in_window:
            for category, mins in self._category_minutes(e).items():
                minutes[category] += mins
                if mins >= self.config.min_session_minutes:
                    sessions[category].append(e)

        weeks = max(window / 7.0, 1.0)
        result: dict[str, ZoneProgression] = {}
        for c in CATEGORIES:
            cat_sessions = sessions[c]
            last_trained = max((e.date for e in cat_sessions), default=None)
            days_since = _days_between(last_trained, as_of) if last_trained else None

            baseline = self.config.baseline_minutes.get(c, 60.0)
            volume = min(VOLUME_CAP, VOLUME_POINTS * minutes[c] / baseline)
            frequency = min(FREQUENCY_BONUS_MAX, len(cat_sessions) / weeks)
            level = volume + frequency + self._recency_bonus(days_since)
            level = round(max(LEVEL_MIN, min(LEVEL_MAX, level)), 1)

            recent = [
                e for e in cat_sessions
                if _days_between(e.date, as_of) < self.config.trend_window_days
            ]
            trend = self._trend(c, level, len(recent), days_since, previous_levels)

            avg_load = (
                sum(e.load for e in cat_sessions) / len(cat_sessions) if cat_sessions else 0.0
            )
            result[c] = ZoneProgression(
                category=c,
                level=level,
                trend=trend,
                last_trained=last_trained,
                session_count=len(cat_sessions),
                avg_load=round(avg_load, 1),
            )
        return result

    def _trend(
        self,
        category: str,
        level: float,
        recent_sessions: int,
        days_since: int | None,
        previous_levels: Mapping[str, float] | None,
    ) -> str:
        if (
            previous_levels
            and category in previous_levels
            and recent_sessions >= 1
            and abs(level - previous_levels[category]) < self.config.plateau_tolerance
        ):
            logger.debug("%s plateaued at level %.1f", category, level)
            return "plateaued"
        if recent_sessions >= self.config.improving_min_sessions:
            return "improving"
        if days_since is not None and days_since > self.config.trend_window_days:
            return "declining"
        return "stable"


def levels_of(progressions: Mapping[str, ZoneProgression]) -> dict[str, float]:
    """Extract {category: level} for storage as the next run's baseline."""
    return {c: p.level for c, p in progressions.items()}


