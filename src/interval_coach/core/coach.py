"""
Daily coaching pass.

Runs every engine component once, in dependency order, and returns a
DailyReport carrying exactly one Recommendation.  The pass is synchronous
and holds no state between runs apart from the optional progression
store used for plateau detection.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from .advisory import Oracle
from .catalog import WorkoutCatalog
from .config import DEFAULT_CONFIG, PREVIEW_HORIZON_DAYS, STIMULUS_INTENSITY, CoachConfig
from .curve import CurveEstimate, estimate_threshold, normalize_curve, refresh_profile
from .fitness import FitnessModel, ImpactPreview
from .load_advice import LoadAdvice, advise_weekly_load
from .models import (
    ActivityZones,
    AthleteProfile,
    FitnessState,
    GoalEvent,
    LoadSample,
    PhaseState,
    Recommendation,
    WellnessRecord,
    ZoneExposure,
    ZoneProgression,
)
from .phase import PhaseSelector
from .recovery import assess_recovery
from .selection import EventProximity, SelectionContext, WorkoutSelector
from .zones import ProgressionScorer, classify_all, levels_of, stimulus_counts

logger = logging.getLogger(__name__)

_FMT = "%Y-%m-%d"


class ProgressionSnapshots(Protocol):
    """Storage of per-run progression levels."""

    def previous_levels(self, before: str) -> dict[str, float] | None: ...

    def record(self, date: str, levels: Mapping[str, float]) -> None: ...


@dataclass
class AthleteData:
    """Everything the engine consumes for one run."""

    profile: AthleteProfile = field(default_factory=AthleteProfile)
    loads: list[LoadSample] = field(default_factory=list)
    activities: list[ActivityZones] = field(default_factory=list)
    wellness: list[WellnessRecord] = field(default_factory=list)
    curve: dict[int, float] = field(default_factory=dict)
    events: list[GoalEvent] = field(default_factory=list)
    duration_window: tuple[int, int] | None = None


@dataclass
class DailyReport:
    """Output of one run: the recommendation and the state behind it."""

    date: str
    recommendation: Recommendation
    fitness: FitnessState
    phase: PhaseState
    recovery: str
    progressions: dict[str, ZoneProgression]
    curve: CurveEstimate
    profile: AthleteProfile
    load_advice: LoadAdvice
    preview: ImpactPreview
    ramp_rate: float = 0.0


def _last_session(exposures: list[ZoneExposure], loads: list[LoadSample], today: str) -> tuple[int | None, int | None]:
    """Days since the last session before today and its intensity."""
    past = [e for e in exposures if e.date < today]
    last_load_date = max((s.date for s in loads if s.load > 0 and s.date < today), default=None)
    last_date = max(filter(None, [past[-1].date if past else None, last_load_date]), default=None)
    if last_date is None:
        return None, None
    days = (datetime.strptime(today, _FMT) - datetime.strptime(last_date, _FMT)).days
    intensity = None
    same_day = [e for e in past if e.date == last_date]
    if same_day:
        intensity = max(STIMULUS_INTENSITY.get(e.stimulus, 2) for e in same_day)
    return days, intensity


class Coach:
    """
    Orchestrates a single daily pass.

    Args:
        config: CoachConfig passed to every component
        catalog: Workout catalog
        oracle: Optional advisory oracle shared by all call sites
        snapshots: Optional progression snapshot store
    """

    def __init__(
        self,
        config: CoachConfig = DEFAULT_CONFIG,
        catalog: WorkoutCatalog | None = None,
        oracle: Oracle | None = None,
        snapshots: ProgressionSnapshots | None = None,
    ):
        from .catalog import load_catalog

        self.config = config
        self.catalog = catalog or load_catalog(default_type=config.selection.default_type)
        self.oracle = oracle
        self.snapshots = snapshots
        self.fitness = FitnessModel(config.fitness)
        self.scorer = ProgressionScorer(config.zones)
        self.phases = PhaseSelector(config.phase, oracle)
        self.selector = WorkoutSelector(self.catalog, config.selection, oracle)

    def run(self, data: AthleteData, today: str | None = None) -> DailyReport:
        """
        Produce today's DailyReport.

        Fitness is taken at the end of yesterday; today's load (if any was
        already logged) is part of the preview's day one.
        """
        today = today or datetime.now().strftime(_FMT)
        yesterday = (datetime.strptime(today, _FMT) - timedelta(days=1)).strftime(_FMT)

        curve = normalize_curve(data.curve)
        estimate = estimate_threshold(curve, data.profile)
        profile = refresh_profile(data.profile, curve)

        state = self.fitness.current_state(data.loads, as_of=yesterday)
        ramp = self.fitness.ramp_rate(data.loads, as_of=yesterday)

        exposures = classify_all(data.activities, self.config.zones)
        previous = self.snapshots.previous_levels(today) if self.snapshots else None
        progressions = self.scorer.score(exposures, as_of=today, previous_levels=previous)
        if self.snapshots is not None:
            self.snapshots.record(today, levels_of(progressions))

        recovery = assess_recovery(data.wellness, self.config.recovery)

        signals = {
            "long_avg": round(state.long_avg, 1),
            "short_avg": round(state.short_avg, 1),
            "form": round(state.form, 1),
            "ramp_rate": ramp,
            "threshold": estimate.threshold,
            "recovery": recovery,
        }
        phase = self.phases.select(today, data.events, signals)
        load_advice = advise_weekly_load(
            state, phase.name, self.oracle, self.config.fitness, self.config.phase, signals
        )

        days_since, last_intensity = _last_session(exposures, data.loads, today)
        ctx = SelectionContext(
            form=state.form,
            phase=phase.name,
            recovery=recovery,
            days_since_last=days_since,
            last_intensity=last_intensity,
            stimulus_counts=stimulus_counts(
                exposures, today, self.config.zones.stimulus_window_days
            ),
            events=EventProximity.from_events(data.events, today),
            duration_window=data.duration_window,
        )
        recommendation = self.selector.select(ctx)
        logger.info(
            "%s: %s (intensity %d/%d, %s)",
            today,
            recommendation.type_id,
            recommendation.intensity,
            recommendation.intensity_ceiling,
            recommendation.source,
        )

        today_load = sum(s.load for s in data.loads if s.date == today)
        session_load = self.fitness.estimate_session_load(
            recommendation.intensity, recommendation.duration_minutes
        )
        preview = self.fitness.impact_preview(
            state, session_load, {today: today_load} if today_load else {}, PREVIEW_HORIZON_DAYS
        )

        return DailyReport(
            date=today,
            recommendation=recommendation,
            fitness=state,
            phase=phase,
            recovery=recovery,
            progressions=progressions,
            curve=estimate,
            profile=profile,
            load_advice=load_advice,
            preview=preview,
            ramp_rate=ramp,
        )
