"""
Data models for interval-coach.

All core dataclasses representing athlete data, fitness state, zone
exposure, phases, the workout catalog and the daily recommendation.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Stimulus = Literal["vo2max", "threshold", "sweetspot", "tempo", "endurance", "recovery", "anaerobic"]
Trend = Literal["improving", "stable", "declining", "plateaued"]
Priority = Literal["A", "B", "C"]
RecoveryTier = Literal["low", "moderate", "high", "unknown"]
Source = Literal["oracle", "fallback"]


class PreconditionError(ValueError):
    """Raised when a caller passes input that has no physical meaning."""


def validate_iso_date(date_str: str) -> None:
    """Validate date string is ISO format YYYY-MM-DD."""
    if not isinstance(date_str, str) or not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValueError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid date: {date_str}") from e


@dataclass(frozen=True)
class AthleteProfile:
    """
    Immutable physiological snapshot, refreshed each run.

    Thresholds are in watts; anaerobic_capacity is W' in joules.
    """

    weight_kg: float | None = None
    manual_threshold: float | None = None
    estimated_threshold: float | None = None
    season_best_threshold: float | None = None
    anaerobic_capacity: float | None = None
    max_sustained_power: float | None = None

    def __post_init__(self) -> None:
        for name in (
            "weight_kg",
            "manual_threshold",
            "estimated_threshold",
            "season_best_threshold",
            "anaerobic_capacity",
            "max_sustained_power",
        ):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def effective_threshold(self) -> float | None:
        """Estimated threshold, else manual, else season best."""
        for value in (self.estimated_threshold, self.manual_threshold, self.season_best_threshold):
            if value:
                return value
        return None


@dataclass(frozen=True)
class LoadSample:
    """Training stress for one session or day."""

    date: str  # ISO format: YYYY-MM-DD
    load: float

    def __post_init__(self) -> None:
        validate_iso_date(self.date)
        if self.load < 0:
            raise PreconditionError(f"load must be non-negative, got {self.load} on {self.date}")


@dataclass(frozen=True)
class FitnessState:
    """Long/short exponentially weighted load averages at the end of a day."""

    date: str
    long_avg: float = 0.0
    short_avg: float = 0.0

    def __post_init__(self) -> None:
        validate_iso_date(self.date)
        if self.long_avg < 0 or self.short_avg < 0:
            raise ValueError("fitness averages must be non-negative")

    @property
    def form(self) -> float:
        """Form = long-average − short-average (positive = fresh)."""
        return self.long_avg - self.short_avg


@dataclass(frozen=True)
class ProjectionPoint:
    """One presented day of a fitness projection."""

    date: str
    long_avg: float
    short_avg: float
    form: float
    planned_load: float


@dataclass(frozen=True)
class ActivityZones:
    """
    Time-in-zone summary of one recorded session.

    zone_seconds holds z1..z7 plus the overlapping sweet-spot band "ss".
    """

    session_id: str
    date: str
    moving_seconds: int
    zone_seconds: dict[str, int] = field(default_factory=dict)
    load: float = 0.0

    def __post_init__(self) -> None:
        validate_iso_date(self.date)
        if self.moving_seconds < 0:
            raise ValueError("moving_seconds must be non-negative")
        if any(v < 0 for v in self.zone_seconds.values()):
            raise ValueError("zone seconds must be non-negative")
        if self.load < 0:
            raise PreconditionError("load must be non-negative")


@dataclass(frozen=True)
class ZoneExposure:
    """Classified zone distribution of one qualifying session."""

    session_id: str
    date: str
    zone_seconds: dict[str, int]
    total_seconds: int
    dominant_zone: str
    stimulus: Stimulus
    load: float = 0.0


@dataclass(frozen=True)
class ZoneProgression:
    """Bounded progression level for one physiological category."""

    category: str
    level: float = 1.0
    trend: Trend = "stable"
    last_trained: str | None = None
    session_count: int = 0
    avg_load: float = 0.0

    def __post_init__(self) -> None:
        if not 1.0 <= self.level <= 10.0:
            raise ValueError(f"level must be within [1, 10], got {self.level}")


@dataclass(frozen=True)
class PhaseState:
    """Periodization phase derived from weeks to the target event."""

    name: str
    weeks_to_target: int | None
    focus: str
    reasoning: str | None = None
    confidence: str | None = None
    source: Literal["date", "oracle"] = "date"


@dataclass(frozen=True)
class GoalEvent:
    """A dated goal event from the athlete's calendar."""

    date: str
    priority: Priority
    name: str = ""

    def __post_init__(self) -> None:
        validate_iso_date(self.date)
        if self.priority not in ("A", "B", "C"):
            raise ValueError(f"Invalid priority: {self.priority}")


@dataclass(frozen=True)
class WellnessRecord:
    """Daily recovery telemetry; any field may be missing."""

    date: str
    sleep_hours: float | None = None
    hrv: float | None = None
    resting_hr: float | None = None
    recovery_score: float | None = None  # 0-100

    def __post_init__(self) -> None:
        validate_iso_date(self.date)


@dataclass(frozen=True)
class WorkoutCandidate:
    """
    One entry of the static workout catalog.

    The phases, form range and minimum recovery are the preconditions the
    fallback selector evaluates; None bounds are open.
    """

    type_id: str
    name: str
    intensity: int
    duration_min: int
    duration_max: int
    stimulus: str
    phases: tuple[str, ...]
    form_min: float | None = None
    form_max: float | None = None
    min_recovery: str = "low"

    def __post_init__(self) -> None:
        if not 1 <= self.intensity <= 5:
            raise ValueError(f"{self.type_id}: intensity must be within [1, 5]")
        if self.duration_min <= 0 or self.duration_max < self.duration_min:
            raise ValueError(f"{self.type_id}: invalid duration range")
        if self.min_recovery not in ("low", "moderate", "high"):
            raise ValueError(f"{self.type_id}: invalid min_recovery {self.min_recovery!r}")


@dataclass(frozen=True)
class RankedCandidate:
    """A scored workout choice, from the oracle or the fallback ranking."""

    type_id: str
    intensity: int
    score: float = 0.0
    rationale: str = ""


@dataclass(frozen=True)
class Recommendation:
    """The single output of a run."""

    type_id: str
    intensity: int
    intensity_ceiling: int
    duration_minutes: int
    justification: str
    alternates: tuple[RankedCandidate, ...] = ()
    source: Source = "fallback"

    def __post_init__(self) -> None:
        if self.intensity > self.intensity_ceiling:
            raise ValueError(
                f"intensity {self.intensity} exceeds ceiling {self.intensity_ceiling}"
            )
