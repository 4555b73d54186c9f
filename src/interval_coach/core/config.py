"""
Configuration constants for the training state and recommendation engine.

All adjustable parameters are centralized here for easy tuning.  The
constants are grouped into frozen config records that each component
receives at construction, so thresholds can be tested independently.
YAML overrides are applied by core/engine/config_loader.py.
"""

from dataclasses import dataclass, field
from typing import Final

# =============================================================================
# FITNESS-FATIGUE MODEL
# =============================================================================

LONG_TIME_CONSTANT: Final[float] = 42.0  # Long-average (fitness) constant, days
SHORT_TIME_CONSTANT: Final[float] = 7.0  # Short-average (fatigue) constant, days
PROJECTION_DECIMALS: Final[int] = 1  # Rounding for presented projection points

# Intensity factor per catalog intensity level, used to estimate session load
INTENSITY_FACTORS: Final[dict[int, float]] = {
    1: 0.55,
    2: 0.68,
    3: 0.83,
    4: 0.95,
    5: 1.05,
}

# =============================================================================
# ZONE CLASSIFICATION
# =============================================================================

MIN_MOVING_SECONDS: Final[int] = 600  # Sessions shorter than this are ignored
VO2MAX_SECONDS: Final[int] = 300  # z5+z6+z7 above this → vo2max
THRESHOLD_SECONDS: Final[int] = 600  # z4+ss above this → threshold
SWEETSPOT_SECONDS: Final[int] = 300  # ss above this → sweetspot

ZONE_KEYS: Final[tuple[str, ...]] = ("z1", "z2", "z3", "z4", "z5", "z6", "z7")
SWEETSPOT_KEY: Final[str] = "ss"

# =============================================================================
# PROGRESSION SCORING
# =============================================================================

CATEGORIES: Final[tuple[str, ...]] = ("endurance", "tempo", "threshold", "vo2max", "anaerobic")

ZONE_CATEGORY: Final[dict[str, str]] = {
    "z2": "endurance",
    "z3": "tempo",
    "z4": "threshold",
    "z5": "vo2max",
    "z6": "anaerobic",
    "z7": "anaerobic",
}

# Minutes per window that earn the full volume component (5 points)
CATEGORY_BASELINE_MINUTES: Final[dict[str, float]] = {
    "endurance": 600.0,
    "tempo": 180.0,
    "threshold": 120.0,
    "vo2max": 60.0,
    "anaerobic": 20.0,
}

PROGRESSION_WINDOW_DAYS: Final[int] = 28
MIN_CATEGORY_SESSION_MINUTES: Final[float] = 5.0  # Minutes in category to count a session
VOLUME_POINTS: Final[float] = 5.0
VOLUME_CAP: Final[float] = 7.0
FREQUENCY_BONUS_MAX: Final[float] = 2.0
RECENCY_BONUSES: Final[tuple[tuple[int, float], ...]] = ((7, 1.0), (14, 0.5), (21, 0.25))
LEVEL_MIN: Final[float] = 1.0
LEVEL_MAX: Final[float] = 10.0

TREND_WINDOW_DAYS: Final[int] = 14
IMPROVING_MIN_SESSIONS: Final[int] = 2
PLATEAU_TOLERANCE: Final[float] = 0.05  # Level delta treated as "unchanged"
PLATEAU_RETENTION: Final[int] = 8  # Stored progression snapshots kept

STIMULUS_WINDOW_DAYS: Final[int] = 14  # Variety window for the selector

# =============================================================================
# PERIODIZATION
# =============================================================================

PHASE_NAMES: Final[tuple[str, ...]] = ("Base", "Build", "Specialty", "Taper", "Race Week")

# (minimum weeks to target, phase); checked top to bottom
PHASE_BOUNDARIES: Final[tuple[tuple[int, str], ...]] = (
    (16, "Base"),
    (8, "Build"),
    (3, "Specialty"),
    (1, "Taper"),
    (0, "Race Week"),
)

PHASE_FOCUS: Final[dict[str, str]] = {
    "Base": "Aerobic foundation: long endurance, tempo, technique",
    "Build": "Raise threshold and VO2max with structured intervals",
    "Specialty": "Race-specific intensity and durability",
    "Taper": "Reduce volume, keep intensity, arrive fresh",
    "Race Week": "Openers and rest; protect freshness",
}

# Target long-average change per week, used by weekly load advice
PHASE_RAMP: Final[dict[str, float]] = {
    "Base": 5.0,
    "Build": 6.0,
    "Specialty": 3.0,
    "Taper": -3.0,
    "Race Week": -6.0,
}

# =============================================================================
# WORKOUT SELECTION
# =============================================================================

RECOVERY_TIERS: Final[tuple[str, ...]] = ("low", "moderate", "high")

DEFAULT_CEILING: Final[int] = 3  # No constraint, no oracle
ORACLE_DEFAULT_CEILING: Final[int] = 5  # No constraint, oracle consulted
EVENT_CEILING_MAJOR: Final[int] = 2  # A/B event tomorrow or yesterday
EVENT_CEILING_MINOR: Final[int] = 3  # C event tomorrow or yesterday
DEEP_FATIGUE_FORM: Final[float] = -20.0
DEEP_FATIGUE_CEILING: Final[int] = 2
FATIGUE_FORM: Final[float] = -10.0
FATIGUE_CEILING: Final[int] = 3
HARD_LAST_INTENSITY: Final[int] = 4
HARD_LAST_CEILING: Final[int] = 3
LOW_RECOVERY_CEILING: Final[int] = 3
EASY_INTENSITY: Final[int] = 2  # Entries at or below this count as "easy"
PREFERRED_INTENSITY: Final[int] = 3  # Tie-break target
MAX_ALTERNATES: Final[int] = 3
DEFAULT_WORKOUT_TYPE: Final[str] = "recovery_spin"

# Intensity attributed to a past session from its inferred stimulus
STIMULUS_INTENSITY: Final[dict[str, int]] = {
    "recovery": 1,
    "endurance": 2,
    "tempo": 3,
    "sweetspot": 3,
    "threshold": 4,
    "vo2max": 5,
    "anaerobic": 5,
}
PREVIEW_HORIZON_DAYS: Final[int] = 14

# =============================================================================
# RECOVERY ASSESSMENT
# =============================================================================

RECOVERY_SCORE_HIGH: Final[float] = 67.0
RECOVERY_SCORE_MODERATE: Final[float] = 34.0
HRV_RATIO_HIGH: Final[float] = 0.97
HRV_RATIO_MODERATE: Final[float] = 0.90
HRV_BASELINE_RECORDS: Final[int] = 7
SHORT_SLEEP_HOURS: Final[float] = 5.5

# =============================================================================
# EXTERNAL CALLS
# =============================================================================

RETRY_ATTEMPTS: Final[int] = 3
RETRY_BASE_DELAY: Final[float] = 1.0  # seconds; doubled per attempt
REQUEST_TIMEOUT: Final[float] = 30.0  # seconds
PROVIDER_BASE_URL: Final[str] = "https://intervals.icu/api/v1"
LOOKBACK_DAYS: Final[int] = 90


@dataclass(frozen=True)
class FitnessConfig:
    """Time constants for the long/short exponentially weighted averages."""

    long_constant: float = LONG_TIME_CONSTANT
    short_constant: float = SHORT_TIME_CONSTANT
    decimals: int = PROJECTION_DECIMALS
    intensity_factors: dict[int, float] = field(default_factory=lambda: dict(INTENSITY_FACTORS))

    def __post_init__(self) -> None:
        if self.long_constant < 1 or self.short_constant < 1:
            raise ValueError("fitness time constants must be >= 1 day")


@dataclass(frozen=True)
class ZoneConfig:
    """Thresholds for stimulus inference and progression scoring."""

    min_moving_seconds: int = MIN_MOVING_SECONDS
    vo2max_seconds: int = VO2MAX_SECONDS
    threshold_seconds: int = THRESHOLD_SECONDS
    sweetspot_seconds: int = SWEETSPOT_SECONDS
    zone_category: dict[str, str] = field(default_factory=lambda: dict(ZONE_CATEGORY))
    baseline_minutes: dict[str, float] = field(
        default_factory=lambda: dict(CATEGORY_BASELINE_MINUTES)
    )
    window_days: int = PROGRESSION_WINDOW_DAYS
    min_session_minutes: float = MIN_CATEGORY_SESSION_MINUTES
    trend_window_days: int = TREND_WINDOW_DAYS
    improving_min_sessions: int = IMPROVING_MIN_SESSIONS
    plateau_tolerance: float = PLATEAU_TOLERANCE
    plateau_retention: int = PLATEAU_RETENTION
    stimulus_window_days: int = STIMULUS_WINDOW_DAYS


@dataclass(frozen=True)
class PhaseConfig:
    """Phase boundaries, focus text, and weekly ramp targets."""

    boundaries: tuple[tuple[int, str], ...] = PHASE_BOUNDARIES
    focus: dict[str, str] = field(default_factory=lambda: dict(PHASE_FOCUS))
    ramp: dict[str, float] = field(default_factory=lambda: dict(PHASE_RAMP))


@dataclass(frozen=True)
class SelectionConfig:
    """Intensity-ceiling rules and tie-break preferences for workout selection."""

    default_ceiling: int = DEFAULT_CEILING
    oracle_default_ceiling: int = ORACLE_DEFAULT_CEILING
    event_ceiling_major: int = EVENT_CEILING_MAJOR
    event_ceiling_minor: int = EVENT_CEILING_MINOR
    deep_fatigue_form: float = DEEP_FATIGUE_FORM
    deep_fatigue_ceiling: int = DEEP_FATIGUE_CEILING
    fatigue_form: float = FATIGUE_FORM
    fatigue_ceiling: int = FATIGUE_CEILING
    hard_last_intensity: int = HARD_LAST_INTENSITY
    hard_last_ceiling: int = HARD_LAST_CEILING
    low_recovery_ceiling: int = LOW_RECOVERY_CEILING
    easy_intensity: int = EASY_INTENSITY
    preferred_intensity: int = PREFERRED_INTENSITY
    max_alternates: int = MAX_ALTERNATES
    default_type: str = DEFAULT_WORKOUT_TYPE


@dataclass(frozen=True)
class RecoveryConfig:
    """Cut-offs mapping wellness telemetry to a recovery tier."""

    score_high: float = RECOVERY_SCORE_HIGH
    score_moderate: float = RECOVERY_SCORE_MODERATE
    hrv_ratio_high: float = HRV_RATIO_HIGH
    hrv_ratio_moderate: float = HRV_RATIO_MODERATE
    hrv_baseline_records: int = HRV_BASELINE_RECORDS
    short_sleep_hours: float = SHORT_SLEEP_HOURS


@dataclass(frozen=True)
class RetryConfig:
    """Bounded retry policy for provider and oracle HTTP calls."""

    attempts: int = RETRY_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    timeout: float = REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("retry attempts must be >= 1")
        if self.base_delay < 0 or self.timeout <= 0:
            raise ValueError("retry delays must be non-negative and timeout positive")


@dataclass(frozen=True)
class OracleConfig:
    """Advisory oracle endpoint; disabled when no URL is configured."""

    url: str | None = None
    api_key: str | None = None
    enabled: bool = True

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.url)


@dataclass(frozen=True)
class CoachConfig:
    """Immutable configuration record passed into every engine component."""

    fitness: FitnessConfig = field(default_factory=FitnessConfig)
    zones: ZoneConfig = field(default_factory=ZoneConfig)
    phase: PhaseConfig = field(default_factory=PhaseConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    provider_base_url: str = PROVIDER_BASE_URL
    lookback_days: int = LOOKBACK_DAYS


DEFAULT_CONFIG: Final[CoachConfig] = CoachConfig()
