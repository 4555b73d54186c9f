"""
Best-effort power curve analysis.

Normalizes raw peak-power curves and derives threshold power and
anaerobic work capacity (W') through a model-priority fallback chain:

1. critical_power  - work/time fit W = CP·t + W' over 3-20 minute peaks
2. provider        - the provider's own threshold estimate on the profile
3. twenty_minute   - 95 % of the 20-minute peak
4. manual          - the athlete's manually entered threshold
5. none            - no estimate (cold start)
"""

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .models import AthleteProfile

logger = logging.getLogger(__name__)

CP_MIN_SECONDS = 180
CP_MAX_SECONDS = 1200
CP_MIN_POINTS = 3
TWENTY_MINUTE_FACTOR = 0.95
SUSTAINED_SECONDS = 300


@dataclass(frozen=True)
class PowerCurve:
    """Duration-indexed peak power, sorted by duration, non-increasing in watts."""

    points: tuple[tuple[int, float], ...] = ()

    def __bool__(self) -> bool:
        return bool(self.points)

    def peak(self, seconds: int) -> float | None:
        """
        Peak power for a duration, linearly interpolated between points.

        Returns None outside the recorded range.
        """
        if not self.points:
            return None
        for i, (secs, watts) in enumerate(self.points):
            if secs == seconds:
                return watts
            if secs > seconds:
                if i == 0:
                    return None
                s0, w0 = self.points[i - 1]
                frac = (seconds - s0) / (secs - s0)
                return w0 + (watts - w0) * frac
        return None


@dataclass(frozen=True)
class CurveEstimate:
    """Threshold / W' estimate and the model that produced it."""

    threshold: float | None
    anaerobic_capacity: float | None
    source: str


def normalize_curve(
    raw: Mapping | Sequence[tuple[float, float]] | None,
) -> PowerCurve:
    """
    Normalize a raw best-effort curve.

    Accepts ``{seconds: watts}``, ``[(seconds, watts), ...]`` or the
    provider's ``{"secs": [...], "watts": [...]}`` shape.  Non-positive
    entries are dropped, the best value per duration is kept, and a longer
    duration is capped at the best shorter effort.

    Args:
        raw: Raw curve data (None → empty curve)

    Returns:
        PowerCurve sorted by duration
    """
    if not raw:
        return PowerCurve()

    if isinstance(raw, Mapping) and "secs" in raw and "watts" in raw:
        pairs = list(zip(raw["secs"], raw["watts"]))
    elif isinstance(raw, Mapping):
        pairs = list(raw.items())
    else:
        pairs = list(raw)

    best: dict[int, float] = {}
    for secs, watts in pairs:
        if secs is None or watts is None:
            continue
        secs_i = int(secs)
        watts_f = float(watts)
        if secs_i <= 0 or watts_f <= 0:
            continue
        if watts_f > best.get(secs_i, 0.0):
            best[secs_i] = watts_f

    points: list[tuple[int, float]] = []
    ceiling = float("inf")
    for secs_i in sorted(best):
        ceiling = min(ceiling, best[secs_i])
        points.append((secs_i, ceiling))
    return PowerCurve(tuple(points))


def fit_critical_power(curve: PowerCurve) -> tuple[float, float] | None:
    """
    Fit the two-parameter critical power model.

    Uses least squares on work = CP·t + W' for peaks between 3 and 20
    minutes.

    Returns:
        (CP watts, W' joules), or None when the fit is not usable
    """
    pts = [(s, w) for s, w in curve.points if CP_MIN_SECONDS <= s <= CP_MAX_SECONDS]
    if len(pts) < CP_MIN_POINTS:
        return None

    n = len(pts)
    xs = [float(s) for s, _ in pts]
    ys = [s * w for s, w in pts]
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x**2 for x in xs)

    denominator = n * sum_x2 - sum_x**2
    if abs(denominator) < 1e-10:
        return None

    cp = (n * sum_xy - sum_x * sum_y) / denominator
    w_prime = (sum_y - cp * sum_x) / n
    if cp <= 0 or w_prime <= 0:
        return None
    return (cp, w_prime)


def estimate_threshold(curve: PowerCurve, profile: AthleteProfile) -> CurveEstimate:
    """Walk the fallback chain and return the first usable estimate."""
    fit = fit_critical_power(curve)
    if fit is not None:
        cp, w_prime = fit
        return CurveEstimate(round(cp, 1), round(w_prime), "critical_power")

    if profile.estimated_threshold:
        return CurveEstimate(profile.estimated_threshold, profile.anaerobic_capacity, "provider")

    twenty = curve.peak(1200)
    if twenty:
        return CurveEstimate(
            round(twenty * TWENTY_MINUTE_FACTOR, 1), profile.anaerobic_capacity, "twenty_minute"
        )

    if profile.manual_threshold:
        return CurveEstimate(profile.manual_threshold, profile.anaerobic_capacity, "manual")

    logger.debug("no threshold estimate available")
    return CurveEstimate(None, profile.anaerobic_capacity, "none")


def refresh_profile(profile: AthleteProfile, curve: PowerCurve) -> AthleteProfile:
    """
    Return a new profile with the curve-derived estimate applied.

    The season best threshold is raised when the new estimate exceeds it.
    """
    estimate = estimate_threshold(curve, profile)
    threshold = estimate.threshold or profile.estimated_threshold
    season_best = profile.season_best_threshold
    if threshold and (season_best is None or threshold > season_best):
        season_best = threshold
    return dataclasses.replace(
        profile,
        estimated_threshold=threshold,
        season_best_threshold=season_best,
        anaerobic_capacity=estimate.anaerobic_capacity,
        max_sustained_power=curve.peak(SUSTAINED_SECONDS) or profile.max_sustained_power,
    )
