"""
Fitness-fatigue model and projector (Banister model family).

Maintains two exponentially weighted averages of daily training load:

    avg(t) = avg(t-1) + (load(t) - avg(t-1)) / constant

with a long constant (~42 days, "fitness") and a short constant (~7 days,
"fatigue").  Form is their difference.  Every function here is pure, so
the with/without comparisons of an impact preview are independent runs.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from .config import DEFAULT_CONFIG, FitnessConfig
from .models import FitnessState, LoadSample, PreconditionError, ProjectionPoint

_FMT = "%Y-%m-%d"


def _parse(date_str: str) -> datetime:
    return datetime.strptime(date_str, _FMT)


def daily_loads(samples: Sequence[LoadSample]) -> dict[str, float]:
    """
    Collapse samples into one load per date, summing duplicates.

    Args:
        samples: Load samples in any order

    Returns:
        Dict of ISO date → total load, ordered by date
    """
    totals: dict[str, float] = {}
    for s in samples:
        if s.load < 0:
            raise PreconditionError(f"negative load {s.load} on {s.date}")
        totals[s.date] = totals.get(s.date, 0.0) + s.load
    return dict(sorted(totals.items()))


class Projection:
    """
    Finite, restartable sequence of projected fitness states.

    Iterating twice replays the recurrence from the same seed and yields
    identical points; nothing is consumed.
    """

    def __init__(self, seed: FitnessState, loads: Sequence[float], config: FitnessConfig):
        self._seed = seed
        self._loads = tuple(float(x) for x in loads)
        self._config = config

    def __len__(self) -> int:
        return len(self._loads)

    def __iter__(self) -> Iterator[ProjectionPoint]:
        cfg = self._config
        long_avg = self._seed.long_avg
        short_avg = self._seed.short_avg
        day = _parse(self._seed.date)
        for load in self._loads:
            day += timedelta(days=1)
            long_avg += (load - long_avg) / cfg.long_constant
            short_avg += (load - short_avg) / cfg.short_constant
            yield ProjectionPoint(
                date=day.strftime(_FMT),
                long_avg=round(long_avg, cfg.decimals),
                short_avg=round(short_avg, cfg.decimals),
                form=round(long_avg - short_avg, cfg.decimals),
                planned_load=round(load, cfg.decimals),
            )

    def __getitem__(self, index: int) -> ProjectionPoint:
        return list(self)[index]

    @property
    def seed(self) -> FitnessState:
        return self._seed

    @property
    def loads(self) -> tuple[float, ...]:
        """Unrounded planned load per horizon day."""
        return self._loads

    @property
    def final(self) -> ProjectionPoint | None:
        """Last projected point, or None for an empty horizon."""
        points = list(self)
        return points[-1] if points else None


@dataclass(frozen=True)
class ImpactPreview:
    """Projections with and without a hypothetical session on day one."""

    session_load: float
    with_session: Projection
    without_session: Projection

    @property
    def form_delta(self) -> list[float]:
        """Day-by-day form difference (with − without)."""
        return [
            round(a.form - b.form, 1)
            for a, b in zip(self.with_session, self.without_session)
        ]


class FitnessModel:
    """
    Long/short load averages over a daily load history.

    Args:
        config: FitnessConfig with the two time constants
    """

    def __init__(self, config: FitnessConfig = DEFAULT_CONFIG.fitness):
        self.config = config

    def _step(self, long_avg: float, short_avg: float, load: float) -> tuple[float, float]:
        long_avg += (load - long_avg) / self.config.long_constant
        short_avg += (load - short_avg) / self.config.short_constant
        return long_avg, short_avg

    def trajectory(
        self,
        history: Sequence[LoadSample],
        as_of: str | None = None,
        seed: FitnessState | None = None,
    ) -> list[FitnessState]:
        """
        Evaluate the averages once per calendar day.

        Starts the day after ``seed`` (or on the first sample's date when no
        seed is given, from zero averages) and runs through ``as_of``
        (default: last sample date).  Days without samples contribute load 0.
        Samples on or before the seed date are already folded into the seed.

        Returns:
            One FitnessState per evaluated day (may be empty)
        """
        loads = daily_loads(history)
        if seed is not None:
            loads = {d: v for d, v in loads.items() if d > seed.date}
            start = _parse(seed.date) + timedelta(days=1)
            long_avg, short_avg = seed.long_avg, seed.short_avg
        elif loads:
            start = _parse(next(iter(loads)))
            long_avg = short_avg = 0.0
        else:
            return []

        if as_of is None:
            end = _parse(max(loads)) if loads else start - timedelta(days=1)
        else:
            end = _parse(as_of)

        states: list[FitnessState] = []
        day = start
        while day <= end:
            key = day.strftime(_FMT)
            long_avg, short_avg = self._step(long_avg, short_avg, loads.get(key, 0.0))
            states.append(FitnessState(key, long_avg, short_avg))
            day += timedelta(days=1)
        return states

    def current_state(
        self,
        history: Sequence[LoadSample],
        as_of: str | None = None,
        seed: FitnessState | None = None,
    ) -> FitnessState:
        """
        Current long/short averages after applying the full history.

        Cold start (no seed, no samples) returns zero averages dated
        ``as_of`` (or today); it is not an error.
        """
        states = self.trajectory(history, as_of=as_of, seed=seed)
        if states:
            return states[-1]
        if seed is not None:
            return seed
        return FitnessState(as_of or datetime.now().strftime(_FMT), 0.0, 0.0)

    def project(
        self,
        seed: FitnessState | None,
        future_loads: Sequence[float] | Mapping[str, float],
        horizon_days: int,
    ) -> Projection:
        """
        Project the averages forward over a load forecast.

        Args:
            seed: State at the end of the last known day
            future_loads: Loads by day offset (index 0 = seed date + 1) or a
                {date: load} mapping; unplanned days are 0
            horizon_days: Number of days to project (0 → empty projection)

        Returns:
            Restartable Projection with one point per horizon day

        Raises:
            PreconditionError: Missing seed, negative horizon or negative load
        """
        if seed is None:
            raise PreconditionError("project() requires a seed FitnessState")
        if horizon_days < 0:
            raise PreconditionError(f"horizon_days must be >= 0, got {horizon_days}")

        loads = [0.0] * horizon_days
        if isinstance(future_loads, Mapping):
            seed_day = _parse(seed.date)
            for date_str, load in future_loads.items():
                if load < 0:
                    raise PreconditionError(f"negative planned load {load} on {date_str}")
                offset = (_parse(date_str) - seed_day).days - 1
                if 0 <= offset < horizon_days:
                    loads[offset] += float(load)
        else:
            for i, load in enumerate(future_loads):
                if load < 0:
                    raise PreconditionError(f"negative planned load {load} at day {i + 1}")
                if i < horizon_days:
                    loads[i] = float(load)

        return Projection(seed, loads, self.config)

    def impact_preview(
        self,
        seed: FitnessState,
        session_load: float,
        future_loads: Sequence[float] | Mapping[str, float] = (),
        horizon_days: int = 14,
    ) -> ImpactPreview:
        """
        Compare projections with and without a session on the day after seed.

        The session load is added on top of whatever is planned for day one.
        """
        if session_load < 0:
            raise PreconditionError(f"session_load must be non-negative, got {session_load}")
        baseline = self.project(seed, future_loads, horizon_days)
        loads = list(baseline.loads)
        if loads:
            loads[0] += session_load
        return ImpactPreview(
            session_load=session_load,
            with_session=Projection(seed, loads, self.config),
            without_session=baseline,
        )

    def ramp_rate(
        self,
        history: Sequence[LoadSample],
        as_of: str,
        days: int = 7,
    ) -> float:
        """
        Change of the long-average over the last ``days`` days.

        With fewer than ``days + 1`` days of history the change is measured
        from the zero cold start, i.e. the current long-average; no history
        gives 0.0.
        """
        states = self.trajectory(history, as_of=as_of)
        if len(states) <= days:
            return round(states[-1].long_avg, 1) if states else 0.0
        return round(states[-1].long_avg - states[-1 - days].long_avg, 1)

    def estimate_session_load(self, intensity: int, minutes: float) -> float:
        """
        Estimate the load of a planned session.

        load = hours × IF² × 100, with IF taken from the intensity table.
        """
        factor = self.config.intensity_factors.get(intensity, 0.75)
        return round(minutes / 60.0 * factor**2 * 100.0, 1)
