"""
Workout selection: one decision per run.

Primary path asks the oracle for ranked (type, intensity, score,
rationale) candidates and keeps the ones that validate against the
catalog.  Fallback path is a pure function of its inputs:

1. intensity ceiling = min over active constraint rules (default 3)
2. filter the catalog with one predicate loop over the rule table
3. inject an easy entry when none survived, or return the easy default
   when nothing survived at all
4. rank by least-recently-used stimulus, then intensity closest to 3

Either way the result is a catalog entry at or below the day's ceiling.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .advisory import Oracle, consult
from .catalog import WorkoutCatalog
from .config import DEFAULT_CONFIG, SelectionConfig
from .models import GoalEvent, RankedCandidate, Recommendation, WorkoutCandidate
from .recovery import tier_rank

logger = logging.getLogger(__name__)

_FMT = "%Y-%m-%d"
_PRIORITY_ORDER = ("A", "B", "C")


@dataclass(frozen=True)
class EventProximity:
    """Priority of a goal event the day before / after today, if any."""

    tomorrow: str | None = None
    yesterday: str | None = None

    @classmethod
    def from_events(cls, events: Sequence[GoalEvent], today: str) -> "EventProximity":
        """Pick the highest-priority event on each neighbouring day."""
        day = datetime.strptime(today, _FMT)
        tomorrow = (day + timedelta(days=1)).strftime(_FMT)
        yesterday = (day - timedelta(days=1)).strftime(_FMT)

        def best(date_str: str) -> str | None:
            priorities = [e.priority for e in events if e.date == date_str]
            for p in _PRIORITY_ORDER:
                if p in priorities:
                    return p
            return None

        return cls(tomorrow=best(tomorrow), yesterday=best(yesterday))


@dataclass(frozen=True)
class SelectionContext:
    """Everything the selector decides on."""

    form: float
    phase: str
    recovery: str = "unknown"
    days_since_last: int | None = None
    last_intensity: int | None = None
    stimulus_counts: Mapping[str, int] = field(default_factory=dict)
    events: EventProximity = field(default_factory=EventProximity)
    duration_window: tuple[int, int] | None = None  # minutes available

    def as_dict(self) -> dict[str, Any]:
        return {
            "form": round(self.form, 1),
            "phase": self.phase,
            "recovery": self.recovery,
            "days_since_last": self.days_since_last,
            "last_intensity": self.last_intensity,
            "stimulus_counts_14d": dict(self.stimulus_counts),
            "event_tomorrow": self.events.tomorrow,
            "event_yesterday": self.events.yesterday,
            "duration_window": list(self.duration_window) if self.duration_window else None,
        }


@dataclass(frozen=True)
class Ceiling:
    """The day's maximum intensity and the rules that set it."""

    value: int
    reasons: tuple[str, ...] = ()

    def describe(self) -> str:
        if not self.reasons:
            return f"ceiling {self.value} (no active constraint)"
        return f"ceiling {self.value} ({'; '.join(self.reasons)})"


# A ceiling rule: (description, applies(ctx, cfg), ceiling(ctx, cfg))
CeilingRule = tuple[
    str,
    Callable[[SelectionContext, SelectionConfig], bool],
    Callable[[SelectionContext, SelectionConfig], int],
]


def _event_ceiling(priority: str | None, cfg: SelectionConfig) -> int:
    return cfg.event_ceiling_minor if priority == "C" else cfg.event_ceiling_major


CEILING_RULES: tuple[CeilingRule, ...] = (
    (
        "event tomorrow",
        lambda ctx, cfg: ctx.events.tomorrow is not None,
        lambda ctx, cfg: _event_ceiling(ctx.events.tomorrow, cfg),
    ),
    (
        "event yesterday",
        lambda ctx, cfg: ctx.events.yesterday is not None,
        lambda ctx, cfg: _event_ceiling(ctx.events.yesterday, cfg),
    ),
    (
        "deep fatigue",
        lambda ctx, cfg: ctx.form < cfg.deep_fatigue_form,
        lambda ctx, cfg: cfg.deep_fatigue_ceiling,
    ),
    (
        "fatigue",
        lambda ctx, cfg: ctx.form < cfg.fatigue_form,
        lambda ctx, cfg: cfg.fatigue_ceiling,
    ),
    (
        "hard session last time",
        lambda ctx, cfg: (ctx.last_intensity or 0) >= cfg.hard_last_intensity,
        lambda ctx, cfg: cfg.hard_last_ceiling,
    ),
    (
        "low recovery",
        lambda ctx, cfg: tier_rank(ctx.recovery) < tier_rank("moderate"),
        lambda ctx, cfg: cfg.low_recovery_ceiling,
    ),
)

# A catalog predicate: (name, holds(entry, ctx, ceiling))
Predicate = tuple[str, Callable[[WorkoutCandidate, SelectionContext, int], bool]]

PREDICATES: tuple[Predicate, ...] = (
    ("intensity", lambda w, ctx, ceiling: w.intensity <= ceiling),
    ("phase", lambda w, ctx, ceiling: ctx.phase in w.phases),
    (
        "form",
        lambda w, ctx, ceiling: (w.form_min is None or ctx.form >= w.form_min)
        and (w.form_max is None or ctx.form <= w.form_max),
    ),
    ("recovery", lambda w, ctx, ceiling: tier_rank(ctx.recovery) >= tier_rank(w.min_recovery)),
)


def target_duration(entry: WorkoutCandidate, window: tuple[int, int] | None) -> int:
    """
    Duration in minutes: the middle of the catalog range clipped to the window.

    A window disjoint from the catalog range yields the nearest catalog bound.
    """
    lo, hi = entry.duration_min, entry.duration_max
    if window is not None:
        w_lo, w_hi = min(window), max(window)
        if w_hi < lo:
            return lo
        if w_lo > hi:
            return hi
        lo, hi = max(lo, w_lo), min(hi, w_hi)
    return int(round((lo + hi) / 2))


class WorkoutSelector:
    """
    Oracle-first, rule-table-fallback workout selector.

    Args:
        catalog: Static workout catalog
        config: SelectionConfig with ceiling rules and tie-break targets
        oracle: Optional advisory oracle
    """

    def __init__(
        self,
        catalog: WorkoutCatalog,
        config: SelectionConfig = DEFAULT_CONFIG.selection,
        oracle: Oracle | None = None,
    ):
        self.catalog = catalog
        self.config = config
        self.oracle = oracle

    # ------------------------------------------------------------------
    # Constraint evaluation
    # ------------------------------------------------------------------

    def intensity_ceiling(self, ctx: SelectionContext, default: int | None = None) -> Ceiling:
        """Minimum ceiling over the active rules, else ``default``."""
        value = self.config.default_ceiling if default is None else default
        active: list[tuple[str, int]] = []
        for description, applies, ceiling_of in CEILING_RULES:
            if applies(ctx, self.config):
                active.append((description, ceiling_of(ctx, self.config)))
        if not active:
            return Ceiling(value)
        value = min(c for _, c in active)
        return Ceiling(value, tuple(f"{d} → ≤{c}" for d, c in active))

    def eligible(self, ctx: SelectionContext, ceiling: int) -> list[WorkoutCandidate]:
        """Catalog entries satisfying every predicate, in catalog order."""
        result: list[WorkoutCandidate] = []
        for entry in self.catalog:
            failed = [name for name, holds in PREDICATES if not holds(entry, ctx, ceiling)]
            if failed:
                logger.debug("%s rejected: %s", entry.type_id, ", ".join(failed))
            else:
                result.append(entry)
        return result

    def _easy_entry(self, ctx: SelectionContext, ceiling: int) -> WorkoutCandidate:
        limit = min(self.config.easy_intensity, ceiling)
        easy = [e for e in self.catalog if e.intensity <= limit]
        for entry in easy:
            if ctx.phase in entry.phases:
                return entry
        return easy[0] if easy else self.catalog.default

    def rank(self, entries: Sequence[WorkoutCandidate], ctx: SelectionContext) -> list[WorkoutCandidate]:
        """Least-recently-used stimulus first, then intensity closest to 3."""
        order = {e.type_id: i for i, e in enumerate(self.catalog)}
        return sorted(
            entries,
            key=lambda e: (
                ctx.stimulus_counts.get(e.stimulus, 0),
                abs(e.intensity - self.config.preferred_intensity),
                order.get(e.type_id, len(order)),
            ),
        )

    # ------------------------------------------------------------------
    # Decision paths
    # ------------------------------------------------------------------

    def fallback(self, ctx: SelectionContext) -> Recommendation:
        """Deterministic rule-table selection; never returns nothing."""
        ceiling = self.intensity_ceiling(ctx)
        entries = self.eligible(ctx, ceiling.value)

        if not entries:
            default = self.catalog.default
            logger.info("no catalog entry met today's constraints; using %s", default.type_id)
            return Recommendation(
                type_id=default.type_id,
                intensity=min(default.intensity, ceiling.value),
                intensity_ceiling=ceiling.value,
                duration_minutes=target_duration(default, ctx.duration_window),
                justification=f"No catalog workout met today's constraints; {ceiling.describe()}",
                source="fallback",
            )

        if not any(e.intensity <= self.config.easy_intensity for e in entries):
            easy = self._easy_entry(ctx, ceiling.value)
            logger.debug("injecting easy option %s", easy.type_id)
            entries.append(easy)

        ranked = self.rank(entries, ctx)
        top = ranked[0]
        count = ctx.stimulus_counts.get(top.stimulus, 0)
        justification = (
            f"{top.name}: {top.stimulus} stimulus used {count}x in the last 14 days, "
            f"fits {ctx.phase} phase at form {ctx.form:+.1f}; {ceiling.describe()}"
        )
        alternates = tuple(
            RankedCandidate(
                type_id=e.type_id,
                intensity=e.intensity,
                score=float(len(ranked) - i),
                rationale=f"{e.stimulus}, intensity {e.intensity}",
            )
            for i, e in enumerate(ranked[1 : 1 + self.config.max_alternates], start=1)
        )
        return Recommendation(
            type_id=top.type_id,
            intensity=top.intensity,
            intensity_ceiling=ceiling.value,
            duration_minutes=target_duration(top, ctx.duration_window),
            justification=justification,
            alternates=alternates,
            source="fallback",
        )

    def validate_candidates(self, raw: Mapping[str, Any], ceiling: int) -> list[RankedCandidate]:
        """
        Strictly validate an oracle response, candidate by candidate.

        Expected shape: ``{"candidates": [{"type_id", "intensity", "score",
        "rationale"}, ...]}``.  A candidate with an unknown type id, a
        non-integer or out-of-range intensity, an intensity above the
        ceiling, or a non-numeric score is discarded; the others survive.
        Survivors are ordered by score, highest first.
        """
        items = raw.get("candidates")
        if not isinstance(items, list):
            logger.warning("oracle response has no candidate list")
            return []

        valid: list[RankedCandidate] = []
        for item in items:
            reason = self._reject_reason(item, ceiling)
            if reason:
                logger.warning("discarding oracle candidate %r: %s", item, reason)
                continue
            entry = self.catalog.get(item["type_id"])
            intensity = item.get("intensity", entry.intensity)
            rationale = item.get("rationale")
            valid.append(
                RankedCandidate(
                    type_id=entry.type_id,
                    intensity=int(intensity),
                    score=float(item.get("score", 0.0)),
                    rationale=rationale if isinstance(rationale, str) else "",
                )
            )
        return sorted(valid, key=lambda c: -c.score)

    def _reject_reason(self, item: Any, ceiling: int) -> str | None:
        if not isinstance(item, Mapping):
            return "not an object"
        type_id = item.get("type_id")
        if not isinstance(type_id, str) or type_id not in self.catalog:
            return f"unknown type id {type_id!r}"
        intensity = item.get("intensity", self.catalog.get(type_id).intensity)
        if isinstance(intensity, bool) or not isinstance(intensity, int):
            return f"intensity {intensity!r} is not an integer"
        if not 1 <= intensity <= 5:
            return f"intensity {intensity} outside 1-5"
        if intensity > ceiling:
            return f"intensity {intensity} above ceiling {ceiling}"
        score = item.get("score", 0.0)
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return f"score {score!r} is not a number"
        return None

    def select(self, ctx: SelectionContext) -> Recommendation:
        """
        Make the day's single decision.

        The oracle path is used when the oracle answers with at least one
        valid candidate; otherwise the deterministic fallback decides.
        """
        oracle_ceiling = self.intensity_ceiling(ctx, default=self.config.oracle_default_ceiling)
        context = ctx.as_dict()
        context["intensity_ceiling"] = oracle_ceiling.value
        context["catalog"] = self.catalog.summary()

        def parse(raw: Mapping[str, Any]) -> Recommendation | None:
            ranked = self.validate_candidates(raw, oracle_ceiling.value)
            if not ranked:
                return None
            top = ranked[0]
            entry = self.catalog.get(top.type_id)
            return Recommendation(
                type_id=top.type_id,
                intensity=top.intensity,
                intensity_ceiling=oracle_ceiling.value,
                duration_minutes=target_duration(entry, ctx.duration_window),
                justification=top.rationale or f"{entry.name}: ranked first by the advisor",
                alternates=tuple(ranked[1:]),
                source="oracle",
            )

        return consult(
            self.oracle,
            "workout",
            context,
            parse=parse,
            fallback=lambda: self.fallback(ctx),
        ).value
