"""
Weekly load advice.

Deterministic rule: each phase has a target weekly change of the
long-average.  Holding daily load L constant for 7 days gives

    long(7) = L + (long(0) - L) · d,   d = (1 - 1/C_long)^7

so the load that achieves long(0) + ramp is L = long(0) + ramp / (1 - d).
The oracle may replace the weekly figure with its own.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .advisory import Oracle, consult
from .config import DEFAULT_CONFIG, FitnessConfig, PhaseConfig
from .models import FitnessState


@dataclass(frozen=True)
class LoadAdvice:
    """Target load for the coming week."""

    weekly_load: float
    daily_load: float
    target_ramp: float
    reasoning: str
    source: str = "fallback"


def rule_based_load(
    state: FitnessState,
    phase: str,
    fitness: FitnessConfig = DEFAULT_CONFIG.fitness,
    phases: PhaseConfig = DEFAULT_CONFIG.phase,
) -> LoadAdvice:
    """
    Compute the weekly load that moves the long-average by the phase ramp.

    Args:
        state: Current fitness state
        phase: Phase name
        fitness: FitnessConfig (long time constant)
        phases: PhaseConfig (ramp per phase)

    Returns:
        LoadAdvice (never negative)
    """
    ramp = phases.ramp.get(phase, 0.0)
    decay = (1.0 - 1.0 / fitness.long_constant) ** 7
    daily = max(0.0, state.long_avg + ramp / (1.0 - decay))
    return LoadAdvice(
        weekly_load=round(daily * 7, 0),
        daily_load=round(daily, 1),
        target_ramp=ramp,
        reasoning=f"{phase}: target fitness change {ramp:+.1f}/week from {state.long_avg:.1f}",
    )


def advise_weekly_load(
    state: FitnessState,
    phase: str,
    oracle: Oracle | None = None,
    fitness: FitnessConfig = DEFAULT_CONFIG.fitness,
    phases: PhaseConfig = DEFAULT_CONFIG.phase,
    signals: Mapping[str, Any] | None = None,
) -> LoadAdvice:
    """Oracle-first weekly load advice with the rule-based target as fallback."""
    fallback = rule_based_load(state, phase, fitness, phases)

    def parse(raw: Mapping[str, Any]) -> LoadAdvice | None:
        weekly = raw.get("weekly_load")
        if isinstance(weekly, bool) or not isinstance(weekly, (int, float)) or weekly < 0:
            return None
        reasoning = raw.get("reasoning")
        return LoadAdvice(
            weekly_load=round(float(weekly), 0),
            daily_load=round(float(weekly) / 7, 1),
            target_ramp=fallback.target_ramp,
            reasoning=reasoning if isinstance(reasoning, str) else fallback.reasoning,
            source="oracle",
        )

    context = {
        "phase": phase,
        "long_avg": round(state.long_avg, 1),
        "short_avg": round(state.short_avg, 1),
        "form": round(state.form, 1),
        "rule_weekly_load": fallback.weekly_load,
        "signals": dict(signals or {}),
    }
    return consult(oracle, "load", context, parse=parse, fallback=lambda: fallback).value
