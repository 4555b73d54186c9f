"""
Training phase selection.

The date-based phase is always computed first and is the guaranteed
result; an oracle may override the name and focus when it answers with
a well-formed phase name.  This selector never fails.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from .advisory import Oracle, consult
from .config import DEFAULT_CONFIG, PHASE_NAMES, PhaseConfig
from .models import GoalEvent, PhaseState

logger = logging.getLogger(__name__)

_FMT = "%Y-%m-%d"
_CONFIDENCE_LEVELS = ("high", "medium", "low")


def weeks_until(target_date: str, today: str) -> int:
    """Whole weeks from today to the target date (floor)."""
    days = (datetime.strptime(target_date, _FMT) - datetime.strptime(today, _FMT)).days
    return days // 7


def pick_target_event(events: Sequence[GoalEvent], today: str) -> GoalEvent | None:
    """
    Choose the event that drives periodization.

    The first upcoming A event, else the first B, else the first C.
    Events before today are ignored.
    """
    upcoming = sorted((e for e in events if e.date >= today), key=lambda e: e.date)
    for priority in ("A", "B", "C"):
        for event in upcoming:
            if event.priority == priority:
                return event
    return None


def normalize_phase_name(name: str) -> str | None:
    """Map free-form phase text onto a known name, or None."""
    if not isinstance(name, str):
        return None
    key = name.strip().lower().replace("-", " ").replace("_", " ")
    for known in PHASE_NAMES:
        if key == known.lower():
            return known
    return None


class PhaseSelector:
    """
    Maps weeks-to-target onto Base / Build / Specialty / Taper / Race Week.

    Args:
        config: PhaseConfig with boundaries and focus text
        oracle: Optional advisory oracle
    """

    def __init__(self, config: PhaseConfig = DEFAULT_CONFIG.phase, oracle: Oracle | None = None):
        self.config = config
        self.oracle = oracle

    def by_date(self, weeks_to_target: int | None) -> PhaseState:
        """Pure date arithmetic; no target (or a past one) means Base."""
        if weeks_to_target is None or weeks_to_target < 0:
            return PhaseState("Base", None, self.config.focus["Base"])
        for min_weeks, name in self.config.boundaries:
            if weeks_to_target >= min_weeks:
                return PhaseState(name, weeks_to_target, self.config.focus[name])
        name = self.config.boundaries[-1][1]
        return PhaseState(name, weeks_to_target, self.config.focus[name])

    def select(
        self,
        today: str,
        events: Sequence[GoalEvent] = (),
        signals: Mapping[str, Any] | None = None,
    ) -> PhaseState:
        """
        Select today's phase.

        Args:
            today: ISO date of the run
            events: Goal events from the calendar
            signals: Optional trajectory signals (fitness, ramp rate, ...)
                forwarded to the oracle

        Returns:
            PhaseState; the date-based result unless the oracle overrides it
        """
        target = pick_target_event(events, today)
        weeks = weeks_until(target.date, today) if target else None
        base = self.by_date(weeks)

        context = {
            "today": today,
            "date_phase": base.name,
            "weeks_to_target": weeks,
            "target_event": (
                {"date": target.date, "priority": target.priority, "name": target.name}
                if target
                else None
            ),
            "signals": dict(signals or {}),
            "phases": list(PHASE_NAMES),
        }
        advice = consult(
            self.oracle,
            "phase",
            context,
            parse=lambda raw: self._parse_override(raw, base),
            fallback=lambda: base,
        )
        if advice.source == "oracle" and advice.value.name != base.name:
            logger.info("phase override: %s → %s", base.name, advice.value.name)
        return advice.value

    def _parse_override(self, raw: Mapping[str, Any], base: PhaseState) -> PhaseState | None:
        name = normalize_phase_name(raw.get("phase", ""))
        if name is None:
            return None
        focus = raw.get("focus")
        if not isinstance(focus, str) or not focus.strip():
            focus = self.config.focus[name]
        reasoning = raw.get("reasoning")
        confidence = raw.get("confidence")
        if isinstance(confidence, str):
            confidence = confidence.strip().lower()
        if confidence not in _CONFIDENCE_LEVELS:
            confidence = None
        return PhaseState(
            name=name,
            weeks_to_target=base.weeks_to_target,
            focus=focus,
            reasoning=reasoning if isinstance(reasoning, str) else None,
            confidence=confidence,
            source="oracle",
        )
