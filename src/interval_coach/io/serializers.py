"""
JSON serialization for athlete data and engine output.

Handles conversion between dataclasses and JSON-compatible dicts.  The
athlete-data document is what ``fetch --out`` writes and what
``recommend --data`` reads, so a run can be replayed offline.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.coach import AthleteData, DailyReport
from ..core.fitness import ImpactPreview, Projection
from ..core.load_advice import LoadAdvice
from ..core.models import (
    ActivityZones,
    AthleteProfile,
    FitnessState,
    GoalEvent,
    LoadSample,
    PhaseState,
    Recommendation,
    WellnessRecord,
    ZoneProgression,
)


class ValidationError(Exception):
    """Raised when data validation fails."""

    pass


def validate_date(date_str: str) -> str:
    """
    Validate and normalize date string to ISO format.

    Raises:
        ValidationError: If date format is invalid
    """
    if not isinstance(date_str, str) or not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValidationError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")

    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"Invalid date: {date_str}") from e

    return date_str


def _build(cls: type, data: dict[str, Any], what: str) -> Any:
    """Instantiate a model dataclass, converting model errors to ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError(f"{what} must be an object, got {type(data).__name__}")
    try:
        return cls(**data)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {what}: {e}") from e


# =============================================================================
# Athlete data
# =============================================================================


def dict_to_profile(data: dict[str, Any]) -> AthleteProfile:
    return _build(AthleteProfile, data, "profile")


def dict_to_load_sample(data: dict[str, Any]) -> LoadSample:
    validate_date(data.get("date", "") if isinstance(data, dict) else "")
    return _build(LoadSample, data, "load sample")


def dict_to_activity(data: dict[str, Any]) -> ActivityZones:
    """Convert dict to ActivityZones; zone keys are lower-cased."""
    if not isinstance(data, dict):
        raise ValidationError("activity must be an object")
    validate_date(data.get("date", ""))
    fields = dict(data)
    fields["zone_seconds"] = {
        str(k).lower(): int(v) for k, v in (data.get("zone_seconds") or {}).items()
    }
    fields.setdefault("session_id", "")
    return _build(ActivityZones, fields, "activity")


def dict_to_wellness(data: dict[str, Any]) -> WellnessRecord:
    validate_date(data.get("date", "") if isinstance(data, dict) else "")
    return _build(WellnessRecord, data, "wellness record")


def dict_to_event(data: dict[str, Any]) -> GoalEvent:
    validate_date(data.get("date", "") if isinstance(data, dict) else "")
    return _build(GoalEvent, data, "event")


def dict_to_curve(data: Any) -> dict[int, float]:
    """
    Accept ``{"secs": [...], "watts": [...]}``, ``{"60": 400, ...}`` or a
    list of ``[seconds, watts]`` pairs.
    """
    if not data:
        return {}
    try:
        if isinstance(data, dict) and "secs" in data and "watts" in data:
            pairs = zip(data["secs"], data["watts"])
        elif isinstance(data, dict):
            pairs = data.items()
        else:
            pairs = data
        return {int(s): float(w) for s, w in pairs if s is not None and w is not None}
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid power curve: {e}") from e


def dict_to_athlete_data(data: dict[str, Any]) -> AthleteData:
    """
    Convert an athlete-data document to AthleteData.

    Raises:
        ValidationError: If any record is invalid
    """
    if not isinstance(data, dict):
        raise ValidationError("athlete data must be a JSON object")

    window = data.get("duration_window")
    if window is not None:
        if not isinstance(window, (list, tuple)) or len(window) != 2:
            raise ValidationError("duration_window must be [min_minutes, max_minutes]")
        window = (int(window[0]), int(window[1]))

    return AthleteData(
        profile=dict_to_profile(data.get("profile") or {}),
        loads=[dict_to_load_sample(d) for d in data.get("loads") or []],
        activities=[dict_to_activity(d) for d in data.get("activities") or []],
        wellness=[dict_to_wellness(d) for d in data.get("wellness") or []],
        curve=dict_to_curve(data.get("curve")),
        events=[dict_to_event(d) for d in data.get("events") or []],
        duration_window=window,
    )


def athlete_data_to_dict(data: AthleteData) -> dict[str, Any]:
    return {
        "profile": asdict(data.profile),
        "loads": [asdict(s) for s in data.loads],
        "activities": [asdict(a) for a in data.activities],
        "wellness": [asdict(w) for w in data.wellness],
        "curve": {str(s): w for s, w in sorted(data.curve.items())},
        "events": [asdict(e) for e in data.events],
        "duration_window": list(data.duration_window) if data.duration_window else None,
    }


def load_athlete_data(path: str | Path) -> AthleteData:
    """
    Read an athlete-data JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the content is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Athlete data file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}") from e
    return dict_to_athlete_data(raw)


def save_athlete_data(data: AthleteData, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(athlete_data_to_dict(data), f, indent=2)


# =============================================================================
# Engine output
# =============================================================================


def fitness_state_to_dict(state: FitnessState) -> dict[str, Any]:
    return {
        "date": state.date,
        "long_avg": round(state.long_avg, 1),
        "short_avg": round(state.short_avg, 1),
        "form": round(state.form, 1),
    }


def projection_to_list(projection: Projection) -> list[dict[str, Any]]:
    return [asdict(p) for p in projection]


def preview_to_dict(preview: ImpactPreview) -> dict[str, Any]:
    return {
        "session_load": preview.session_load,
        "with_session": projection_to_list(preview.with_session),
        "without_session": projection_to_list(preview.without_session),
        "form_delta": preview.form_delta,
    }


def recommendation_to_dict(rec: Recommendation) -> dict[str, Any]:
    return {
        "type_id": rec.type_id,
        "intensity": rec.intensity,
        "intensity_ceiling": rec.intensity_ceiling,
        "duration_minutes": rec.duration_minutes,
        "justification": rec.justification,
        "alternates": [asdict(a) for a in rec.alternates],
        "source": rec.source,
    }


def phase_to_dict(phase: PhaseState) -> dict[str, Any]:
    return asdict(phase)


def progression_to_dict(progressions: dict[str, ZoneProgression]) -> dict[str, Any]:
    return {c: asdict(p) for c, p in progressions.items()}


def load_advice_to_dict(advice: LoadAdvice) -> dict[str, Any]:
    return asdict(advice)


def report_to_dict(report: DailyReport, include_preview: bool = True) -> dict[str, Any]:
    """Convert a DailyReport to a JSON-compatible dict."""
    result: dict[str, Any] = {
        "date": report.date,
        "recommendation": recommendation_to_dict(report.recommendation),
        "fitness": fitness_state_to_dict(report.fitness),
        "ramp_rate": report.ramp_rate,
        "phase": phase_to_dict(report.phase),
        "recovery": report.recovery,
        "threshold": {
            "watts": report.curve.threshold,
            "anaerobic_capacity": report.curve.anaerobic_capacity,
            "source": report.curve.source,
        },
        "profile": asdict(report.profile),
        "progression": progression_to_dict(report.progressions),
        "load_advice": load_advice_to_dict(report.load_advice),
    }
    if include_preview:
        result["preview"] = preview_to_dict(report.preview)
    return result
