"""
Workout catalog: the declarative rule table of the fallback selector.

Entries are loaded from the bundled ``workouts.yaml``.  A user file at
``~/.interval-coach/workouts.yaml`` is merged entry-by-entry on
``type_id``: matching entries are deep-merged over the bundled ones, new
ids are appended.  Invalid entries are skipped with a warning; a catalog
without the configured easy default cannot be used and raises.
"""

from __future__ import annotations

import warnings
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import yaml

from .config import DEFAULT_WORKOUT_TYPE, PHASE_NAMES
from .engine.config_loader import deep_merge, get_user_config_dir
from .models import WorkoutCandidate

_REQUIRED_FIELDS: frozenset[str] = frozenset(
    {
        "type_id",
        "name",
        "intensity",
        "duration_min",
        "duration_max",
        "stimulus",
        "phases",
    }
)


def candidate_from_dict(d: dict) -> WorkoutCandidate:
    """Convert a raw dict (from YAML) to a WorkoutCandidate.

    Raises ValueError if a required field is absent or a value is invalid.
    """
    missing = _REQUIRED_FIELDS - set(d)
    if missing:
        raise ValueError(f"workout missing fields: {sorted(missing)}")

    phases = tuple(str(p) for p in d["phases"])
    unknown = [p for p in phases if p not in PHASE_NAMES]
    if unknown:
        raise ValueError(f"unknown phases {unknown}")

    form_min = d.get("form_min")
    form_max = d.get("form_max")
    return WorkoutCandidate(
        type_id=str(d["type_id"]),
        name=str(d["name"]),
        intensity=int(d["intensity"]),
        duration_min=int(d["duration_min"]),
        duration_max=int(d["duration_max"]),
        stimulus=str(d["stimulus"]),
        phases=phases,
        form_min=float(form_min) if form_min is not None else None,
        form_max=float(form_max) if form_max is not None else None,
        min_recovery=str(d.get("min_recovery", "low")),
    )


class WorkoutCatalog:
    """
    Ordered, id-indexed collection of WorkoutCandidate entries.

    Args:
        entries: Catalog entries; order is the final tie-break
        default_type: Id of the guaranteed easy default
    """

    def __init__(self, entries: Sequence[WorkoutCandidate], default_type: str = DEFAULT_WORKOUT_TYPE):
        self._entries = tuple(entries)
        self._by_id = {e.type_id: e for e in self._entries}
        if default_type not in self._by_id:
            raise RuntimeError(
                f"interval-coach: workout catalog has no default entry '{default_type}'"
            )
        self.default_type = default_type

    def __iter__(self) -> Iterator[WorkoutCandidate]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._by_id

    def get(self, type_id: str) -> WorkoutCandidate | None:
        return self._by_id.get(type_id)

    @property
    def default(self) -> WorkoutCandidate:
        """The guaranteed easy default entry."""
        return self._by_id[self.default_type]

    def summary(self) -> list[dict[str, Any]]:
        """Compact catalog description for oracle requests."""
        return [
            {
                "type_id": e.type_id,
                "name": e.name,
                "intensity": e.intensity,
                "stimulus": e.stimulus,
                "duration": [e.duration_min, e.duration_max],
                "phases": list(e.phases),
            }
            for e in self._entries
        ]


def _load_entries(path: Path) -> list[dict]:
    """Load the ``workouts`` list from a YAML file; warn and return [] on errors."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        warnings.warn(f"interval-coach: ignoring catalog {path} ({exc})", stacklevel=2)
        return []
    if not isinstance(data, dict) or not isinstance(data.get("workouts"), list):
        return []
    return [e for e in data["workouts"] if isinstance(e, dict)]


def get_bundled_catalog_path() -> Path:
    """Return the path of the bundled workouts.yaml."""
    # catalog.py lives at src/interval_coach/core/catalog.py
    return Path(__file__).parent.parent / "workouts.yaml"


def load_catalog(
    path: Path | None = None,
    default_type: str = DEFAULT_WORKOUT_TYPE,
    include_user: bool = True,
) -> WorkoutCatalog:
    """
    Load the workout catalog.

    Args:
        path: Catalog file (default: bundled workouts.yaml)
        default_type: Id of the easy default that must be present
        include_user: Merge ~/.interval-coach/workouts.yaml when it exists

    Returns:
        WorkoutCatalog

    Raises:
        RuntimeError: If the resulting catalog lacks the default entry
    """
    raw: dict[str, dict] = {}
    for entry in _load_entries(path or get_bundled_catalog_path()):
        if "type_id" in entry:
            raw[str(entry["type_id"])] = entry

    user_path = get_user_config_dir() / "workouts.yaml"
    if include_user and user_path.exists():
        for entry in _load_entries(user_path):
            type_id = str(entry.get("type_id", ""))
            if not type_id:
                continue
            raw[type_id] = deep_merge(raw[type_id], entry) if type_id in raw else entry

    entries: list[WorkoutCandidate] = []
    for type_id, entry in raw.items():
        try:
            entries.append(candidate_from_dict(entry))
        except (ValueError, TypeError) as exc:
            warnings.warn(
                f"interval-coach: skipping workout '{type_id}' ({exc})",
                stacklevel=2,
            )
    return WorkoutCatalog(entries, default_type=default_type)
