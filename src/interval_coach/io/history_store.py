"""
JSONL-based storage for progression snapshots and recommendations.

Both files live in ~/.interval-coach by default and hold one JSON object
per line.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..core.config import PLATEAU_RETENTION
from ..core.engine.config_loader import get_user_config_dir
from .serializers import ValidationError, validate_date

logger = logging.getLogger(__name__)


class ProgressionStore:
    """
    Rolling history of per-category progression levels.

    Each line is ``{"date": "YYYY-MM-DD", "levels": {category: level}}``.
    At most ``retention`` snapshots are kept; recording twice on the same
    date replaces the earlier snapshot.
    """

    def __init__(self, path: str | Path, retention: int = PLATEAU_RETENTION):
        self.path = Path(path)
        self.retention = retention

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[dict[str, Any]]:
        """
        Load all snapshots, oldest first.

        Lines that are not valid JSON or lack a date are skipped with a
        warning.
        """
        if not self.path.exists():
            return []

        snapshots: list[dict[str, Any]] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    validate_date(data["date"])
                    levels = {str(k): float(v) for k, v in data["levels"].items()}
                except (json.JSONDecodeError, ValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning("skipping snapshot line %d in %s: %s", line_num, self.path, e)
                    continue
                snapshots.append({"date": data["date"], "levels": levels})
        return sorted(snapshots, key=lambda s: s["date"])

    def previous_levels(self, before: str) -> dict[str, float] | None:
        """Levels of the latest snapshot dated strictly before ``before``."""
        earlier = [s for s in self.load() if s["date"] < before]
        return earlier[-1]["levels"] if earlier else None

    def record(self, date: str, levels: Mapping[str, float]) -> None:
        """Append a snapshot and trim to the retention limit."""
        validate_date(date)
        snapshots = [s for s in self.load() if s["date"] != date]
        snapshots.append({"date": date, "levels": dict(levels)})
        snapshots.sort(key=lambda s: s["date"])
        snapshots = snapshots[-self.retention:]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            for s in snapshots:
                f.write(json.dumps(s) + "\n")
        tmp.replace(self.path)


class RecommendationLog:
    """Append-only log of daily recommendations."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, entry: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def load(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Most recent entries last; invalid lines are skipped."""
        if not self.path.exists():
            return []
        entries: list[dict[str, Any]] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("skipping invalid line in %s", self.path)
        return entries[-limit:] if limit else entries


def get_default_progression_path() -> Path:
    return get_user_config_dir() / "progression.jsonl"


def get_default_log_path() -> Path:
    return get_user_config_dir() / "recommendations.jsonl"
