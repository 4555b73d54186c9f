"""
YAML → typed config loader.

Loads engine constants from coach.yaml (bundled with the package) and
optionally merges user overrides from ~/.interval-coach/coach.yaml, then
builds the immutable CoachConfig record.

Usage:
    from interval_coach.core.engine.config_loader import load_coach_config
    cfg = load_coach_config()
    cfg.fitness.long_constant   # 42.0 unless overridden

If the user override file has parse errors, a warning is emitted and the
file is ignored.  Unknown keys are ignored.
"""

from __future__ import annotations

import dataclasses
import importlib.resources
import os
import warnings
from pathlib import Path
from typing import Any

import yaml

from ..config import (
    CoachConfig,
    FitnessConfig,
    OracleConfig,
    PhaseConfig,
    RecoveryConfig,
    RetryConfig,
    SelectionConfig,
    ZoneConfig,
)

_SECTIONS: dict[str, type] = {
    "fitness": FitnessConfig,
    "zones": ZoneConfig,
    "phase": PhaseConfig,
    "selection": SelectionConfig,
    "recovery": RecoveryConfig,
    "retry": RetryConfig,
    "oracle": OracleConfig,
}

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; warn and return {} on parse errors."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        warnings.warn(f"interval-coach: ignoring config {path} ({exc})", stacklevel=2)
        return {}
    return data if isinstance(data, dict) else {}


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (non-destructive to base)."""
    result = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _build_section(cls: type, raw: dict[str, Any]) -> Any:
    """Instantiate a config dataclass from the known keys of *raw*."""
    names = {f.name for f in dataclasses.fields(cls)}
    kwargs = {k: v for k, v in raw.items() if k in names}
    if cls is PhaseConfig and "boundaries" in kwargs:
        kwargs["boundaries"] = tuple((int(w), str(n)) for w, n in kwargs["boundaries"])
    if cls is FitnessConfig and "intensity_factors" in kwargs:
        kwargs["intensity_factors"] = {
            int(k): float(v) for k, v in kwargs["intensity_factors"].items()
        }
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_bundled_yaml_path() -> Path | None:
    """Return the path to the bundled coach.yaml, or None if not found."""
    ref = importlib.resources.files("interval_coach").joinpath("coach.yaml")
    if ref.is_file():
        return Path(str(ref))
    candidate = Path(__file__).parent.parent.parent / "coach.yaml"
    return candidate if candidate.exists() else None


def get_user_config_dir() -> Path:
    """Return ~/.interval-coach (may not exist)."""
    home = Path(os.environ.get("HOME", "~")).expanduser()
    return home / ".interval-coach"


def get_user_yaml_path() -> Path | None:
    """Return ~/.interval-coach/coach.yaml if it exists, else None."""
    p = get_user_config_dir() / "coach.yaml"
    return p if p.exists() else None


def load_model_config(extra_path: Path | None = None) -> dict[str, Any]:
    """
    Load and merge raw configuration from YAML sources.

    Load order (later overrides earlier):
    1. Bundled src/interval_coach/coach.yaml
    2. User override at ~/.interval-coach/coach.yaml
    3. ``extra_path`` if given (e.g. from the CLI --config option)

    Returns:
        Merged dict of config sections.  Empty dict if no YAML available.
    """
    config: dict[str, Any] = {}

    for path in (get_bundled_yaml_path(), get_user_yaml_path(), extra_path):
        if path is not None:
            config = deep_merge(config, _load_yaml_file(path))

    return config


def config_from_dict(raw: dict[str, Any]) -> CoachConfig:
    """Build a CoachConfig from a raw merged dict."""
    sections = {
        name: _build_section(cls, raw.get(name) or {})
        for name, cls in _SECTIONS.items()
    }
    top = {
        k: raw[k] for k in ("provider_base_url", "lookback_days") if k in raw
    }
    return CoachConfig(**sections, **top)


def load_coach_config(extra_path: Path | None = None) -> CoachConfig:
    """
    Load the effective CoachConfig.

    Environment variables INTERVAL_COACH_ORACLE_URL and
    INTERVAL_COACH_ORACLE_KEY fill the oracle endpoint when YAML leaves it
    unset.
    """
    raw = load_model_config(extra_path)
    oracle = dict(raw.get("oracle") or {})
    oracle.setdefault("url", None)
    oracle.setdefault("api_key", None)
    if not oracle["url"]:
        oracle["url"] = os.environ.get("INTERVAL_COACH_ORACLE_URL") or None
    if not oracle["api_key"]:
        oracle["api_key"] = os.environ.get("INTERVAL_COACH_ORACLE_KEY") or None
    raw["oracle"] = oracle
    return config_from_dict(raw)
