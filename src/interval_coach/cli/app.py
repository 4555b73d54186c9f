"""Shared Typer app object, shared option types, and run helpers."""

import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from ..core.catalog import WorkoutCatalog, load_catalog
from ..core.coach import AthleteData, Coach
from ..core.config import CoachConfig
from ..core.engine.config_loader import load_coach_config
from ..io.history_store import ProgressionStore, get_default_progression_path
from ..io.oracle import HttpOracle
from ..io.provider import IntervalsProvider, gather
from ..io.serializers import load_athlete_data, validate_date

# Shared options used across commands
DataOption = Annotated[
    Optional[Path],
    typer.Option("--data", "-d", help="Athlete-data JSON file (default: fetch from intervals.icu)"),
]
TodayOption = Annotated[
    Optional[str],
    typer.Option("--today", "-t", help="Reference date YYYY-MM-DD (default: today)"),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Extra YAML config merged over the defaults"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output as JSON for machine processing"),
]
NoOracleOption = Annotated[
    bool,
    typer.Option("--no-oracle", help="Skip the advisory oracle and use the rule tables"),
]

app = typer.Typer(
    name="interval-coach",
    help="Daily endurance-training recommendations from fitness, zones and goal events.",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show decision trace and degraded-path warnings"),
    ] = False,
) -> None:
    """
    interval-coach: one workout recommendation per day.
    """
    setup_logging(verbose)


def setup_logging(verbose: bool) -> None:
    """Route package logs through Rich; warnings only unless verbose."""
    root = logging.getLogger("interval_coach")
    root.handlers.clear()
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=verbose, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


def resolve_today(today: str | None) -> str:
    """Validated --today, or the current date."""
    if today is None:
        return datetime.now().strftime("%Y-%m-%d")
    return validate_date(today)


def get_config(config_path: Path | None, no_oracle: bool = False) -> CoachConfig:
    config = load_coach_config(config_path)
    if no_oracle:
        config = replace(config, oracle=replace(config.oracle, enabled=False))
    return config


def get_catalog(config: CoachConfig) -> WorkoutCatalog:
    return load_catalog(default_type=config.selection.default_type)


def get_athlete_data(data_path: Path | None, today: str, config: CoachConfig) -> AthleteData:
    """
    Read athlete data from a file, or fetch it from intervals.icu.

    Raises:
        FileNotFoundError, ValidationError: bad data file
        ProviderError: missing provider credentials
    """
    if data_path is not None:
        return load_athlete_data(data_path)
    provider = IntervalsProvider.from_env(config.provider_base_url, config.retry)
    return gather(provider, today, config.lookback_days)


def get_coach(config: CoachConfig, store_path: Path | None = None, save: bool = True) -> Coach:
    """Coach wired with the configured oracle and the progression store."""
    snapshots = None
    if save:
        snapshots = ProgressionStore(
            store_path or get_default_progression_path(),
            retention=config.zones.plateau_retention,
        )
    return Coach(
        config,
        get_catalog(config),
        oracle=HttpOracle.from_config(config.oracle, config.retry),
        snapshots=snapshots,
    )
