"""Workout catalog and data commands: catalog, fetch."""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from ...core.engine.config_loader import get_user_config_dir
from ...io.http import ProviderError
from ...io.provider import IntervalsProvider, gather
from ...io.serializers import save_athlete_data
from .. import views
from ..app import ConfigOption, JsonOption, TodayOption, app, get_catalog, get_config, resolve_today


@app.command()
def catalog(
    config_path: ConfigOption = None,
    json_out: JsonOption = False,
) -> None:
    """
    List the workout catalog used by the rule-based selector.
    """
    try:
        config = get_config(config_path, no_oracle=True)
        workouts = get_catalog(config)
    except (RuntimeError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if json_out:
        print(json.dumps({"default": workouts.default_type, "workouts": workouts.summary()}, indent=2))
        return

    views.console.print()
    views.console.print(views.format_catalog_table(workouts))
    views.console.print()


@app.command()
def fetch(
    today: TodayOption = None,
    config_path: ConfigOption = None,
    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Output file (default: ~/.interval-coach/athlete.json)"),
    ] = None,
    days: Annotated[
        Optional[int],
        typer.Option("--days", help="Days of history to fetch (default from config)"),
    ] = None,
) -> None:
    """
    Download athlete data from intervals.icu into a replayable JSON file.

    Needs INTERVALS_ATHLETE_ID and INTERVALS_API_KEY in the environment.
    """
    try:
        today = resolve_today(today)
        config = get_config(config_path, no_oracle=True)
        provider = IntervalsProvider.from_env(config.provider_base_url, config.retry)
    except (ProviderError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    data = gather(provider, today, days or config.lookback_days)
    out = out or get_user_config_dir() / "athlete.json"
    save_athlete_data(data, out)

    views.print_success(
        f"Saved {len(data.loads)} loads, {len(data.activities)} zone summaries, "
        f"{len(data.wellness)} wellness days and {len(data.events)} events to {out}"
    )
