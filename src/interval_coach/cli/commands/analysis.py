"""Analysis commands: zones, phase."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Optional

import typer

from ...core.fitness import FitnessModel
from ...core.phase import PhaseSelector
from ...core.zones import ProgressionScorer, classify_all
from ...io.history_store import ProgressionStore, get_default_progression_path
from ...io.http import ProviderError
from ...io.oracle import HttpOracle
from ...io.serializers import ValidationError, phase_to_dict, progression_to_dict
from .. import views
from ..app import (
    ConfigOption,
    DataOption,
    JsonOption,
    NoOracleOption,
    TodayOption,
    app,
    get_athlete_data,
    get_config,
    resolve_today,
)


@app.command()
def zones(
    data_path: DataOption = None,
    today: TodayOption = None,
    config_path: ConfigOption = None,
    json_out: JsonOption = False,
    recent: Annotated[
        int,
        typer.Option("--recent", "-r", help="Number of recent sessions to list"),
    ] = 10,
    store_path: Annotated[
        Optional[Path],
        typer.Option("--store", help="Progression snapshot file used for plateau detection"),
    ] = None,
) -> None:
    """
    Show per-category progression levels and recent session classification.
    """
    try:
        today = resolve_today(today)
        config = get_config(config_path, no_oracle=True)
        data = get_athlete_data(data_path, today, config)
    except (FileNotFoundError, ValidationError, ProviderError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    exposures = classify_all(data.activities, config.zones)
    store = ProgressionStore(store_path or get_default_progression_path(), config.zones.plateau_retention)
    progressions = ProgressionScorer(config.zones).score(
        exposures, as_of=today, previous_levels=store.previous_levels(today)
    )
    latest = [e for e in exposures if e.date <= today][-recent:] if recent > 0 else []

    if json_out:
        print(json.dumps({
            "date": today,
            "progression": progression_to_dict(progressions),
            "recent": [asdict(e) for e in latest],
        }, indent=2))
        return

    views.console.print()
    views.console.print(views.format_progression_table(progressions))
    if latest:
        views.console.print(views.format_exposure_table(latest))
    else:
        views.print_info("No qualifying sessions (10+ minutes with zone data).")
    views.console.print()


@app.command()
def phase(
    data_path: DataOption = None,
    today: TodayOption = None,
    config_path: ConfigOption = None,
    json_out: JsonOption = False,
    no_oracle: NoOracleOption = False,
) -> None:
    """
    Show the current training phase and weeks to the target event.
    """
    try:
        today = resolve_today(today)
        config = get_config(config_path, no_oracle)
        data = get_athlete_data(data_path, today, config)
    except (FileNotFoundError, ValidationError, ProviderError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    model = FitnessModel(config.fitness)
    state = model.current_state(data.loads, as_of=today)
    signals = {
        "long_avg": round(state.long_avg, 1),
        "form": round(state.form, 1),
        "ramp_rate": model.ramp_rate(data.loads, as_of=today),
    }
    selector = PhaseSelector(config.phase, HttpOracle.from_config(config.oracle, config.retry))
    result = selector.select(today, data.events, signals)

    if json_out:
        print(json.dumps(phase_to_dict(result), indent=2))
        return

    views.console.print()
    views.console.print(views.format_phase(result))
    upcoming = [e for e in data.events if e.date >= today]
    for event in upcoming[:5]:
        views.console.print(f"  {event.date}  [{event.priority}] {event.name}")
    views.console.print()
