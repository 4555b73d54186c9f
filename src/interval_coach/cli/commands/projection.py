"""Fitness projection command: project."""

import json
from typing import Annotated, Optional

import typer

from ...core.fitness import FitnessModel
from ...core.models import PreconditionError
from ...io.http import ProviderError
from ...io.serializers import ValidationError, fitness_state_to_dict, projection_to_list
from .. import views
from ..app import ConfigOption, DataOption, JsonOption, TodayOption, app, get_athlete_data, get_config, resolve_today


def parse_plan(plan: str) -> list[float]:
    """
    Parse a comma-separated list of daily loads, e.g. "80,0,120,60".

    Raises:
        ValueError: If an item is not a number
    """
    loads: list[float] = []
    for item in plan.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            loads.append(float(item))
        except ValueError:
            raise ValueError(f"Invalid planned load: {item!r}")
    return loads


@app.command()
def project(
    data_path: DataOption = None,
    today: TodayOption = None,
    config_path: ConfigOption = None,
    json_out: JsonOption = False,
    days: Annotated[
        int,
        typer.Option("--days", "-n", help="Projection horizon in days"),
    ] = 14,
    daily_load: Annotated[
        Optional[float],
        typer.Option("--load", "-l", help="Constant planned load per day"),
    ] = None,
    plan: Annotated[
        Optional[str],
        typer.Option("--plan", help="Comma-separated planned loads, one per day from tomorrow"),
    ] = None,
) -> None:
    """
    Project fitness, fatigue and form over a planned load sequence.
    """
    try:
        today = resolve_today(today)
        config = get_config(config_path, no_oracle=True)
        data = get_athlete_data(data_path, today, config)
        if plan is not None:
            loads = parse_plan(plan)
        elif daily_load is not None:
            loads = [daily_load] * max(days, 0)
        else:
            loads = []

        model = FitnessModel(config.fitness)
        seed = model.current_state(data.loads, as_of=today)
        projection = model.project(seed, loads, days)
    except (FileNotFoundError, ValidationError, ProviderError, PreconditionError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if json_out:
        print(json.dumps({
            "seed": fitness_state_to_dict(seed),
            "points": projection_to_list(projection),
        }, indent=2))
        return

    views.console.print()
    views.console.print(views.format_fitness_line(seed))
    views.console.print(views.format_projection_table(projection, title=f"Projection from {seed.date}"))
    final = projection.final
    if final is not None:
        views.console.print(f"Form on {final.date}: {final.form:+.1f}")
    views.console.print()
