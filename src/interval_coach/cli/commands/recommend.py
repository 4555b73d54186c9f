"""Daily recommendation commands: recommend, history."""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from ...io.history_store import RecommendationLog, get_default_log_path
from ...io.http import ProviderError
from ...io.serializers import ValidationError, recommendation_to_dict, report_to_dict
from .. import views
from ..app import (
    ConfigOption,
    DataOption,
    JsonOption,
    NoOracleOption,
    TodayOption,
    app,
    get_athlete_data,
    get_coach,
    get_config,
    resolve_today,
)


@app.command()
def recommend(
    data_path: DataOption = None,
    today: TodayOption = None,
    config_path: ConfigOption = None,
    json_out: JsonOption = False,
    no_oracle: NoOracleOption = False,
    min_minutes: Annotated[
        Optional[int],
        typer.Option("--min-minutes", help="Shortest session you have time for"),
    ] = None,
    max_minutes: Annotated[
        Optional[int],
        typer.Option("--max-minutes", help="Longest session you have time for"),
    ] = None,
    store_path: Annotated[
        Optional[Path],
        typer.Option("--store", help="Progression snapshot file (JSONL)"),
    ] = None,
    no_save: Annotated[
        bool,
        typer.Option("--no-save", help="Do not record progression snapshot or recommendation"),
    ] = False,
) -> None:
    """
    Recommend today's workout.
    """
    try:
        today = resolve_today(today)
        config = get_config(config_path, no_oracle)
        data = get_athlete_data(data_path, today, config)
    except (FileNotFoundError, ValidationError, ProviderError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if min_minutes is not None or max_minutes is not None:
        lo = min_minutes if min_minutes is not None else 1
        hi = max_minutes if max_minutes is not None else max(lo, 600)
        if lo <= 0 or hi < lo:
            views.print_error("--min-minutes must be positive and not above --max-minutes")
            raise typer.Exit(1)
        data.duration_window = (lo, hi)

    try:
        coach = get_coach(config, store_path, save=not no_save)
        report = coach.run(data, today)
    except (RuntimeError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if not no_save:
        RecommendationLog(get_default_log_path()).append(
            {"date": report.date, "phase": report.phase.name, **recommendation_to_dict(report.recommendation)}
        )

    if json_out:
        print(json.dumps(report_to_dict(report), indent=2))
        return

    views.print_report(report)
    if config.oracle.active and report.recommendation.source == "fallback":
        views.print_warning("Advisory oracle gave no usable answer; showing the rule-based choice.")


@app.command()
def history(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Number of recent recommendations to show"),
    ] = 14,
    json_out: JsonOption = False,
) -> None:
    """
    Show recently recorded recommendations.
    """
    entries = RecommendationLog(get_default_log_path()).load(limit)

    if json_out:
        print(json.dumps(entries, indent=2))
        return

    if not entries:
        views.print_info("No recommendations recorded yet. Run 'recommend' first.")
        return

    views.console.print(views.format_history_table(entries))
