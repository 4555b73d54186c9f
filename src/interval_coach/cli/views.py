"""
CLI view formatters using Rich for pretty console output.

Handles table formatting and display of reports, projections and the
workout catalog.
"""

from rich.console import Console
from rich.table import Table

from ..core.catalog import WorkoutCatalog
from ..core.coach import DailyReport
from ..core.curve import CurveEstimate
from ..core.fitness import ImpactPreview, Projection
from ..core.load_advice import LoadAdvice
from ..core.models import FitnessState, PhaseState, Recommendation, ZoneExposure, ZoneProgression

console = Console()

_TREND_STYLE = {
    "improving": "green",
    "stable": "white",
    "declining": "red",
    "plateaued": "yellow",
}

_INTENSITY_BARS = {1: "▁", 2: "▃", 3: "▅", 4: "▇", 5: "█"}


def _form_cell(form: float) -> str:
    """Colour form: green fresh, yellow neutral, red fatigued."""
    if form >= 5:
        return f"[green]{form:+.1f}[/green]"
    if form <= -10:
        return f"[red]{form:+.1f}[/red]"
    return f"[yellow]{form:+.1f}[/yellow]"


def format_fitness_line(state: FitnessState, ramp_rate: float | None = None) -> str:
    line = (
        f"Fitness {state.long_avg:.1f}  Fatigue {state.short_avg:.1f}  "
        f"Form {_form_cell(state.form)}"
    )
    if ramp_rate is not None:
        line += f"  Ramp {ramp_rate:+.1f}/wk"
    return line


def format_recommendation(rec: Recommendation) -> Table:
    """Main recommendation plus alternates."""
    source = "[magenta]oracle[/magenta]" if rec.source == "oracle" else "[cyan]rules[/cyan]"
    table = Table(title=f"Today: {rec.type_id}", show_header=False, title_justify="left")
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Intensity", f"{_INTENSITY_BARS.get(rec.intensity, '')} {rec.intensity} (ceiling {rec.intensity_ceiling})")
    table.add_row("Duration", f"{rec.duration_minutes} min")
    table.add_row("Why", rec.justification)
    table.add_row("Source", source)
    if rec.alternates:
        table.add_row(
            "Alternates",
            ", ".join(f"{a.type_id} ({a.intensity})" for a in rec.alternates),
        )
    return table


def format_phase(phase: PhaseState) -> str:
    weeks = "no target event" if phase.weeks_to_target is None else f"{phase.weeks_to_target} weeks to target"
    lines = [f"[bold]{phase.name}[/bold] ({weeks})", f"  {phase.focus}"]
    if phase.source == "oracle":
        lines.append(f"  oracle override ({phase.confidence or 'unrated'}): {phase.reasoning or ''}")
    return "\n".join(lines)


def format_threshold(estimate: CurveEstimate) -> str:
    if estimate.threshold is None:
        return "Threshold: unknown"
    text = f"Threshold: {estimate.threshold:.0f} W ({estimate.source})"
    if estimate.anaerobic_capacity is not None:
        text += f"  W' {estimate.anaerobic_capacity / 1000:.1f} kJ"
    return text


def format_load_advice(advice: LoadAdvice) -> str:
    return (
        f"Weekly load target: {advice.weekly_load:.0f} "
        f"(~{advice.daily_load:.0f}/day, {advice.source}) - {advice.reasoning}"
    )


def format_progression_table(progressions: dict[str, ZoneProgression]) -> Table:
    table = Table(title="Zone progression (28 days)")
    table.add_column("Category")
    table.add_column("Level", justify="right")
    table.add_column("Trend")
    table.add_column("Sessions", justify="right")
    table.add_column("Last trained")
    table.add_column("Avg load", justify="right")
    for p in progressions.values():
        style = _TREND_STYLE.get(p.trend, "white")
        table.add_row(
            p.category,
            f"{p.level:.1f}",
            f"[{style}]{p.trend}[/{style}]",
            str(p.session_count),
            p.last_trained or "-",
            f"{p.avg_load:.0f}",
        )
    return table


def format_exposure_table(exposures: list[ZoneExposure]) -> Table:
    table = Table(title="Recent sessions")
    table.add_column("Date")
    table.add_column("Session")
    table.add_column("Minutes", justify="right")
    table.add_column("Dominant")
    table.add_column("Stimulus")
    table.add_column("Load", justify="right")
    for e in exposures:
        table.add_row(
            e.date,
            e.session_id,
            f"{e.total_seconds / 60:.0f}",
            e.dominant_zone,
            e.stimulus,
            f"{e.load:.0f}",
        )
    return table


def format_projection_table(projection: Projection, title: str = "Projection") -> Table:
    table = Table(title=title)
    table.add_column("Date")
    table.add_column("Load", justify="right")
    table.add_column("Fitness", justify="right")
    table.add_column("Fatigue", justify="right")
    table.add_column("Form", justify="right")
    for point in projection:
        table.add_row(
            point.date,
            f"{point.planned_load:.0f}",
            f"{point.long_avg:.1f}",
            f"{point.short_avg:.1f}",
            _form_cell(point.form),
        )
    return table


def format_preview_table(preview: ImpactPreview, days: int = 7) -> Table:
    """Form with and without today's session over the first ``days`` days."""
    table = Table(title=f"Impact of today's session (load {preview.session_load:.0f})")
    table.add_column("Date")
    table.add_column("Form with", justify="right")
    table.add_column("Form without", justify="right")
    table.add_column("Δ", justify="right")
    pairs = zip(preview.with_session, preview.without_session, preview.form_delta)
    for i, (with_p, without_p, delta) in enumerate(pairs):
        if i >= days:
            break
        table.add_row(with_p.date, _form_cell(with_p.form), _form_cell(without_p.form), f"{delta:+.1f}")
    return table


def format_catalog_table(catalog: WorkoutCatalog) -> Table:
    table = Table(title=f"Workout catalog ({len(catalog)} entries)")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Int.", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("Stimulus")
    table.add_column("Phases")
    table.add_column("Form", justify="right")
    table.add_column("Recovery")
    for w in catalog:
        lo = "" if w.form_min is None else f"{w.form_min:+.0f}"
        hi = "" if w.form_max is None else f"{w.form_max:+.0f}"
        form = f"{lo}..{hi}" if lo or hi else "any"
        default = " [dim](default)[/dim]" if w.type_id == catalog.default.type_id else ""
        table.add_row(
            w.type_id + default,
            w.name,
            str(w.intensity),
            f"{w.duration_min}-{w.duration_max}",
            w.stimulus,
            ", ".join(w.phases),
            form,
            w.min_recovery,
        )
    return table


def format_history_table(entries: list[dict]) -> Table:
    table = Table(title="Recent recommendations")
    table.add_column("Date")
    table.add_column("Phase")
    table.add_column("Workout")
    table.add_column("Int.", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("Source")
    for e in entries:
        table.add_row(
            str(e.get("date", "")),
            str(e.get("phase", "")),
            str(e.get("type_id", "")),
            str(e.get("intensity", "")),
            str(e.get("duration_minutes", "")),
            str(e.get("source", "")),
        )
    return table


def print_report(report: DailyReport) -> None:
    """Full daily report: state, phase, recommendation, preview."""
    console.print()
    console.print(f"[bold cyan]interval-coach[/bold cyan] {report.date}")
    console.print(format_fitness_line(report.fitness, report.ramp_rate))
    console.print(format_threshold(report.curve))
    console.print(f"Recovery: {report.recovery}")
    console.print(format_phase(report.phase))
    console.print()
    console.print(format_recommendation(report.recommendation))
    console.print()
    console.print(format_load_advice(report.load_advice))
    console.print()
    console.print(format_preview_table(report.preview))
    console.print()


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning: {message}[/yellow]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]{message}[/blue]")
