"""
CLI entry point using Typer.

Provides commands for daily training decisions:
- recommend: Recommend today's workout
- history: Show recorded recommendations
- project: Project fitness/fatigue/form over planned loads
- zones: Show zone progression levels and session classification
- phase: Show the current training phase
- catalog: List the workout catalog
- fetch: Download athlete data from intervals.icu
"""

from .app import app
from .commands import analysis, catalog, projection, recommend  # noqa: F401  (register commands)

__all__ = ["app"]


if __name__ == "__main__":
    app()
