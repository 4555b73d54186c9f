"""interval-coach: training state and daily workout recommendation engine."""

__version__ = "0.1.0"
