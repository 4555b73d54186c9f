"""
Advisory-with-fallback dispatch.

Every place the engine can ask the external oracle (phase, weekly load,
workout choice) goes through consult(): a bounded, validated oracle call
whose failure or unusable answer yields the caller's deterministic
result instead.  No oracle failure reaches the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OracleUnavailable(Exception):
    """Raised by an oracle client when no usable answer could be obtained."""


class Oracle(Protocol):
    """External advisory service."""

    def request(self, kind: str, context: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Return the structured response for ``kind``, or None for no advice."""
        ...


@dataclass(frozen=True)
class Advice(Generic[T]):
    """Result of a consultation and where it came from."""

    value: T
    source: str  # "oracle" | "fallback"


def consult(
    oracle: Oracle | None,
    kind: str,
    context: Mapping[str, Any],
    parse: Callable[[Mapping[str, Any]], T | None],
    fallback: Callable[[], T],
) -> Advice[T]:
    """
    Ask the oracle, validate its answer, else use the deterministic strategy.

    Args:
        oracle: Oracle client, or None when disabled
        kind: Request kind ("phase", "load", "workout")
        context: Structured request context
        parse: Validator turning a raw response into a value, or None if the
            response is unusable
        fallback: Deterministic strategy, called only when needed

    Returns:
        Advice with source "oracle" or "fallback"
    """
    if oracle is None:
        return Advice(fallback(), "fallback")

    try:
        raw = oracle.request(kind, context)
    except OracleUnavailable as exc:
        logger.warning("oracle unavailable for %s: %s", kind, exc)
        return Advice(fallback(), "fallback")
    except Exception:
        logger.exception("oracle call for %s failed unexpectedly", kind)
        return Advice(fallback(), "fallback")

    if not raw:
        logger.info("oracle returned no %s advice", kind)
        return Advice(fallback(), "fallback")
    if not isinstance(raw, Mapping):
        logger.warning("discarding %s advice: expected an object, got %s", kind, type(raw).__name__)
        return Advice(fallback(), "fallback")

    try:
        value = parse(raw)
    except (TypeError, ValueError, KeyError) as exc:
        logger.warning("discarding malformed %s advice: %s", kind, exc)
        value = None

    if value is None:
        logger.info("oracle %s advice failed validation; using fallback", kind)
        return Advice(fallback(), "fallback")
    return Advice(value, "oracle")
