"""
Recovery tier assessment from wellness telemetry.

The latest record decides: a subjective/device recovery score when
present, otherwise HRV relative to the preceding records.  Short sleep
drops the result one tier.
"""

from collections.abc import Sequence

from .config import DEFAULT_CONFIG, RECOVERY_TIERS, RecoveryConfig
from .models import WellnessRecord


def tier_rank(tier: str) -> int:
    """Order tiers low < moderate < high; "unknown" ranks as moderate."""
    if tier in RECOVERY_TIERS:
        return RECOVERY_TIERS.index(tier)
    return RECOVERY_TIERS.index("moderate")


def assess_recovery(
    records: Sequence[WellnessRecord],
    config: RecoveryConfig = DEFAULT_CONFIG.recovery,
) -> str:
    """
    Derive today's recovery tier.

    Args:
        records: Wellness records (any order)
        config: RecoveryConfig cut-offs

    Returns:
        "low", "moderate", "high" or "unknown" when nothing is usable
    """
    if not records:
        return "unknown"

    ordered = sorted(records, key=lambda r: r.date)
    latest = ordered[-1]
    tier: str | None = None

    if latest.recovery_score is not None:
        if latest.recovery_score >= config.score_high:
            tier = "high"
        elif latest.recovery_score >= config.score_moderate:
            tier = "moderate"
        else:
            tier = "low"
    elif latest.hrv is not None:
        prior = [r.hrv for r in ordered[:-1][-config.hrv_baseline_records:] if r.hrv]
        if prior:
            ratio = latest.hrv / (sum(prior) / len(prior))
            if ratio >= config.hrv_ratio_high:
                tier = "high"
            elif ratio >= config.hrv_ratio_moderate:
                tier = "moderate"
            else:
                tier = "low"

    if latest.sleep_hours is not None and latest.sleep_hours < config.short_sleep_hours:
        tier = RECOVERY_TIERS[max(0, tier_rank(tier or "moderate") - 1)]

    return tier or "unknown"
