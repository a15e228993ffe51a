"""Limit evaluation — pure functions over a usage counter and its limit.

A limit of ``None`` or ``0`` means the feature is unlimited. Recording past
the limit is allowed elsewhere, so ``current_usage`` may exceed ``limit``;
``percentage`` is clamped for display while the raw counter is not.
"""

from __future__ import annotations

from src.core.constants import (
    UNLIMITED,
    UNLIMITED_DISPLAY,
    USAGE_CRITICAL_PCT,
    USAGE_LIMIT_REACHED_PCT,
    USAGE_RED_PCT,
    USAGE_WARNING_PCT,
    USAGE_YELLOW_PCT,
)
from src.core.types import ColorBand, Severity, UsageEvaluation

# Checked top-down; first threshold met wins.
SEVERITY_BANDS: tuple[tuple[float, Severity], ...] = (
    (USAGE_LIMIT_REACHED_PCT, Severity.LIMIT_REACHED),
    (USAGE_CRITICAL_PCT, Severity.CRITICAL),
    (USAGE_WARNING_PCT, Severity.WARNING),
)

COLOR_BANDS: tuple[tuple[float, ColorBand], ...] = (
    (USAGE_RED_PCT, ColorBand.RED),
    (USAGE_YELLOW_PCT, ColorBand.YELLOW),
)

STATUS_LABELS: dict[Severity, str] = {
    Severity.NORMAL: "Normal",
    Severity.WARNING: "Warning",
    Severity.CRITICAL: "Critical",
    Severity.LIMIT_REACHED: "Limit reached",
}


def is_unlimited(limit: int | None) -> bool:
    return limit is None or limit == 0


def is_exceeded(current_usage: int, limit: int | None) -> bool:
    if is_unlimited(limit):
        return False
    return current_usage >= limit  # type: ignore[operator]


def remaining(current_usage: int, limit: int | None) -> float:
    """Units left before the limit; ``UNLIMITED`` when there is no limit."""
    if is_unlimited(limit):
        return UNLIMITED
    return max(0, limit - current_usage)  # type: ignore[operator]


def percentage(current_usage: int, limit: int | None) -> float:
    if is_unlimited(limit):
        return 0.0
    return min(100.0, current_usage * 100 / limit)  # type: ignore[operator]


def can_perform(current_usage: int, limit: int | None, amount: int = 1) -> bool:
    """Pre-check for an action costing ``amount`` units. Does not record anything."""
    if is_unlimited(limit):
        return True
    return current_usage + amount <= limit  # type: ignore[operator]


def severity_for_percentage(pct: float) -> Severity:
    for threshold, band in SEVERITY_BANDS:
        if pct >= threshold:
            return band
    return Severity.NORMAL


def color_for_percentage(pct: float) -> ColorBand:
    for threshold, band in COLOR_BANDS:
        if pct >= threshold:
            return band
    return ColorBand.GREEN


def severity(current_usage: int, limit: int | None) -> Severity:
    return severity_for_percentage(percentage(current_usage, limit))


def color_band(current_usage: int, limit: int | None) -> ColorBand:
    return color_for_percentage(percentage(current_usage, limit))


def status_label(current_usage: int, limit: int | None) -> str:
    return STATUS_LABELS[severity(current_usage, limit)]


def format_usage_display(current_usage: int, limit: int | None) -> str:
    """Human-readable ``"1,234 / 5,000"``, or ``"1,234 / ∞"`` when unlimited."""
    if is_unlimited(limit):
        return f"{current_usage:,} / {UNLIMITED_DISPLAY}"
    return f"{current_usage:,} / {limit:,}"


def evaluate(current_usage: int, limit: int | None, amount: int = 1) -> UsageEvaluation:
    """Every evaluator output for one counter in a single snapshot."""
    pct = percentage(current_usage, limit)
    band = severity_for_percentage(pct)
    return UsageEvaluation(
        current_usage=current_usage,
        limit=limit,
        is_unlimited=is_unlimited(limit),
        is_exceeded=is_exceeded(current_usage, limit),
        remaining=remaining(current_usage, limit),
        percentage=pct,
        can_perform=can_perform(current_usage, limit, amount),
        severity=band,
        color=color_for_percentage(pct),
        status_label=STATUS_LABELS[band],
        display=format_usage_display(current_usage, limit),
    )
