"""Human readable durations ("a few seconds", "3 hours", "2 years")."""

from __future__ import annotations

import math

_DAYS_PER_MONTH = 146097 / 4800
_DAYS_PER_YEAR = 146097 / 400


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def humanize_duration(seconds: float) -> str:
    """Render an elapsed time using coarse buckets, e.g. ``45 minutes`` or ``a day``."""

    seconds = abs(float(seconds))
    days_exact = seconds / 86400
    minutes = _round(seconds / 60)
    hours = _round(seconds / 3600)
    days = _round(days_exact)
    months = _round(days_exact / _DAYS_PER_MONTH)
    years = _round(days_exact / _DAYS_PER_YEAR)

    if _round(seconds) < 45:
        return "a few seconds"
    if minutes <= 1:
        return "a minute"
    if minutes < 45:
        return f"{minutes} minutes"
    if hours <= 1:
        return "an hour"
    if hours < 22:
        return f"{hours} hours"
    if days <= 1:
        return "a day"
    if days < 26:
        return f"{days} days"
    if months <= 1:
        return "a month"
    if months < 11:
        return f"{months} months"
    if years <= 1:
        return "a year"
    return f"{years} years"
