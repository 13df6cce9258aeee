"""Input checks shared by the features. All raise ValidationError before any write."""

from __future__ import annotations

import math
from typing import Any

from features.errors import ValidationError


def require_amount(value: Any, label: str = "Price") -> float:
    """A finite, non-negative number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{label} must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{label} must be a finite number greater than or equal to 0")
    return float(value)


def clean_text(value: str | None) -> str | None:
    """Trimmed text, or None when blank."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def clean_highlights(values: list[str] | tuple[str, ...] | None, limit: int) -> tuple[str, ...]:
    cleaned = [v.strip() for v in values or () if v and v.strip()]
    return tuple(cleaned[:limit])
