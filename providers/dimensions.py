"""Snapping requested sizes, ratios and durations to vendor-supported values."""

from math import gcd

# (minimum width/height ratio, label), checked top to bottom
GEMINI_RATIO_THRESHOLDS = [
    (2.2, "21:9"),
    (1.6, "16:9"),
    (1.4, "3:2"),
    (1.2, "4:3"),
    (1.1, "5:4"),
    (0.9, "1:1"),
    (0.8, "4:5"),
    (0.7, "3:4"),
    (0.6, "2:3"),
]

IMAGEN_RATIO_THRESHOLDS = [
    (1.7, "16:9"),
    (1.3, "4:3"),
    (0.9, "1:1"),
    (0.7, "3:4"),
]


def ratio_from_thresholds(
    width: int | None,
    height: int | None,
    thresholds: list[tuple[float, str]],
    narrowest: str = "9:16",
    default: str = "1:1",
) -> str:
    """Pick the first label whose threshold the width/height ratio exceeds."""
    if not width or not height:
        return default
    ratio = width / height
    for minimum, label in thresholds:
        if ratio > minimum:
            return label
    return narrowest


def closest_named_ratio(width: int, height: int, tolerance: float = 0.1) -> str:
    """Match a common aspect ratio within ``tolerance``, else the reduced fraction."""
    ratio = width / height
    for label, value in (
        ("1:1", 1.0),
        ("16:9", 16 / 9),
        ("9:16", 9 / 16),
        ("4:3", 4 / 3),
        ("3:4", 3 / 4),
        ("3:2", 3 / 2),
        ("2:3", 2 / 3),
    ):
        if abs(ratio - value) < tolerance:
            return label
    divisor = gcd(width, height)
    return f"{width // divisor}:{height // divisor}"


def normalize_aspect_ratio(ratio: str | None, allowed: tuple[str, ...], default: str) -> str:
    return ratio if ratio in allowed else default


def snap_duration(requested: float | None, allowed: tuple[int, ...], default: int) -> int:
    """Round a duration up to the next supported value, capped at the longest.

    Missing or non-positive requests fall back to ``default``.
    """
    if not requested or requested <= 0:
        return default
    for value in sorted(allowed):
        if requested <= value:
            return value
    return max(allowed)
