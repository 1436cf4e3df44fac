"""Aggregation & ranking of raw detections.

Raw detections arrive from every signal across every analyzed repository,
duplicates included. They are merged into one entry per technology
(case-insensitive), ranked by how often they were detected, and capped.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from services.tech_models import (
    DetectedTechnology,
    Detection,
    Signal,
    SignalDetection,
    TechCategory,
)

DEFAULT_MAX_TECHNOLOGIES = 200


def _resolve_category(categories: Sequence[TechCategory]) -> TechCategory:
    """Non-Other beats Other outright; then the most frequent; first seen wins ties."""
    counts = Counter(categories)
    first_seen = {c: i for i, c in reversed(list(enumerate(categories)))}
    return min(
        counts,
        key=lambda c: (c == TechCategory.OTHER, -counts[c], first_seen[c]),
    )


def aggregate_detections(
    detections: Iterable[Detection | SignalDetection],
    max_technologies: int = DEFAULT_MAX_TECHNOLOGIES,
) -> list[DetectedTechnology]:
    """Merge, rank and truncate detections.

    - grouping key is the lower-cased name; the first spelling seen is kept
    - category per :func:`_resolve_category`
    - icon is the first non-null icon in the group
    - order: frequency descending, then name ascending (case-insensitive)
    """
    names: dict[str, str] = {}
    categories: dict[str, list[TechCategory]] = {}
    icons: dict[str, str | None] = {}
    frequency: Counter[str] = Counter()

    for detection in detections:
        if not detection.name.strip():
            continue
        key = detection.name.lower()
        names.setdefault(key, detection.name)
        categories.setdefault(key, []).append(detection.category)
        if icons.get(key) is None:
            icons[key] = detection.icon
        frequency[key] += 1

    ranked = sorted(
        names,
        key=lambda k: (-frequency[k], names[k].lower(), names[k]),
    )

    return [
        DetectedTechnology(
            name=names[key],
            category=_resolve_category(categories[key]),
            icon=icons[key],
        )
        for key in ranked[:max_technologies]
    ]


def build_signal_summary(detections: Sequence[SignalDetection]) -> dict[str, int]:
    """Raw detection counts, in total and per signal."""
    per_signal = Counter(d.signal for d in detections)
    summary = {"total_detections": len(detections)}
    for signal in Signal:
        summary[signal.value] = per_signal.get(signal, 0)
    return summary
