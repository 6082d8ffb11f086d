"""Adaptive gap-based outlier detection over a list of link scores."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from itertools import pairwise
from typing import Sequence


class OutlierType(IntEnum):
    NORMAL = 0
    SMALL = 1
    LARGE = 2


@dataclass
class Outlier:
    index: int
    value: float
    kind: OutlierType
    score: float
    ip_addr: str = ""


def _div(a: float, b: float) -> float:
    """IEEE division: a zero divisor yields an infinity or NaN instead of raising."""
    if b:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _fmin(a: float, b: float) -> float:
    return math.nan if math.isnan(a) or math.isnan(b) else min(a, b)


def _fmax(a: float, b: float) -> float:
    return math.nan if math.isnan(a) or math.isnan(b) else max(a, b)


def _log10(x: float) -> float:
    if math.isnan(x) or x < 0:
        return math.nan
    if x == 0:
        return -math.inf
    return math.log10(x)


def _median(ordered: Sequence[float]) -> float:
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def _mean_and_std(values: Sequence[float]) -> tuple[float, float]:
    mean = sum(values) / len(values)
    return mean, math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def _split_clusters(gaps: Sequence[float], threshold: float, n: int) -> list[range]:
    clusters = []
    start = 0
    for position, gap in enumerate(gaps):
        if gap > threshold:
            clusters.append(range(start, position + 1))
            start = position + 1
    clusters.append(range(start, n))
    return clusters


def _pick_main_cluster(clusters: list[range], ordered: Sequence[float], mean: float) -> range:
    n = len(ordered)
    best = clusters[0]
    best_score = -1.0
    for cluster in clusters:
        members = [ordered[i] for i in cluster]
        cluster_mean = sum(members) / len(members)
        size_score = len(cluster) / n
        position_score = _fmax(0.0, _fmin(1.0, 1.0 - abs(_div(cluster_mean - mean, mean))))
        cluster_range = ordered[cluster[-1]] - ordered[cluster[0]]
        density_score = 0.0
        if cluster_range > 0:
            overall_density = n / (ordered[-1] - ordered[0] + 0.0001)
            cluster_density = len(cluster) / (cluster_range + 0.0001)
            density_score = min(cluster_density / overall_density, 2.0)
        total = size_score * 0.6 + position_score * 0.25 + density_score * 0.15
        if total > best_score:
            best_score = total
            best = cluster
    return best


def detect_outliers_adaptive(data: Sequence[float], k: int, sensitivity: float) -> list[Outlier]:
    """Find values that stand apart from the densest cluster of ``data``.

    Returns small outliers first, then large ones, each group by descending score.
    ``sensitivity`` is accepted for interface compatibility and has no effect.
    """
    values = [float(v) for v in data]
    n = len(values)
    if n <= k:
        return []
    if n < 2:
        raise ValueError("at least two values are needed to measure gaps")

    order = sorted(range(n), key=values.__getitem__)
    ordered = [values[i] for i in order]
    mean, std_dev = _mean_and_std(ordered)

    gaps = [b - a for a, b in pairwise(ordered)]
    gap_median = _median(sorted(gaps))
    gap_mad = _median(sorted(abs(gap - gap_median) for gap in gaps))
    if gap_mad < 0.0001:
        gap_mad = max(0.0001, std_dev * 0.6745)
    gap_threshold = gap_median + 2.5 * gap_mad / 0.6745

    main = _pick_main_cluster(_split_clusters(gaps, gap_threshold, n), ordered, mean)
    main_values = [ordered[i] for i in main]
    main_mean, main_std = _mean_and_std(main_values)

    q1 = main_values[min(int(len(main_values) * 0.25), len(main_values) - 1)]
    q3 = main_values[min(int(len(main_values) * 0.75), len(main_values) - 1)]
    iqr = q3 - q1

    small_threshold = min(main_mean - 2.0 * main_std, q1 - 1.5 * iqr)
    large_threshold = max(
        main_mean + 2.0 * main_std,
        q3 + 1.5 * iqr,
        main_mean + 1.7 * main_std,
    )
    main_max = main_values[-1]
    main_range = main_max - main_values[0]

    outliers: list[Outlier] = []
    for position, original_index in enumerate(order):
        value = ordered[position]

        if value >= 100 and value > main_mean * 1.8:
            score = _log10(_div(value, main_mean)) * 3.0
            kind = OutlierType.LARGE
        elif value < small_threshold:
            deviation = _div(small_threshold - value, main_std)
            score = _fmax(1.0, math.pow(deviation, 1.2))
            kind = OutlierType.SMALL
        elif value > large_threshold:
            relative = _div(value, main_mean)
            deviation = _div(value - large_threshold, main_std)
            if relative < 1.5 and deviation < 0.8:
                continue
            score = _fmax(1.0, math.pow(deviation, 1.3))
            if value > main_max + main_range * 0.5:
                score *= 1.8
            kind = OutlierType.LARGE
        else:
            continue

        if position > 0 and kind is OutlierType.LARGE:
            if ordered[position] - ordered[position - 1] > gap_threshold:
                score *= 1.3
        if position < n - 1 and kind is OutlierType.SMALL:
            if ordered[position + 1] - ordered[position] > gap_threshold:
                score *= 1.3
        if position not in main:
            score *= 1.2
        if score < 1.0:
            score = 1.0

        outliers.append(Outlier(index=original_index, value=value, kind=kind, score=score))

    outliers.sort(key=lambda o: (o.kind is not OutlierType.SMALL, -o.score))
    return outliers