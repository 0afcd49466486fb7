from typing import List, Sequence, Set

from checkcx.core.constants import TREND_POINT_LIMIT
from checkcx.schemas.dashboard import TrendDataPoint


def _stride_select(indices: List[int], count: int) -> List[int]:
    """Pick ``count`` entries at a uniform stride, keeping the first and last"""
    if count >= len(indices):
        return list(indices)
    if count == 1:
        return [indices[0]]
    last = len(indices) - 1
    return [indices[round(i * last / (count - 1))] for i in range(count)]


def downsample(points: Sequence[TrendDataPoint], limit: int = TREND_POINT_LIMIT) -> List[TrendDataPoint]:
    """
    Reduce an ascending trend series to at most ``limit`` points.

    Series at or under the limit come back unchanged. Longer ones keep both
    endpoints, every status transition and the latency extremes; the rest of
    the budget is filled at a uniform stride. Unselected points are dropped,
    never interpolated.
    """
    if len(points) <= limit:
        return list(points)

    selected: Set[int] = {0, len(points) - 1}

    max_latency = None
    min_latency = None
    max_index = -1
    min_index = -1

    for i, point in enumerate(points):
        if i > 0 and point.status != points[i - 1].status:
            selected.add(i)
        if point.latency_ms is not None:
            if max_latency is None or point.latency_ms > max_latency:
                max_latency = point.latency_ms
                max_index = i
            if min_latency is None or point.latency_ms < min_latency:
                min_latency = point.latency_ms
                min_index = i

    if max_index >= 0:
        selected.add(max_index)
    if min_index >= 0:
        selected.add(min_index)

    target_count = min(limit, len(points))
    sorted_indices = sorted(selected)

    if len(sorted_indices) >= target_count:
        return [points[i] for i in _stride_select(sorted_indices, target_count)]

    remaining = target_count - len(sorted_indices)
    stride = max(1, len(points) // remaining)
    i = 0
    while i < len(points) and len(selected) < target_count:
        selected.add(i)
        i += stride

    return [points[i] for i in sorted(selected)[:target_count]]
