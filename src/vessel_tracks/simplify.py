"""
Polyline simplification for track segments.

Radial-distance prefilter followed by Douglas-Peucker. Points are sequences
whose first two items are latitude and longitude; any further items (the
[lat, lon, None, timestamp] track format) are carried along untouched.

Distances are planar in degrees. Fine for the small regions a track view
covers, wrong near the poles and across the antimeridian.
"""

from __future__ import annotations

from typing import List, Sequence


def sq_dist(p1: Sequence, p2: Sequence) -> float:
    """Squared distance between two points."""
    dx = p1[0] - p2[0]
    dy = p1[1] - p2[1]
    return dx * dx + dy * dy


def sq_seg_dist(p: Sequence, p1: Sequence, p2: Sequence) -> float:
    """Squared distance from p to the segment p1-p2."""
    x, y = p1[0], p1[1]
    dx = p2[0] - x
    dy = p2[1] - y

    if dx != 0 or dy != 0:
        t = ((p[0] - x) * dx + (p[1] - y) * dy) / (dx * dx + dy * dy)
        if t > 1:
            x, y = p2[0], p2[1]
        elif t > 0:
            x += dx * t
            y += dy * t

    dx = p[0] - x
    dy = p[1] - y
    return dx * dx + dy * dy


def simplify_radial_dist(points: Sequence, sq_tolerance: float) -> list:
    prev_index = 0
    kept = [points[0]]

    for i in range(1, len(points)):
        if sq_dist(points[i], points[prev_index]) > sq_tolerance:
            kept.append(points[i])
            prev_index = i

    last = len(points) - 1
    if prev_index != last:
        kept.append(points[last])
    return kept


def simplify_douglas_peucker(points: Sequence, sq_tolerance: float) -> list:
    last = len(points) - 1
    keep = [False] * len(points)
    keep[0] = keep[last] = True

    stack = [(0, last)]
    while stack:
        first, end = stack.pop()
        max_sq_dist = sq_tolerance
        index = None

        for i in range(first + 1, end):
            d = sq_seg_dist(points[i], points[first], points[end])
            if d > max_sq_dist:
                index = i
                max_sq_dist = d

        if index is not None:
            keep[index] = True
            if index - first > 1:
                stack.append((first, index))
            if end - index > 1:
                stack.append((index, end))

    return [p for p, k in zip(points, keep) if k]


def simplify(points: Sequence, sq_tolerance: float, highest_quality: bool = False) -> List:
    """
    Reduce `points` to a shape-preserving subset.

    Args:
        points: Track points, [lat, lon, ...]
        sq_tolerance: Squared distance (degrees^2) below which points may be dropped
        highest_quality: Skip the radial prefilter

    Returns:
        The kept points in input order. First and last input points are
        always kept; inputs of two points or fewer are returned as is.
    """
    if len(points) <= 2:
        return list(points)

    if not highest_quality:
        points = simplify_radial_dist(points, sq_tolerance)
    return simplify_douglas_peucker(points, sq_tolerance)
