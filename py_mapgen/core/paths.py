"""
Polyline helpers shared by rivers, coastlines and territory borders.

Segments come out of the hydrology and territory code as independent
two-point links; these helpers join them into continuous polylines and
smooth the result for display.
"""

from collections import defaultdict, deque
from typing import Dict, Iterable, List, Sequence, Tuple

Point = Tuple[float, float]
Segment = Tuple[Point, Point]
Path = List[Point]


def _as_point(p: Sequence[float]) -> Point:
    return (float(p[0]), float(p[1]))


def merge_segments(segments: Iterable[Sequence[Sequence[float]]]) -> List[Path]:
    """
    Join segments that share endpoints into maximal polylines.

    A path only continues through a point shared by exactly two segments;
    junctions (three or more segments) and dead ends terminate it.

    Args:
        segments: Iterable of (start, end) point pairs

    Returns:
        List of polylines, each a list of (x, y) points
    """
    segs = [(_as_point(a), _as_point(b)) for a, b in segments]

    # point -> indices of segments touching it
    touching: Dict[Point, List[int]] = defaultdict(list)
    for idx, (a, b) in enumerate(segs):
        touching[a].append(idx)
        touching[b].append(idx)

    done = [False] * len(segs)

    def next_segment(point: Point):
        if len(touching[point]) != 2:
            return None
        for idx in touching[point]:
            if not done[idx]:
                return idx
        return None

    paths = []
    for start, (a, b) in enumerate(segs):
        if done[start]:
            continue
        done[start] = True
        path = deque([a, b])

        # Grow the tail, then the head
        idx = next_segment(path[-1])
        while idx is not None:
            done[idx] = True
            s0, s1 = segs[idx]
            path.append(s1 if s0 == path[-1] else s0)
            idx = next_segment(path[-1])

        idx = next_segment(path[0])
        while idx is not None:
            done[idx] = True
            s0, s1 = segs[idx]
            path.appendleft(s1 if s0 == path[0] else s0)
            idx = next_segment(path[0])

        paths.append(list(path))

    return paths


def relax_path(path: Sequence[Sequence[float]]) -> Path:
    """
    Smooth a polyline with 1-2-1 weights, keeping both endpoints fixed.

    Args:
        path: Sequence of (x, y) points

    Returns:
        New, smoothed polyline
    """
    points = [_as_point(p) for p in path]
    if len(points) <= 2:
        return points

    smoothed = [points[0]]
    for prev, cur, nxt in zip(points, points[1:], points[2:]):
        smoothed.append((
            0.25 * prev[0] + 0.5 * cur[0] + 0.25 * nxt[0],
            0.25 * prev[1] + 0.5 * cur[1] + 0.25 * nxt[1],
        ))
    smoothed.append(points[-1])
    return smoothed


def merge_and_smooth(segments: Iterable[Segment]) -> List[Path]:
    """Merge segments into polylines and smooth each one."""
    return [relax_path(path) for path in merge_segments(segments)]
