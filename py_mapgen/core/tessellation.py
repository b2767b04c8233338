"""
Voronoi tessellation adapter.

The mesh builder only needs a function ``(points, extent) -> Tessellation``
returning clipped Voronoi edges annotated with the sites on either side, plus
the clipped cell polygon of every site (used for Lloyd relaxation). Anything
satisfying the ``Tessellator`` protocol can be plugged in; the default
implementation is built on ``scipy.spatial.Voronoi``.
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Protocol, Tuple

import numpy as np
import structlog
from scipy.spatial import Voronoi, cKDTree

logger = structlog.get_logger()

Point = Tuple[float, float]


class Extent(NamedTuple):
    """Map extent, centred on the origin."""
    width: float
    height: float

    @property
    def xmin(self) -> float:
        return -self.width / 2

    @property
    def xmax(self) -> float:
        return self.width / 2

    @property
    def ymin(self) -> float:
        return -self.height / 2

    @property
    def ymax(self) -> float:
        return self.height / 2

    def is_degenerate(self) -> bool:
        """True when the extent has no area (or is not a finite rectangle)."""
        return not (
            np.isfinite(self.width) and np.isfinite(self.height)
            and self.width > 0 and self.height > 0
        )


class VoronoiEdge(NamedTuple):
    """A Voronoi edge with the sites on either side of it.

    ``right`` is None for edges lying on the extent boundary.
    """
    a: Point
    b: Point
    left: Point
    right: Optional[Point]


@dataclass(frozen=True)
class Tessellation:
    """Result of tessellating a point set."""
    edges: List[VoronoiEdge]
    cells: List[np.ndarray]  # cells[i] = (k, 2) polygon around input point i


class Tessellator(Protocol):
    """Anything that can tessellate a point set inside an extent."""

    def __call__(self, points: np.ndarray, extent: Extent) -> Tessellation:
        ...


def mirror_points(points: np.ndarray, extent: Extent) -> np.ndarray:
    """
    Reflect points across the four sides of the extent.

    The Voronoi diagram of the original points plus their four reflections
    has cells for the original points that are exactly clipped to the
    extent rectangle.

    Args:
        points: (n, 2) array of points inside the extent
        extent: Map extent

    Returns:
        (5n, 2) array: the original points followed by the reflections
    """
    x = points[:, 0]
    y = points[:, 1]
    left = np.column_stack([2 * extent.xmin - x, y])
    right = np.column_stack([2 * extent.xmax - x, y])
    bottom = np.column_stack([x, 2 * extent.ymin - y])
    top = np.column_stack([x, 2 * extent.ymax - y])
    return np.vstack([points, left, right, bottom, top])


def merge_coincident_vertices(vertices: np.ndarray, tolerance: float) -> np.ndarray:
    """
    Map every vertex to a canonical index shared by all coincident vertices.

    Qhull emits several vertices (joined by zero-length ridges) where four or
    more sites are cocircular, which always happens along mirrored borders.

    Args:
        vertices: (m, 2) vertex coordinates
        tolerance: Distance below which two vertices are the same

    Returns:
        Integer array of canonical vertex indices (lowest index in each group)
    """
    parent = list(range(len(vertices)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    if len(vertices):
        tree = cKDTree(vertices)
        for i, j in sorted(tree.query_pairs(tolerance)):
            ri, rj = find(i), find(j)
            if ri != rj:
                parent[max(ri, rj)] = min(ri, rj)

    return np.array([find(i) for i in range(len(vertices))], dtype=np.int64)


def order_polygon(site: np.ndarray, polygon: np.ndarray) -> np.ndarray:
    """Sort polygon vertices counter-clockwise around the site."""
    if len(polygon) < 3:
        return polygon
    angles = np.arctan2(polygon[:, 1] - site[1], polygon[:, 0] - site[0])
    return polygon[np.argsort(angles, kind="stable")]


class ScipyVoronoiTessellator:
    """Clipped Voronoi tessellation built on scipy.spatial.Voronoi."""

    def __init__(self, merge_tolerance: float = 1e-9):
        """
        Args:
            merge_tolerance: Vertex merge distance, relative to the larger
                extent dimension
        """
        self.merge_tolerance = merge_tolerance

    def __call__(self, points: np.ndarray, extent: Extent) -> Tessellation:
        points = np.asarray(points, dtype=np.float64)
        n_points = len(points)

        vor = Voronoi(mirror_points(points, extent))
        tolerance = self.merge_tolerance * max(extent.width, extent.height)
        canonical = merge_coincident_vertices(vor.vertices, tolerance)

        edges = []
        for (p1, p2), ridge_vertices in zip(vor.ridge_points, vor.ridge_vertices):
            # Only ridges touching an original point lie inside the extent
            if p1 >= n_points and p2 >= n_points:
                continue
            if -1 in ridge_vertices:
                continue

            v1 = canonical[ridge_vertices[0]]
            v2 = canonical[ridge_vertices[1]]
            if v1 == v2:
                continue

            if p1 >= n_points:
                p1, p2 = p2, p1
            left = (float(points[p1][0]), float(points[p1][1]))
            right = None
            if p2 < n_points:
                right = (float(points[p2][0]), float(points[p2][1]))

            a = (float(vor.vertices[v1][0]), float(vor.vertices[v1][1]))
            b = (float(vor.vertices[v2][0]), float(vor.vertices[v2][1]))
            edges.append(VoronoiEdge(a, b, left, right))

        cells = []
        for i in range(n_points):
            region = vor.regions[vor.point_region[i]]
            if not region or -1 in region:
                cells.append(np.empty((0, 2)))
                continue
            # Drop duplicates left behind by zero-length ridges
            unique_ids = list(dict.fromkeys(int(canonical[v]) for v in region))
            cells.append(order_polygon(points[i], vor.vertices[unique_ids]))

        logger.debug("Tessellation computed", points=n_points, edges=len(edges))
        return Tessellation(edges=edges, cells=cells)
