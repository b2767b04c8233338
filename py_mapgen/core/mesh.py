"""
Mesh generation: the irregular planar graph everything else is built on.

A square grid never loses its regularity and a purely random point set is
too clumpy, so the mesh is built in two steps:

1. Generate N uniformly random points and relax them (Lloyd relaxation:
   move each point to the centroid of its Voronoi cell) k times.
2. Tessellate the relaxed points once more and take the dual graph: every
   Voronoi vertex becomes a mesh vertex and every Voronoi edge becomes a
   mesh adjacency.

Interior mesh vertices therefore have exactly three neighbours (and three
surrounding sites); corners of the extent have two.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import structlog

from .errors import MeshConfigurationError
from .tessellation import Extent, Point, ScipyVoronoiTessellator, Tessellator

logger = structlog.get_logger()

# Vertices this close (as a fraction of width/height) to a side are "near edge"
NEAR_EDGE_FRACTION = 0.05


class MeshConfig(NamedTuple):
    """Configuration for mesh generation."""
    n_points: int
    extent: Extent = Extent(1.0, 1.0)
    relax_iterations: int = 1


class MeshEdge(NamedTuple):
    """A mesh adjacency plus the two tessellation sites on either side.

    ``right`` is None for edges lying on the extent boundary.
    """
    a: int
    b: int
    left: Optional[Point]
    right: Optional[Point]


@dataclass(frozen=True, eq=False)
class Mesh:
    """Undirected planar adjacency graph with vertex positions.

    Immutable once built. Adjacency must be symmetric.
    """
    positions: np.ndarray                     # (n, 2) vertex coordinates
    adjacency: Tuple[Tuple[int, ...], ...]    # adjacency[i] = neighbour ids, in discovery order
    edges: Tuple[MeshEdge, ...]
    extent: Extent
    cell_sites: Tuple[Tuple[Point, ...], ...] = field(default=())  # sites touching each vertex
    sites: Optional[np.ndarray] = None        # the relaxed points the mesh was built from

    def __post_init__(self):
        if self.extent.is_degenerate():
            raise MeshConfigurationError(
                f"degenerate extent {self.extent.width} x {self.extent.height}"
            )

        positions = np.array(self.positions, dtype=np.float64)
        if positions.ndim != 2 or positions.shape[1] != 2:
            raise MeshConfigurationError("positions must be an (n, 2) array")
        if len(self.adjacency) != len(positions):
            raise MeshConfigurationError(
                f"{len(self.adjacency)} adjacency lists for {len(positions)} vertices"
            )
        if self.cell_sites and len(self.cell_sites) != len(positions):
            raise MeshConfigurationError(
                f"{len(self.cell_sites)} site lists for {len(positions)} vertices"
            )

        adjacency = tuple(tuple(int(j) for j in nbs) for nbs in self.adjacency)
        neighbour_sets = [set(nbs) for nbs in adjacency]
        for i, nbs in enumerate(adjacency):
            for j in nbs:
                if not 0 <= j < len(adjacency) or j == i:
                    raise MeshConfigurationError(f"vertex {i} has invalid neighbour {j}")
                if i not in neighbour_sets[j]:
                    raise MeshConfigurationError(
                        f"adjacency is not symmetric between {i} and {j}"
                    )

        positions.flags.writeable = False
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "adjacency", adjacency)
        object.__setattr__(self, "edges", tuple(self.edges))

    @classmethod
    def from_adjacency(cls, positions: Sequence[Sequence[float]],
                       adjacency: Sequence[Sequence[int]],
                       extent: Extent) -> "Mesh":
        """Build a mesh directly from positions and neighbour lists.

        Edges are derived from the adjacency and carry no site references.
        """
        edges = [
            MeshEdge(i, j, None, None)
            for i, nbs in enumerate(adjacency)
            for j in nbs
            if i < j
        ]
        return cls(
            positions=np.asarray(positions, dtype=np.float64),
            adjacency=tuple(tuple(nbs) for nbs in adjacency),
            edges=tuple(edges),
            extent=extent,
        )

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    def __len__(self) -> int:
        return self.vertex_count

    def neighbors(self, i: int) -> List[int]:
        return list(self.adjacency[i])

    def is_boundary(self, i: int) -> bool:
        """Vertices with fewer than three neighbours sit on the map boundary."""
        return len(self.adjacency[i]) < 3

    def is_near_edge(self, i: int) -> bool:
        """True if the vertex lies in the outer 5% of the extent."""
        x, y = self.positions[i]
        return bool(self._near_edge(np.array([x]), np.array([y]))[0])

    def boundary_mask(self) -> np.ndarray:
        return np.array([len(nbs) < 3 for nbs in self.adjacency], dtype=bool)

    def near_edge_mask(self) -> np.ndarray:
        return self._near_edge(self.positions[:, 0], self.positions[:, 1])

    def _near_edge(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        limit_x = (0.5 - NEAR_EDGE_FRACTION) * self.extent.width
        limit_y = (0.5 - NEAR_EDGE_FRACTION) * self.extent.height
        return (x < -limit_x) | (x > limit_x) | (y < -limit_y) | (y > limit_y)

    def distance(self, i: int, j: int) -> float:
        """Euclidean distance between two vertices."""
        p = self.positions[i]
        q = self.positions[j]
        return float(np.hypot(p[0] - q[0], p[1] - q[1]))

    def map(self, f: Callable[[np.ndarray], float]):
        """Build a height field by applying ``f`` to every vertex position."""
        from .heightfield import HeightField

        values = np.fromiter((f(p) for p in self.positions), dtype=np.float64,
                             count=self.vertex_count)
        return HeightField(values, self)


def generate_points(n: int, extent: Extent,
                    rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Generate n uniformly random points inside the extent.

    Args:
        n: Number of points
        extent: Map extent (centred on the origin)
        rng: Random generator; defaults to the module-level one

    Returns:
        (n, 2) array of [x, y] coordinates
    """
    if rng is None:
        from ..utils.random import get_rng
        rng = get_rng()
    return (rng.random((n, 2)) - 0.5) * np.array([extent.width, extent.height])


def compute_polygon_centroid(vertices: np.ndarray) -> np.ndarray:
    """Compute the centroid of a polygon.

    Args:
        vertices: Array of [x, y] vertex coordinates, in boundary order

    Returns:
        [x, y] centroid coordinates
    """
    if len(vertices) < 3:
        return np.mean(vertices, axis=0)

    x = vertices[:, 0]
    y = vertices[:, 1]
    x_next = np.roll(x, -1)
    y_next = np.roll(y, -1)
    cross = x * y_next - x_next * y
    area = cross.sum() / 2

    if abs(area) < 1e-12:
        return np.mean(vertices, axis=0)

    cx = ((x + x_next) * cross).sum() / (6.0 * area)
    cy = ((y + y_next) * cross).sum() / (6.0 * area)
    return np.array([cx, cy])


def relax_points(points: np.ndarray, extent: Extent, tessellator: Tessellator,
                 n_iterations: int = 1) -> np.ndarray:
    """Apply Lloyd's relaxation to improve point distribution.

    Moves each point to the centroid of its (clipped) Voronoi cell. Points
    whose cell comes back empty stay where they are.

    Args:
        points: Points to relax
        extent: Map extent
        tessellator: Tessellation function
        n_iterations: Number of relaxation iterations

    Returns:
        Relaxed point coordinates
    """
    points = np.array(points, dtype=np.float64)  # Don't modify original

    for iteration in range(n_iterations):
        tessellation = tessellator(points, extent)
        relaxed = points.copy()
        for i, cell in enumerate(tessellation.cells):
            if len(cell):
                relaxed[i] = compute_polygon_centroid(np.asarray(cell))

        # Clamp to map bounds
        relaxed[:, 0] = np.clip(relaxed[:, 0], extent.xmin, extent.xmax)
        relaxed[:, 1] = np.clip(relaxed[:, 1], extent.ymin, extent.ymax)
        points = relaxed
        logger.debug("Relaxation iteration complete", iteration=iteration + 1)

    return points


def _validate_points(points: np.ndarray, extent: Extent) -> None:
    if extent.is_degenerate():
        raise MeshConfigurationError(
            f"degenerate extent {extent.width} x {extent.height}"
        )
    if points.ndim != 2 or points.shape[1] != 2:
        raise MeshConfigurationError("points must be an (n, 2) array")
    if not np.all(np.isfinite(points)):
        raise MeshConfigurationError("points must be finite")
    outside = ((points[:, 0] < extent.xmin) | (points[:, 0] > extent.xmax)
               | (points[:, 1] < extent.ymin) | (points[:, 1] > extent.ymax))
    if outside.any():
        raise MeshConfigurationError(
            f"{int(outside.sum())} points lie outside the extent"
        )
    distinct = len(np.unique(points, axis=0)) if len(points) else 0
    if distinct < 4:
        raise MeshConfigurationError(f"need at least 4 distinct points, got {distinct}")


def build_mesh(points: np.ndarray, extent: Extent,
               tessellator: Optional[Tessellator] = None) -> Mesh:
    """
    Turn a set of well distributed points into a mesh.

    Every endpoint of every tessellation edge becomes a mesh vertex
    (deduplicated by position) and every edge an adjacency between its
    endpoints.

    Args:
        points: Sites to tessellate
        extent: Map extent
        tessellator: Tessellation function; defaults to scipy's Voronoi

    Returns:
        The dual mesh

    Raises:
        MeshConfigurationError: On a degenerate extent or too few points
    """
    points = np.asarray(points, dtype=np.float64)
    _validate_points(points, extent)
    tessellator = tessellator or ScipyVoronoiTessellator()

    tessellation = tessellator(points, extent)

    positions: List[Point] = []
    vertex_ids: Dict[Point, int] = {}
    adjacency: List[List[int]] = []
    cell_sites: List[List[Point]] = []
    edges: List[MeshEdge] = []

    def vertex_id(p: Point) -> int:
        key = (float(p[0]), float(p[1]))
        vid = vertex_ids.get(key)
        if vid is None:
            vid = len(positions)
            vertex_ids[key] = vid
            positions.append(key)
            adjacency.append([])
            cell_sites.append([])
        return vid

    def touch(vid: int, site: Optional[Point]) -> None:
        if site is not None and site not in cell_sites[vid]:
            cell_sites[vid].append(site)

    for edge in tessellation.edges:
        e0 = vertex_id(edge.a)
        e1 = vertex_id(edge.b)
        if e0 == e1:
            continue

        if e1 not in adjacency[e0]:
            adjacency[e0].append(e1)
            adjacency[e1].append(e0)

        left = tuple(edge.left) if edge.left is not None else None
        right = tuple(edge.right) if edge.right is not None else None
        edges.append(MeshEdge(e0, e1, left, right))

        for vid in (e0, e1):
            touch(vid, left)
            touch(vid, right)

    if len(positions) < 4:
        raise MeshConfigurationError(
            f"tessellation produced only {len(positions)} vertices"
        )

    mesh = Mesh(
        positions=np.array(positions),
        adjacency=tuple(tuple(nbs) for nbs in adjacency),
        edges=tuple(edges),
        extent=extent,
        cell_sites=tuple(tuple(s) for s in cell_sites),
        sites=points,
    )
    logger.info("Mesh built", vertices=mesh.vertex_count, edges=len(edges),
                sites=len(points))
    return mesh


def generate_mesh(config: MeshConfig, tessellator: Optional[Tessellator] = None,
                  rng: Optional[np.random.Generator] = None) -> Mesh:
    """
    Generate a complete mesh: random points, relaxation, dual graph.

    Args:
        config: Mesh configuration
        tessellator: Tessellation function; defaults to scipy's Voronoi
        rng: Random generator for point placement

    Returns:
        Mesh built from the relaxed points

    Raises:
        MeshConfigurationError: On a degenerate extent, fewer than 4 points
            or a negative relaxation count
    """
    if config.extent.is_degenerate():
        raise MeshConfigurationError(
            f"degenerate extent {config.extent.width} x {config.extent.height}"
        )
    if config.n_points < 4:
        raise MeshConfigurationError(f"need at least 4 points, got {config.n_points}")
    if config.relax_iterations < 0:
        raise MeshConfigurationError(
            f"relaxation iterations must be >= 0, got {config.relax_iterations}"
        )

    logger.info("Generating mesh", n_points=config.n_points,
                width=config.extent.width, height=config.extent.height,
                relax_iterations=config.relax_iterations)

    tessellator = tessellator or ScipyVoronoiTessellator()
    points = generate_points(config.n_points, config.extent, rng)
    points = points[np.argsort(points[:, 0], kind="stable")]
    points = relax_points(points, config.extent, tessellator, config.relax_iterations)

    return build_mesh(points, config.extent, tessellator)
