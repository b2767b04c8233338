"""
Territory assignment.

Territories grow outwards from their capitals over the mesh, with each
vertex going to the capital that can reach it most cheaply. This is a
multi-source Dijkstra expansion with lazy deletion: a vertex may be queued
several times, and only the cheapest entry (the first one popped) claims it.

Travel cost grows with distance, slope and river size, is high over water,
and crossing a coastline is very expensive.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .heightfield import HeightField
from .hydrology import DownhillCache, get_flux
from .mesh import Mesh
from .paths import Path, merge_and_smooth
from .priority_queue import HeapPriorityQueue, PriorityQueue

logger = structlog.get_logger()

UNASSIGNED = -1

# Cost parameters
UPHILL_DIVISOR = 10.0
SLOPE_COST_FACTOR = 0.25
RIVER_COST_FACTOR = 100.0
WATER_DIFFICULTY = 100.0
COASTLINE_COST = 1000.0
MIN_HORIZONTAL_DISTANCE = 1e-12


@dataclass(frozen=True, eq=False)
class Territories:
    """Owning capital (or UNASSIGNED) and cost of reaching each vertex."""
    owner: np.ndarray
    cost: np.ndarray  # cumulative travel cost at assignment; inf if unassigned
    capitals: Tuple[int, ...]
    mesh: Mesh

    def __len__(self) -> int:
        return len(self.owner)

    def __getitem__(self, i) -> int:
        return self.owner[i]

    def assigned_mask(self) -> np.ndarray:
        return self.owner != UNASSIGNED

    def vertices_of(self, city: int) -> np.ndarray:
        return np.flatnonzero(self.owner == city)


def travel_weight(h: HeightField, flux: np.ndarray, u: int, v: int) -> float:
    """
    Cost of travelling from vertex u to neighbouring vertex v.

    Proportional to distance and to one plus the squared slope (uphill
    climbs count for a tenth), plus a penalty growing with the river flux at
    u. Travel starting under water costs 100 per unit distance, and any move
    between land and sea costs a flat 1000.
    """
    heights = h.values
    if (heights[u] > 0) != (heights[v] > 0):
        return COASTLINE_COST

    horiz = h.mesh.distance(u, v)
    vert = heights[v] - heights[u]
    if vert > 0:
        vert /= UPHILL_DIVISOR

    if horiz < MIN_HORIZONTAL_DISTANCE:
        diff = 1.0
    else:
        diff = 1 + SLOPE_COST_FACTOR * (vert / horiz) ** 2
    diff += RIVER_COST_FACTOR * np.sqrt(flux[u])
    if heights[u] <= 0:
        diff = WATER_DIFFICULTY

    return float(horiz * diff)


def get_territories(h: HeightField, cities: Sequence[int], n_territories: int,
                    flux: Optional[np.ndarray] = None,
                    queue_factory: Callable[[], PriorityQueue] = HeapPriorityQueue,
                    cache: Optional[DownhillCache] = None) -> Territories:
    """
    Partition the mesh among the first ``n_territories`` cities.

    Each capital owns itself and queues its neighbours. The cheapest queued
    entry is popped repeatedly; if its vertex is already owned the entry is
    stale and dropped, otherwise the vertex joins the entry's capital and
    its unowned neighbours are queued at the accumulated cost. Vertices no
    capital can reach stay UNASSIGNED.

    Args:
        h: Height field (sea level at 0)
        cities: Ordered city vertex ids; the first ones are capitals
        n_territories: Number of capitals, clamped to len(cities)
        flux: Per-vertex flux; computed from ``h`` when omitted
        queue_factory: Builds the priority queue to expand with
        cache: Optional downhill memo used when computing flux

    Returns:
        Territories for every vertex
    """
    n_vertices = len(h)
    n_territories = max(0, min(n_territories, len(cities)))
    capitals = tuple(int(c) for c in cities[:n_territories])
    for city in capitals:
        if not 0 <= city < n_vertices:
            raise ValueError(f"city vertex {city} is outside the mesh")

    if flux is None:
        flux = get_flux(h, cache).values
    flux = np.asarray(flux, dtype=np.float64)

    logger.info("Assigning territories", capitals=len(capitals), vertices=n_vertices)

    adjacency = h.mesh.adjacency
    owner = np.full(n_vertices, UNASSIGNED, dtype=np.int64)
    cost = np.full(n_vertices, np.inf)
    queue = queue_factory()

    for city in capitals:
        # An earlier capital already holds this vertex
        if owner[city] != UNASSIGNED:
            continue
        owner[city] = city
        cost[city] = 0.0
        for nb in adjacency[city]:
            queue.push(travel_weight(h, flux, city, nb), (city, nb))

    stale = 0
    while len(queue):
        score, (city, vertex) = queue.pop()
        if owner[vertex] != UNASSIGNED:
            stale += 1
            continue

        owner[vertex] = city
        cost[vertex] = score

        for nb in adjacency[vertex]:
            if owner[nb] != UNASSIGNED:
                continue
            queue.push(score + travel_weight(h, flux, vertex, nb), (city, nb))

    logger.info("Territories assigned",
                assigned=int(np.count_nonzero(owner != UNASSIGNED)),
                stale_entries=stale)

    return Territories(owner=owner, cost=cost, capitals=capitals, mesh=h.mesh)


def get_borders(h: HeightField, territories: Territories) -> List[Path]:
    """
    Territory border polylines.

    An interior edge whose endpoints belong to different territories
    contributes the segment between the two sites on either side of it.
    Edges near the map edge or with an endpoint under water are skipped.
    """
    heights = h.values
    near_edge = h.mesh.near_edge_mask()
    owner = territories.owner

    segments = []
    for edge in h.mesh.edges:
        if edge.left is None or edge.right is None:
            continue
        if near_edge[edge.a] or near_edge[edge.b]:
            continue
        if heights[edge.a] < 0 or heights[edge.b] < 0:
            continue
        if owner[edge.a] != owner[edge.b]:
            segments.append((edge.left, edge.right))

    return merge_and_smooth(segments)


def territory_center(h: HeightField, territories: Territories, city: int,
                     land_only: bool = False) -> Optional[Tuple[float, float]]:
    """
    Centroid of a territory's vertex positions.

    Args:
        h: Height field
        territories: Territory assignment
        city: Capital vertex id
        land_only: Ignore vertices at or below sea level

    Returns:
        (x, y), or None if the territory has no (land) vertices
    """
    mask = territories.owner == city
    if land_only:
        mask &= h.values > 0
    if not mask.any():
        return None
    x, y = h.mesh.positions[mask].mean(axis=0)
    return (float(x), float(y))
