"""
City placement.

Cities are placed greedily one at a time at the best-scoring vertex. Good
sites are on land, away from the map edge, on big rivers, and far from the
cities already placed.
"""

from typing import List, Optional, Sequence

import numpy as np
import structlog

from .heightfield import HeightField
from .hydrology import DownhillCache, get_flux

logger = structlog.get_logger()

EXCLUDED_SCORE = -999999.0


def city_score(h: HeightField, cities: Sequence[int],
               flux: Optional[np.ndarray] = None,
               cache: Optional[DownhillCache] = None) -> np.ndarray:
    """
    Score every vertex as a site for the next city.

    Args:
        h: Height field (sea level at 0)
        cities: Vertex ids of existing cities
        flux: Per-vertex flux; computed from ``h`` when omitted
        cache: Optional downhill memo used when computing flux

    Returns:
        Score per vertex; under-water and near-edge vertices get -999999
    """
    if flux is None:
        flux = get_flux(h, cache).values
    mesh = h.mesh
    x = mesh.positions[:, 0]
    y = mesh.positions[:, 1]

    score = np.sqrt(np.asarray(flux, dtype=np.float64))
    score += 0.01 / (1e-9 + np.abs(x) - mesh.extent.width / 2)
    score += 0.01 / (1e-9 + np.abs(y) - mesh.extent.height / 2)

    for city in cities:
        cx, cy = mesh.positions[city]
        score -= 0.02 / (np.hypot(x - cx, y - cy) + 1e-9)

    excluded = (h.values <= 0) | mesh.near_edge_mask()
    score[excluded] = EXCLUDED_SCORE
    return score


def place_city(h: HeightField, cities: Sequence[int],
               flux: Optional[np.ndarray] = None) -> List[int]:
    """Return ``cities`` with one more city at the best-scoring vertex."""
    score = city_score(h, cities, flux)
    return list(cities) + [int(np.argmax(score))]


def place_cities(h: HeightField, n: int,
                 flux: Optional[np.ndarray] = None,
                 cache: Optional[DownhillCache] = None) -> List[int]:
    """
    Place n cities one after another.

    Returns:
        Ordered list of city vertex ids
    """
    if flux is None:
        flux = get_flux(h, cache).values

    cities: List[int] = []
    for _ in range(n):
        cities = place_city(h, cities, flux)

    logger.info("Cities placed", count=len(cities))
    return cities
