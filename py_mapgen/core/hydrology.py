"""
Hydrology: water flow, erosion and rivers.

This module implements:
- Downhill routing (steepest-descent neighbour per vertex)
- Sink filling by fixed-point relaxation
- Flux accumulation from uniform rainfall
- Slope estimation and erosion
- River extraction

Derived maps:
1. downhill[i] is the vertex water flows to from i
2. flux[i] is the fraction of all rainfall passing through i
3. erosion_rate[i] is the relative rate of soil removal at i
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import structlog

from .errors import SinkFillingNotConverged
from .heightfield import HeightField
from .paths import Path, merge_segments, relax_path

logger = structlog.get_logger()

# Downhill sentinels
LOCAL_MINIMUM = -1
BOUNDARY = -2

# Starting height for vertices that still have to find their outlet
FILL_SENTINEL = 999999.0

EROSION_FLOW_FACTOR = 1000.0
EROSION_RATE_CAP = 200.0


@dataclass
class HydrologyOptions:
    """Hydrology tuning parameters."""
    epsilon: float = 1e-5  # Minimum drop enforced between filled vertices
    max_fill_iterations: int = 2000  # Hard ceiling on sink-filling passes


class DownhillCache:
    """
    Caller-owned memo of downhill maps, keyed by ``HeightField.field_id``.

    Height fields are immutable and field ids are never reused, so an entry
    can never go stale; the cache only saves recomputation.
    """

    def __init__(self, maxsize: int = 32):
        self.maxsize = maxsize
        self._entries: "OrderedDict[int, np.ndarray]" = OrderedDict()

    def get(self, h: HeightField) -> Optional[np.ndarray]:
        downs = self._entries.get(h.field_id)
        if downs is not None:
            self._entries.move_to_end(h.field_id)
        return downs

    def store(self, h: HeightField, downs: np.ndarray) -> None:
        self._entries[h.field_id] = downs
        self._entries.move_to_end(h.field_id)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, h: HeightField) -> bool:
        return h.field_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def downhill(h: HeightField, cache: Optional[DownhillCache] = None) -> np.ndarray:
    """
    Find the steepest-descent neighbour of every vertex.

    Args:
        h: Height field
        cache: Optional memo to read from and write to

    Returns:
        Read-only int array: the lowest strictly-lower neighbour of each
        vertex (first one in neighbour order wins ties), LOCAL_MINIMUM if no
        neighbour is lower, BOUNDARY for boundary vertices
    """
    if cache is not None:
        downs = cache.get(h)
        if downs is not None:
            return downs

    heights = h.values.tolist()
    downs = np.empty(len(heights), dtype=np.int64)

    for i, nbs in enumerate(h.mesh.adjacency):
        if len(nbs) < 3:
            downs[i] = BOUNDARY
            continue
        best = LOCAL_MINIMUM
        best_height = heights[i]
        for j in nbs:
            if heights[j] < best_height:
                best_height = heights[j]
                best = j
        downs[i] = best

    downs.flags.writeable = False
    if cache is not None:
        cache.store(h, downs)
    return downs


def find_sinks(h: HeightField, cache: Optional[DownhillCache] = None) -> np.ndarray:
    """
    Follow the downhill chain from every vertex to where its water ends up.

    Returns:
        Int array: the local-minimum vertex each vertex drains into, or
        BOUNDARY when the water leaves the map
    """
    downs = downhill(h, cache)
    sinks = np.empty(len(h), dtype=np.int64)
    resolved = {}

    for i in range(len(h)):
        path = []
        node = i
        while True:
            if node in resolved:
                outcome = resolved[node]
                break
            path.append(node)
            target = downs[node]
            if target == BOUNDARY:
                outcome = BOUNDARY
                break
            if target == LOCAL_MINIMUM:
                outcome = node
                break
            node = int(target)
        for p in path:
            resolved[p] = outcome
        sinks[i] = outcome

    return sinks


def trislope(h: HeightField, i: int) -> Tuple[float, float]:
    """
    Estimate the gradient at a vertex from its three neighbours.

    Solves the 2x2 system formed by the height differences of neighbours 1
    and 2 relative to neighbour 0 against their position differences.

    Returns:
        (dh/dx, dh/dy); (0, 0) unless the vertex has exactly three
        neighbours in general position
    """
    nbs = h.mesh.adjacency[i]
    if len(nbs) != 3:
        return (0.0, 0.0)

    positions = h.mesh.positions
    p0 = positions[nbs[0]]
    p1 = positions[nbs[1]]
    p2 = positions[nbs[2]]

    x1 = p1[0] - p0[0]
    x2 = p2[0] - p0[0]
    y1 = p1[1] - p0[1]
    y2 = p2[1] - p0[1]

    det = x1 * y2 - x2 * y1
    if det == 0:
        return (0.0, 0.0)

    h1 = h.values[nbs[1]] - h.values[nbs[0]]
    h2 = h.values[nbs[2]] - h.values[nbs[0]]

    return (float((y2 * h1 - y1 * h2) / det),
            float((-x2 * h1 + x1 * h2) / det))


def get_slope(h: HeightField) -> HeightField:
    """Steepness map: magnitude of the trislope gradient at every vertex."""
    steepness = np.zeros(len(h))
    for i in range(len(h)):
        sx, sy = trislope(h, i)
        steepness[i] = np.hypot(sx, sy)
    return h.copy_with(steepness)


def fill_sinks(h: HeightField, epsilon: float = 1e-5,
               max_iterations: int = 2000) -> HeightField:
    """
    Fill depressions so that water can drain towards the map edge.

    Vertices in the outer 5% of the map keep their height; every other
    vertex starts at FILL_SENTINEL and is relaxed down pass after pass:

    - if its true height is at least a neighbour's filled height plus
      epsilon it has found an outlet and snaps back to its true height;
    - otherwise, if that neighbour's filled height plus epsilon lies between
      its true height and its current filled height, it is lowered to it.

    Updates are applied in place during a pass. Passes repeat until one
    changes nothing.

    A connected region with no vertex near the map edge never finds an
    outlet; its vertices keep FILL_SENTINEL and a warning is logged.

    Args:
        h: Height field
        epsilon: Minimum drop between a filled vertex and its outlet
        max_iterations: Ceiling on the number of passes

    Returns:
        Filled height field

    Raises:
        SinkFillingNotConverged: If the ceiling is reached; carries the
            partially filled field
    """
    mesh = h.mesh
    heights = h.values.tolist()
    near_edge = mesh.near_edge_mask()
    filled = [heights[i] if near_edge[i] else FILL_SENTINEL for i in range(len(heights))]
    adjacency = mesh.adjacency

    for iteration in range(1, max_iterations + 1):
        changed = False
        for i, nbs in enumerate(adjacency):
            true_height = heights[i]
            if filled[i] == true_height:
                continue
            for j in nbs:
                outlet = filled[j] + epsilon
                if true_height >= outlet:
                    filled[i] = true_height
                    changed = True
                    break
                if filled[i] > outlet > true_height:
                    filled[i] = outlet
                    changed = True
        if not changed:
            stranded = sum(1 for v in filled if v == FILL_SENTINEL)
            if stranded:
                logger.warning("Vertices without an outlet kept the fill sentinel",
                               vertices=stranded)
            logger.debug("Sink filling converged", iterations=iteration)
            return h.copy_with(filled)

    logger.warning("Sink filling hit iteration ceiling", iterations=max_iterations)
    raise SinkFillingNotConverged(h.copy_with(filled), max_iterations)


def get_flux(h: HeightField, cache: Optional[DownhillCache] = None) -> HeightField:
    """
    Accumulate uniform rainfall down the downhill map.

    Every vertex receives 1/n of the rain. Vertices are visited from highest
    to lowest, each passing its accumulated flux to its downhill target.

    Returns:
        Per-vertex fraction of total rainfall flowing through it
    """
    downs = downhill(h, cache).tolist()
    n = len(h)
    flux = [1.0 / n] * n

    for j in np.argsort(-h.values, kind="stable").tolist():
        target = downs[j]
        if target >= 0:
            flux[target] += flux[j]

    return h.copy_with(flux)


def erosion_rate(h: HeightField, cache: Optional[DownhillCache] = None) -> HeightField:
    """
    Erosion rate per vertex.

    Flow velocity is proportional to slope, so river erosion goes as
    sqrt(flux) * slope; creep adds slope squared. Capped at 200.
    """
    flux = get_flux(h, cache).values
    steepness = get_slope(h).values
    river = np.sqrt(flux) * steepness
    creep = steepness * steepness
    total = EROSION_FLOW_FACTOR * river + creep
    return h.copy_with(np.minimum(total, EROSION_RATE_CAP))


def erode(h: HeightField, amount: float,
          cache: Optional[DownhillCache] = None) -> HeightField:
    """
    Lower every vertex in proportion to its erosion rate.

    Rates are scaled so the fastest-eroding vertex loses exactly ``amount``.
    A field with no erosion anywhere comes back unchanged.
    """
    rates = erosion_rate(h, cache).values
    max_rate = rates.max()
    if not max_rate > 0:
        logger.warning("No erosion possible on this field")
        return h.copy_with(h.values)
    return h.copy_with(h.values - amount * (rates / max_rate))


def _fill_or_partial(h: HeightField, options: HydrologyOptions) -> HeightField:
    try:
        return fill_sinks(h, options.epsilon, options.max_fill_iterations)
    except SinkFillingNotConverged as exc:
        logger.warning("Continuing with partially filled field",
                       iterations=exc.iterations)
        return exc.partial


def do_erosion(h: HeightField, amount: float, cycles: int = 1,
               options: Optional[HydrologyOptions] = None,
               cache: Optional[DownhillCache] = None) -> HeightField:
    """
    Erode rivers and fill depressions.

    Fills sinks once, then alternates erode and fill ``cycles`` times, since
    erosion can dig new depressions.

    Args:
        h: Height field
        amount: Maximum per-vertex erosion per cycle
        cycles: Number of erosion cycles
        options: Sink-filling parameters
        cache: Optional downhill memo

    Returns:
        Eroded height field
    """
    options = options or HydrologyOptions()
    logger.info("Running erosion", amount=amount, cycles=cycles)

    h = _fill_or_partial(h, options)
    for cycle in range(cycles):
        h = erode(h, amount, cache)
        h = _fill_or_partial(h, options)
        logger.debug("Erosion cycle complete", cycle=cycle + 1)
    return h


def get_rivers(h: HeightField, limit: float,
               cache: Optional[DownhillCache] = None,
               merge: Callable[[List], List[Path]] = merge_segments,
               smooth: Callable[[Path], Path] = relax_path) -> List[Path]:
    """
    Construct river polylines.

    The flux threshold is ``limit`` times the fraction of the map above sea
    level. A vertex above sea level, away from the map edge, with a downhill
    target and flux over the threshold emits a segment to its target; when
    the target is under water the segment stops halfway (the river mouth).

    Args:
        h: Height field (sea level at 0)
        limit: Flux threshold as a fraction of land rainfall
        cache: Optional downhill memo
        merge: Joins segments into polylines
        smooth: Smooths one polyline

    Returns:
        List of river polylines
    """
    downs = downhill(h, cache)
    flux = get_flux(h, cache).values
    heights = h.values
    positions = h.mesh.positions
    near_edge = h.mesh.near_edge_mask()

    above = int(np.count_nonzero(heights > 0))
    threshold = limit * above / len(h)

    links = []
    for i in range(len(h)):
        if near_edge[i]:
            continue
        target = downs[i]
        if flux[i] > threshold and heights[i] > 0 and target >= 0:
            up = (float(positions[i][0]), float(positions[i][1]))
            down = (float(positions[target][0]), float(positions[target][1]))
            if heights[target] > 0:
                links.append((up, down))
            else:
                links.append((up, ((up[0] + down[0]) / 2, (up[1] + down[1]) / 2)))

    rivers = [smooth(path) for path in merge(links)]
    logger.info("Rivers extracted", segments=len(links), rivers=len(rivers),
                threshold=threshold)
    return rivers
