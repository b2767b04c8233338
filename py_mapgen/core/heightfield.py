"""
Height fields: one scalar elevation per mesh vertex.

Every operation here is pure. A transform never touches its input; it
returns a new ``HeightField`` bound to the same mesh. Values are stored in a
read-only numpy array so a field's content can never change after
construction, which is what lets derived data be cached by ``field_id``.
"""

import itertools
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence

import numpy as np
import structlog

from .errors import FieldMismatchError
from .mesh import Mesh
from .paths import Path, merge_and_smooth

logger = structlog.get_logger()

_field_ids = itertools.count(1)


@dataclass(frozen=True, eq=False)
class HeightField:
    """Scalar values indexed by vertex id, bound to exactly one mesh."""
    values: np.ndarray
    mesh: Mesh
    field_id: int = field(default_factory=lambda: next(_field_ids))

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 1 or len(values) != self.mesh.vertex_count:
            raise FieldMismatchError(
                f"{values.shape} values for a mesh of {self.mesh.vertex_count} vertices"
            )
        values.flags.writeable = False
        object.__setattr__(self, "values", values)

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, i):
        return self.values[i]

    def __iter__(self) -> Iterator[float]:
        return iter(self.values.tolist())

    def min(self) -> float:
        return float(self.values.min())

    def max(self) -> float:
        return float(self.values.max())

    def copy_with(self, values) -> "HeightField":
        """New field on the same mesh with the given values."""
        return HeightField(values, self.mesh)

    def map(self, f: Callable[[float], float]) -> "HeightField":
        return map_field(self, f)


def zero(mesh: Mesh) -> HeightField:
    """Height field of all zeroes."""
    return HeightField(np.zeros(mesh.vertex_count), mesh)


def slope(mesh: Mesh, direction: Sequence[float]) -> HeightField:
    """
    Linear tilt: height = position . direction.

    Args:
        mesh: Mesh to build on
        direction: (dx, dy) gradient of the tilt
    """
    return HeightField(mesh.positions @ np.asarray(direction, dtype=np.float64), mesh)


def cone(mesh: Mesh, s: float) -> HeightField:
    """Radial cone from the origin: height = s * |position|."""
    return HeightField(np.hypot(mesh.positions[:, 0], mesh.positions[:, 1]) * s, mesh)


def mountains(mesh: Mesh, n: int, r: float = 0.05,
              rng: Optional[np.random.Generator] = None) -> HeightField:
    """
    Sum of n squared Gaussian bumps at random centres.

    Each mountain contributes ``exp(-d^2 / (2 r^2))^2`` at distance d.

    Args:
        mesh: Mesh to build on
        n: Number of mountains
        r: Mountain radius
        rng: Random generator; defaults to the module-level one

    Returns:
        New height field
    """
    if n <= 0:
        return zero(mesh)
    if rng is None:
        from ..utils.random import get_rng
        rng = get_rng()

    extent = mesh.extent
    centres = (rng.random((n, 2)) - 0.5) * np.array([extent.width, extent.height])

    diff = mesh.positions[:, None, :] - centres[None, :, :]
    dist2 = (diff ** 2).sum(axis=2)
    values = (np.exp(-dist2 / (2 * r * r)) ** 2).sum(axis=1)

    logger.debug("Mountains placed", count=n, radius=r)
    return HeightField(values, mesh)


def add(*fields: HeightField) -> HeightField:
    """
    Elementwise sum of height fields.

    Raises:
        FieldMismatchError: If the fields are not all bound to the same mesh
    """
    if not fields:
        raise FieldMismatchError("add() needs at least one field")

    mesh = fields[0].mesh
    n = len(fields[0])
    for other in fields[1:]:
        if other.mesh is not mesh:
            raise FieldMismatchError("cannot add fields bound to different meshes")
        if len(other) != n:
            raise FieldMismatchError(f"cannot add fields of length {n} and {len(other)}")

    total = np.zeros(n)
    for f in fields:
        total += f.values
    return HeightField(total, mesh)


def map_field(h: HeightField, f: Callable[[float], float]) -> HeightField:
    """Apply f to every value; numpy ufuncs are applied to the whole array."""
    if isinstance(f, np.ufunc):
        return h.copy_with(f(h.values))
    return h.copy_with(np.fromiter((f(v) for v in h.values.tolist()),
                                   dtype=np.float64, count=len(h)))


def normalize(h: HeightField) -> HeightField:
    """
    Rescale linearly so the minimum maps to 0 and the maximum to 1.

    A flat field has no range to stretch; it normalizes to all zeroes.
    """
    lo = h.min()
    hi = h.max()
    if not hi > lo:
        logger.warning("Normalizing a flat height field", value=lo)
        return zero(h.mesh)
    return h.copy_with((h.values - lo) / (hi - lo))


def peaky(h: HeightField) -> HeightField:
    """
    Exaggerate relief: square root of the normalized field.

    Leaves mountains high but flattens the lowlands.
    """
    return map_field(normalize(h), np.sqrt)


def relax(h: HeightField) -> HeightField:
    """
    Smooth terrain by replacing each height with the mean of its neighbours.

    Boundary vertices are set to zero.
    """
    values = h.values
    relaxed = np.zeros(len(h))
    for i, nbs in enumerate(h.mesh.adjacency):
        if len(nbs) < 3:
            continue
        relaxed[i] = values[list(nbs)].mean()
    return h.copy_with(relaxed)


def quantile(h: HeightField, q: float) -> float:
    """
    The q-th quantile of the field, linearly interpolated between order
    statistics.

    Args:
        h: Height field
        q: Target fraction (0-1)
    """
    return float(np.quantile(h.values, q))


def set_sea_level(h: HeightField, q: float) -> HeightField:
    """
    Shift heights so that a fraction q of the map lies below zero.

    Args:
        h: Height field
        q: Fraction of the map to put under water (0-1)
    """
    delta = quantile(h, q)
    logger.debug("Setting sea level", quantile=q, offset=delta)
    return h.copy_with(h.values - delta)


def contour(h: HeightField, level: float = 0.0) -> List[Path]:
    """
    Contour lines at the given level (coastlines at level 0).

    An interior edge whose endpoints straddle the level contributes the
    segment between the two sites on either side of it. Edges touching the
    outer 5% of the map are skipped.

    Returns:
        Smoothed polylines
    """
    mesh = h.mesh
    values = h.values
    near_edge = mesh.near_edge_mask()

    segments = []
    for edge in mesh.edges:
        if edge.left is None or edge.right is None:
            continue
        if near_edge[edge.a] or near_edge[edge.b]:
            continue
        ha = values[edge.a]
        hb = values[edge.b]
        if (ha > level and hb <= level) or (hb > level and ha <= level):
            segments.append((edge.left, edge.right))

    return merge_and_smooth(segments)
