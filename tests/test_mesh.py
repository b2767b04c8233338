"""Tests for tessellation and mesh generation."""

import pytest
import numpy as np

from py_mapgen.core.errors import MeshConfigurationError
from py_mapgen.core.mesh import (
    Mesh, MeshConfig, build_mesh, compute_polygon_centroid,
    generate_mesh, generate_points, relax_points
)
from py_mapgen.core.tessellation import (
    Extent, ScipyVoronoiTessellator, Tessellation, VoronoiEdge,
    merge_coincident_vertices, mirror_points
)
from py_mapgen.utils.random import make_rng


def polygon_area(polygon):
    x = polygon[:, 0]
    y = polygon[:, 1]
    return 0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


@pytest.fixture(scope="module")
def mesh():
    """A small relaxed mesh on the unit extent."""
    config = MeshConfig(n_points=200, extent=Extent(1.0, 1.0), relax_iterations=1)
    return generate_mesh(config, rng=make_rng("mesh_test"))


class TestGeneratePoints:
    """Test random point generation."""

    def test_point_bounds(self):
        """All points lie inside the centred extent."""
        extent = Extent(2.0, 1.0)
        points = generate_points(500, extent, make_rng("bounds"))

        assert points.shape == (500, 2)
        assert np.all(points[:, 0] >= -1.0) and np.all(points[:, 0] < 1.0)
        assert np.all(points[:, 1] >= -0.5) and np.all(points[:, 1] < 0.5)

    def test_same_seed_same_points(self):
        extent = Extent(1.0, 1.0)
        points1 = generate_points(50, extent, make_rng("seed"))
        points2 = generate_points(50, extent, make_rng("seed"))

        np.testing.assert_array_equal(points1, points2)

    def test_different_seeds(self):
        extent = Extent(1.0, 1.0)
        points1 = generate_points(50, extent, make_rng("seed1"))
        points2 = generate_points(50, extent, make_rng("seed2"))

        assert not np.array_equal(points1, points2)


class TestTessellation:
    """Test the scipy-backed clipped Voronoi tessellation."""

    @pytest.fixture
    def points(self):
        return generate_points(60, Extent(1.0, 1.0), make_rng("tessellation"))

    def test_mirror_points(self, points):
        extent = Extent(1.0, 1.0)
        mirrored = mirror_points(points, extent)

        assert mirrored.shape == (5 * len(points), 2)
        np.testing.assert_array_equal(mirrored[:len(points)], points)
        # Left reflection is across x = -0.5
        np.testing.assert_allclose(mirrored[len(points):2 * len(points), 0],
                                   -1.0 - points[:, 0])

    def test_merge_coincident_vertices(self):
        vertices = np.array([[0.0, 0.0], [1.0, 0.0], [1e-12, 0.0], [1.0, 1e-13]])
        canonical = merge_coincident_vertices(vertices, 1e-9)

        assert list(canonical) == [0, 1, 0, 1]

    def test_cells_tile_the_extent(self, points):
        """Clipped cells cover the extent exactly."""
        extent = Extent(1.0, 1.0)
        tessellation = ScipyVoronoiTessellator()(points, extent)

        assert len(tessellation.cells) == len(points)
        total = sum(polygon_area(cell) for cell in tessellation.cells)
        assert total == pytest.approx(1.0, rel=1e-6)

    def test_edges_inside_extent(self, points):
        extent = Extent(1.0, 1.0)
        tessellation = ScipyVoronoiTessellator()(points, extent)

        for edge in tessellation.edges:
            for x, y in (edge.a, edge.b):
                assert -0.5 - 1e-9 <= x <= 0.5 + 1e-9
                assert -0.5 - 1e-9 <= y <= 0.5 + 1e-9

    def test_boundary_edges_have_one_site(self, points):
        extent = Extent(1.0, 1.0)
        tessellation = ScipyVoronoiTessellator()(points, extent)

        boundary = [e for e in tessellation.edges if e.right is None]
        assert boundary
        for edge in boundary:
            on_side = [
                abs(abs(c) - 0.5) < 1e-9
                for p in (edge.a, edge.b) for c in p
            ]
            assert any(on_side)


class TestRelaxation:
    """Test Lloyd relaxation."""

    def test_centroid_of_square(self):
        square = np.array([[0.0, 0.0], [2.0, 0.0], [2.0, 2.0], [0.0, 2.0]])
        np.testing.assert_allclose(compute_polygon_centroid(square), [1.0, 1.0])

    def test_degenerate_polygon_uses_mean(self):
        line = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
        np.testing.assert_allclose(compute_polygon_centroid(line), [1.0, 0.0])

    def test_relaxation_spreads_points(self):
        """Relaxation increases the minimum spacing of a clumpy set."""
        extent = Extent(1.0, 1.0)
        points = generate_points(100, extent, make_rng("relax"))
        relaxed = relax_points(points, extent, ScipyVoronoiTessellator(), 2)

        def min_spacing(pts):
            d = np.hypot(*(pts[:, None, :] - pts[None, :, :]).transpose(2, 0, 1))
            d[np.diag_indices(len(pts))] = np.inf
            return d.min()

        assert relaxed.shape == points.shape
        assert min_spacing(relaxed) > min_spacing(points)

    def test_relaxation_does_not_modify_input(self):
        extent = Extent(1.0, 1.0)
        points = generate_points(30, extent, make_rng("copy"))
        original = points.copy()
        relax_points(points, extent, ScipyVoronoiTessellator(), 1)

        np.testing.assert_array_equal(points, original)


class TestMesh:
    """Test the dual mesh."""

    def test_adjacency_symmetric(self, mesh):
        for i, nbs in enumerate(mesh.adjacency):
            for j in nbs:
                assert i in mesh.adjacency[j]

    def test_boundary_iff_fewer_than_three_neighbours(self, mesh):
        for i in range(mesh.vertex_count):
            assert mesh.is_boundary(i) == (len(mesh.neighbors(i)) < 3)
        np.testing.assert_array_equal(
            mesh.boundary_mask(),
            [len(nbs) < 3 for nbs in mesh.adjacency]
        )

    def test_interior_vertices_have_three_neighbours(self, mesh):
        degrees = [len(nbs) for nbs in mesh.adjacency]
        assert max(degrees) == 3
        assert min(degrees) >= 2

    def test_corners_are_boundary(self, mesh):
        boundary = np.flatnonzero(mesh.boundary_mask())
        assert len(boundary) >= 4
        for i in boundary:
            x, y = mesh.positions[i]
            assert abs(abs(x) - 0.5) < 1e-6 or abs(abs(y) - 0.5) < 1e-6

    def test_vertex_sites(self, mesh):
        """Interior vertices touch exactly three tessellation sites."""
        for i in range(mesh.vertex_count):
            if not mesh.is_near_edge(i):
                assert len(mesh.cell_sites[i]) == 3

    def test_edges_reference_vertices(self, mesh):
        for edge in mesh.edges:
            assert edge.b in mesh.adjacency[edge.a]
            assert edge.left is not None

    def test_near_edge(self, mesh):
        mask = mesh.near_edge_mask()
        for i in range(mesh.vertex_count):
            x, y = mesh.positions[i]
            expected = abs(x) > 0.45 or abs(y) > 0.45
            assert mesh.is_near_edge(i) == expected
            assert mask[i] == expected

    def test_distance(self, mesh):
        a, b = 0, mesh.adjacency[0][0]
        expected = np.linalg.norm(mesh.positions[a] - mesh.positions[b])
        assert mesh.distance(a, b) == pytest.approx(expected)
        assert mesh.distance(a, b) == mesh.distance(b, a)

    def test_positions_read_only(self, mesh):
        with pytest.raises(ValueError):
            mesh.positions[0, 0] = 1.0

    def test_mesh_map(self, mesh):
        h = mesh.map(lambda p: p[0])
        np.testing.assert_allclose(h.values, mesh.positions[:, 0])
        assert h.mesh is mesh

    def test_deterministic_with_seed(self):
        config = MeshConfig(n_points=50)
        mesh1 = generate_mesh(config, rng=make_rng(7))
        mesh2 = generate_mesh(config, rng=make_rng(7))

        np.testing.assert_array_equal(mesh1.positions, mesh2.positions)
        assert mesh1.adjacency == mesh2.adjacency


class TestMeshConfigurationErrors:
    """Invalid configurations fail before any computation."""

    def test_degenerate_extent(self):
        with pytest.raises(MeshConfigurationError, match="invalid mesh configuration"):
            generate_mesh(MeshConfig(n_points=50, extent=Extent(0.0, 1.0)))

    def test_too_few_points(self):
        with pytest.raises(MeshConfigurationError, match="invalid mesh configuration"):
            generate_mesh(MeshConfig(n_points=3))

    def test_negative_relaxation(self):
        with pytest.raises(MeshConfigurationError):
            generate_mesh(MeshConfig(n_points=10, relax_iterations=-1))

    def test_too_few_distinct_points(self):
        points = np.array([[0.1, 0.1], [0.1, 0.1], [0.2, 0.2], [-0.1, 0.3]])
        with pytest.raises(MeshConfigurationError, match="distinct"):
            build_mesh(points, Extent(1.0, 1.0))

    def test_points_outside_extent(self):
        points = np.array([[0.1, 0.1], [-0.2, 0.3], [0.3, -0.2], [-0.1, -0.3],
                           [2.0, 2.0], [0.0, 0.0]])
        with pytest.raises(MeshConfigurationError, match="outside the extent"):
            build_mesh(points, Extent(1.0, 1.0))

    def test_asymmetric_adjacency(self):
        with pytest.raises(MeshConfigurationError, match="symmetric"):
            Mesh.from_adjacency(
                [[0, 0], [0.1, 0], [0, 0.1]],
                [[1, 2], [0], [0, 1]],
                Extent(1.0, 1.0),
            )

    def test_degenerate_extent_on_mesh(self):
        with pytest.raises(MeshConfigurationError):
            Mesh.from_adjacency([[0, 0], [1, 0]], [[1], [0]], Extent(1.0, 0.0))


class TestBuildMeshWithCustomTessellator:
    """The mesh builder accepts any tessellator."""

    def test_fake_tessellator(self):
        """Two triangles sharing an edge, one edge on the boundary."""
        s1, s2 = (0.0, 0.1), (0.0, -0.1)

        def tessellator(points, extent):
            return Tessellation(
                edges=[
                    VoronoiEdge((-0.2, 0.0), (0.2, 0.0), s1, s2),
                    VoronoiEdge((0.2, 0.0), (0.0, 0.3), s1, None),
                    VoronoiEdge((0.0, 0.3), (-0.2, 0.0), s1, None),
                    VoronoiEdge((0.2, 0.0), (0.0, -0.3), s2, None),
                    # Duplicate of the first edge, reversed
                    VoronoiEdge((0.2, 0.0), (-0.2, 0.0), s2, s1),
                ],
                cells=[np.empty((0, 2))] * len(points),
            )

        points = np.array([[0.0, 0.1], [0.0, -0.1], [0.3, 0.3], [-0.3, -0.3]])
        mesh = build_mesh(points, Extent(1.0, 1.0), tessellator)

        assert mesh.vertex_count == 4
        assert sorted(len(nbs) for nbs in mesh.adjacency) == [1, 2, 2, 3]
        assert mesh.edges[1].right is None
        assert set(mesh.cell_sites[0]) == {s1, s2}
