"""
End-to-end map generation.

Runs the whole batch pipeline for one set of parameters:

1. Mesh        - random points, relaxation, dual graph
2. Terrain     - tilt + cone + mountains, smoothing, erosion, sea level
3. Water       - flux, rivers and coastlines
4. Cities      - greedy city placement
5. Territories - capital expansion and borders

Given the same seed and tessellator the result is fully deterministic.
"""

import time
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import structlog

from ..config import GenerationParams, settings
from ..utils.random import make_rng
from .errors import SinkFillingNotConverged
from . import cities as city_placement
from .heightfield import HeightField, add, cone, contour, mountains, peaky, relax, set_sea_level, slope
from .hydrology import DownhillCache, HydrologyOptions, do_erosion, fill_sinks, get_flux, get_rivers
from .mesh import Mesh, MeshConfig, generate_mesh
from .paths import Path
from .tessellation import Extent, Tessellator
from .territories import Territories, get_borders, get_territories

logger = structlog.get_logger()


@dataclass(frozen=True, eq=False)
class GeneratedMap:
    """Everything a renderer needs to draw a map."""
    params: GenerationParams
    mesh: Mesh
    heights: HeightField
    flux: HeightField
    rivers: List[Path]
    coastlines: List[Path]
    cities: List[int]
    territories: Territories
    borders: List[Path]

    @property
    def capitals(self) -> List[int]:
        return list(self.territories.capitals)


class MapGenerator:
    """Generates a complete map from a set of parameters."""

    def __init__(self, params: Optional[GenerationParams] = None,
                 tessellator: Optional[Tessellator] = None):
        """
        Initialize the generator.

        Args:
            params: Generation parameters; defaults to GenerationParams()
            tessellator: Tessellation function; defaults to scipy's Voronoi
        """
        self.params = params or GenerationParams()
        self.tessellator = tessellator
        seed = self.params.seed
        if seed is None:
            seed = settings.default_seed
        self.rng = make_rng(seed)
        self.cache = DownhillCache()
        self.hydrology_options = HydrologyOptions(
            max_fill_iterations=self.params.max_fill_iterations
        )

    def build_mesh(self) -> Mesh:
        config = MeshConfig(
            n_points=self.params.n_points,
            extent=Extent(self.params.width, self.params.height),
            relax_iterations=self.params.relax_iterations,
        )
        return generate_mesh(config, self.tessellator, self.rng)

    def generate_heights(self, mesh: Mesh) -> HeightField:
        """
        Build the terrain: a random tilt, an inverted cone (so the map edges
        tend to be sea) and mountains, smoothed, peaked, eroded and finally
        shifted to put the requested fraction under water.
        """
        params = self.params
        direction = 4 * self.rng.standard_normal(2)

        h = add(
            slope(mesh, direction),
            cone(mesh, -1.0),
            mountains(mesh, params.n_mountains, params.mountain_radius, self.rng),
        )
        for _ in range(params.smoothing_passes):
            h = relax(h)
        h = peaky(h)
        h = do_erosion(h, params.erosion_amount, params.erosion_cycles,
                       self.hydrology_options, self.cache)
        h = set_sea_level(h, params.sea_level_quantile)
        try:
            return fill_sinks(h, self.hydrology_options.epsilon,
                              self.hydrology_options.max_fill_iterations)
        except SinkFillingNotConverged as exc:
            logger.warning("Using partially filled terrain", iterations=exc.iterations)
            return exc.partial

    def generate(self) -> GeneratedMap:
        """Run the full pipeline."""
        start = time.time()
        params = self.params
        logger.info("Starting map generation", seed=params.seed,
                    n_points=params.n_points)

        mesh = self.build_mesh()
        heights = self.generate_heights(mesh)

        flux = get_flux(heights, self.cache)
        rivers = get_rivers(heights, params.river_threshold, self.cache)
        coastlines = contour(heights, 0.0)

        cities = city_placement.place_cities(heights, params.n_cities, flux.values)
        territories = get_territories(heights, cities, params.n_territories,
                                      flux=flux.values)
        borders = get_borders(heights, territories)

        logger.info("Map generation complete",
                    vertices=mesh.vertex_count,
                    land_fraction=float(np.mean(heights.values > 0)),
                    rivers=len(rivers),
                    cities=len(cities),
                    elapsed_seconds=round(time.time() - start, 3))

        return GeneratedMap(
            params=params,
            mesh=mesh,
            heights=heights,
            flux=flux,
            rivers=rivers,
            coastlines=coastlines,
            cities=cities,
            territories=territories,
            borders=borders,
        )


def generate_map(params: Optional[GenerationParams] = None,
                 tessellator: Optional[Tessellator] = None) -> GeneratedMap:
    """Convenience wrapper: ``MapGenerator(params, tessellator).generate()``."""
    return MapGenerator(params, tessellator).generate()
